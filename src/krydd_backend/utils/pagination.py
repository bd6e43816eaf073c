import base64
import binascii
import json
import logging
import typing

from krydd_backend.dynamodb.keys import INDEX_KEY_ATTRIBUTES, boundary_key
from krydd_backend.utils.base_types import Cursor

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class InvalidCursorError(ValueError):
    pass


def encode_cursor(position: typing.Mapping[str, typing.Any]) -> Cursor:
    """
    Turns a DynamoDB key position into an opaque string that survives a trip through a query parameter.
    """
    raw = json.dumps(dict(position), separators=(",", ":"), sort_keys=True).encode("utf-8")
    return Cursor(base64.urlsafe_b64encode(raw).decode("ascii").rstrip("="))


def decode_cursor(cursor: str) -> dict[str, typing.Any]:
    """
    :raises InvalidCursorError: if the cursor was not produced by `encode_cursor`.
    """
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        position = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidCursorError("Malformed pagination cursor.") from e

    if not isinstance(position, dict) or not position:
        raise InvalidCursorError("Malformed pagination cursor.")
    return position


def check_cursor_position(
    position: typing.Mapping[str, typing.Any],
    partition: str,
    index_name: typing.Optional[str] = None,
) -> None:
    """
    A decoded cursor is only usable as ExclusiveStartKey for the query that produced it: it must carry
    exactly the key attributes of that table or index, all strings, and sit in the queried partition.

    :raises InvalidCursorError: if the position belongs to some other query.
    """
    expected_names = set(INDEX_KEY_ATTRIBUTES[None])
    if index_name is not None:
        expected_names.update(INDEX_KEY_ATTRIBUTES[index_name])

    if set(position) != expected_names or not all(isinstance(value, str) for value in position.values()):
        raise InvalidCursorError("Pagination cursor does not belong to this query.")

    partition_attribute = INDEX_KEY_ATTRIBUTES[index_name][0]
    if position[partition_attribute] != partition:
        raise InvalidCursorError("Pagination cursor does not belong to this query.")


def query_page(
    table: typing.Any,
    *,
    limit: int,
    partition: str,
    cursor: typing.Optional[str] = None,
    **query_kwargs: typing.Any,
) -> tuple[list[dict[str, typing.Any]], typing.Optional[Cursor]]:
    """
    Runs a DynamoDB query for one page of `limit` items.

    Asks for `limit + 1` items; if the extra item shows up, the page is cut at `limit` and the cursor
    points at the last item kept, so the next page starts exactly after it. The store may stop early
    (1 MB responses, filter expressions), in which case querying continues until the extra item is
    found or the partition runs out. No cursor means there is nothing after this page.

    :param table: a boto3 DynamoDB Table resource.
    :param partition: the partition-key value the key condition selects; a cursor from another partition
        raises InvalidCursorError.
    :param query_kwargs: passed through to `table.query` (KeyConditionExpression, IndexName, ...).
    """
    if limit < 1:
        raise ValueError(f"limit must be at least 1 (got {limit})")

    index_name = query_kwargs.get("IndexName")
    exclusive_start_key = None
    if cursor:
        exclusive_start_key = decode_cursor(cursor)
        check_cursor_position(exclusive_start_key, partition, index_name)
    items: list[dict[str, typing.Any]] = []

    while len(items) <= limit:
        request = dict(query_kwargs)
        request["Limit"] = limit + 1 - len(items)
        if exclusive_start_key:
            request["ExclusiveStartKey"] = exclusive_start_key

        response = table.query(**request)
        items.extend(response.get("Items", []))
        exclusive_start_key = response.get("LastEvaluatedKey")
        if not exclusive_start_key:
            break

    if len(items) > limit:
        page = items[:limit]
        next_cursor = encode_cursor(boundary_key(page[-1], index_name))
        _LOGGER.debug(f"Page of {len(page)} items, more available.")
        return page, next_cursor

    _LOGGER.debug(f"Final page of {len(items)} items.")
    return items, None

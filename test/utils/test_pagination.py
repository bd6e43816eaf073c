from unittest.mock import Mock

import pytest
from boto3.dynamodb.conditions import Key

from krydd_backend.utils.pagination import (
    InvalidCursorError,
    check_cursor_position,
    decode_cursor,
    encode_cursor,
    query_page,
)

TABLE_NAME = "test-krydd-table"


def test_cursor_is_opaque_and_url_safe():
    cursor = encode_cursor({"PK": "RECIPE", "SK": "RECIPE#a/b+c?"})
    assert "=" not in cursor
    assert "/" not in cursor and "+" not in cursor
    assert decode_cursor(cursor) == {"PK": "RECIPE", "SK": "RECIPE#a/b+c?"}


@pytest.mark.parametrize("cursor", ["not base64 !!", "bnVsbA", "W10", "e30"])
def test_decode_cursor_rejects_garbage(cursor: str):
    # "bnVsbA" is 'null', "W10" is '[]', "e30" is '{}'
    with pytest.raises(InvalidCursorError):
        decode_cursor(cursor)


def test_query_page_rejects_bad_limit():
    with pytest.raises(ValueError):
        query_page(Mock(), limit=0, partition="P")


def test_query_page_keeps_querying_when_store_stops_early():
    table = Mock()
    table.query.side_effect = [
        {"Items": [{"PK": "P", "SK": "1"}], "LastEvaluatedKey": {"PK": "P", "SK": "1"}},
        {"Items": [{"PK": "P", "SK": "2"}, {"PK": "P", "SK": "3"}], "LastEvaluatedKey": {"PK": "P", "SK": "3"}},
    ]

    items, cursor = query_page(table, limit=2, partition="P", KeyConditionExpression="kce")

    assert items == [{"PK": "P", "SK": "1"}, {"PK": "P", "SK": "2"}]
    assert decode_cursor(cursor) == {"PK": "P", "SK": "2"}
    first_call, second_call = table.query.call_args_list
    assert first_call.kwargs == {"KeyConditionExpression": "kce", "Limit": 3}
    assert second_call.kwargs == {"KeyConditionExpression": "kce", "Limit": 2, "ExclusiveStartKey": {"PK": "P", "SK": "1"}}


def test_query_page_last_page_has_no_cursor():
    table = Mock()
    table.query.return_value = {"Items": [{"PK": "P", "SK": "1"}]}
    items, cursor = query_page(table, limit=5, partition="P")
    assert items == [{"PK": "P", "SK": "1"}]
    assert cursor is None


@pytest.mark.parametrize("total, page_size", [(10, 3), (9, 3), (1, 1), (5, 10)])
def test_query_page_chains_over_whole_partition(krydd_table, total: int, page_size: int):
    table = krydd_table.Table(TABLE_NAME)
    for i in range(total):
        table.put_item(Item={"PK": "THING", "SK": f"THING#{i:03d}"})
    table.put_item(Item={"PK": "OTHER", "SK": "THING#999"})

    seen = []
    cursor = None
    calls = 0
    while True:
        items, cursor = query_page(
            table, limit=page_size, partition="THING", cursor=cursor, KeyConditionExpression=Key("PK").eq("THING")
        )
        calls += 1
        assert len(items) <= page_size
        seen.extend(item["SK"] for item in items)
        if cursor is None:
            break

    assert seen == [f"THING#{i:03d}" for i in range(total)]
    assert calls == max(1, -(-total // page_size))


@pytest.mark.parametrize(
    "position, partition, index_name",
    [
        ({"PK": "RECIPE", "SK": "RECIPE#r1"}, "RECIPE", None),
        (
            {"PK": "RECIPE", "SK": "RECIPE#r1", "GSI1PK": "AUTHOR#u1", "GSI1SK": "RECIPE#r1"},
            "AUTHOR#u1",
            "GSI1",
        ),
    ],
)
def test_check_cursor_position_accepts_own_query(position: dict, partition: str, index_name):
    check_cursor_position(position, partition, index_name)


@pytest.mark.parametrize(
    "position, partition, index_name",
    [
        # another author
        ({"PK": "RECIPE", "SK": "RECIPE#r1", "GSI1PK": "AUTHOR#u1", "GSI1SK": "RECIPE#r1"}, "AUTHOR#u2", "GSI1"),
        # table position replayed on an index query
        ({"PK": "USER", "SK": "USER#a@b.com"}, "AUTHOR#u1", "GSI1"),
        # index position replayed on a table query
        ({"PK": "RECIPE", "SK": "RECIPE#r1", "GSI2PK": "CUISINE#Thai", "GSI2SK": "RECIPE#2024"}, "RECIPE", None),
        ({"PK": "USER", "SK": "USER#a@b.com"}, "RECIPE", None),
        ({"PK": "RECIPE", "SK": 7}, "RECIPE", None),
        ({"PK": "RECIPE", "SK": "RECIPE#r1", "extra": "x"}, "RECIPE", None),
    ],
)
def test_check_cursor_position_rejects_foreign_cursor(position: dict, partition: str, index_name):
    with pytest.raises(InvalidCursorError):
        check_cursor_position(position, partition, index_name)


def test_query_page_rejects_cursor_from_other_partition():
    table = Mock()
    cursor = encode_cursor({"PK": "OTHER", "SK": "THING#001"})

    with pytest.raises(InvalidCursorError):
        query_page(table, limit=2, partition="THING", cursor=cursor, KeyConditionExpression="kce")
    table.query.assert_not_called()

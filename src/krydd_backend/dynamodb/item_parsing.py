import logging
import typing

import pydantic

from krydd_backend.dynamodb.keys import PK, SK, strip_index_keys
from krydd_backend.models.validation import normalize_dynamodb_numbers

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

ModelT = typing.TypeVar("ModelT", bound=pydantic.BaseModel)


def parse_stored_item(model_cls: type[ModelT], item: dict[str, typing.Any]) -> typing.Optional[ModelT]:
    """
    Strips the index keys off a stored item and validates what is left.

    An item that no longer validates is reported as missing. It is logged at ERROR
    so corrupt records stand out from plain absence.
    """
    try:
        return model_cls.model_validate(normalize_dynamodb_numbers(strip_index_keys(item)))
    except pydantic.ValidationError as e:
        _LOGGER.error(
            f"Corrupt {model_cls.__name__} item at PK={item.get(PK)}, SK={item.get(SK)} treated as missing: {e}",
            exc_info=True,
        )
        return None


def parse_stored_items(model_cls: type[ModelT], items: list[dict[str, typing.Any]]) -> list[ModelT]:
    parsed_items = []
    for item in items:
        parsed = parse_stored_item(model_cls, item)
        if parsed is not None:
            parsed_items.append(parsed)
    return parsed_items


def to_stored_item(model: pydantic.BaseModel, key_attributes: dict[str, str]) -> dict[str, typing.Any]:
    """The item written to DynamoDB: the entity's fields (None dropped) plus its key attributes."""
    item = model.model_dump(exclude_none=True)
    item.update(key_attributes)
    return item

import datetime
import decimal
import typing

import pydantic

from krydd_backend.dynamodb.keys import KEY_DELIMITER
from krydd_backend.utils.time_utils import parse_timestamp

ModelT = typing.TypeVar("ModelT", bound=pydantic.BaseModel)

# Integers are never coerced: "5", 5.0 and True are all rejected.
StrictNonNegativeInt = typing.Annotated[int, pydantic.Field(strict=True, ge=0)]
StrictPositiveInt = typing.Annotated[int, pydantic.Field(strict=True, ge=1)]
NonEmptyStr = typing.Annotated[str, pydantic.StringConstraints(min_length=1)]


class FieldViolation(typing.NamedTuple):
    field: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class EntityValidationError(ValueError):
    """Raised with every violated constraint of a candidate entity, not just the first."""

    def __init__(self, model_name: str, violations: list[FieldViolation]) -> None:
        self.model_name = model_name
        self.violations = violations
        summary = "; ".join(f"{v.field}: {v.message}" for v in violations)
        super().__init__(f"Invalid {model_name}: {summary}")

    def details(self) -> list[dict[str, str]]:
        return [v.as_dict() for v in self.violations]

    @classmethod
    def from_pydantic(cls, model_name: str, error: pydantic.ValidationError) -> "EntityValidationError":
        violations = [
            FieldViolation(
                field=".".join(str(part) for part in err["loc"]) or "__root__",
                message=err["msg"],
            )
            for err in error.errors()
        ]
        return cls(model_name, violations)


def validate_entity(model_cls: type[ModelT], candidate: typing.Any) -> ModelT:
    """
    Validates a candidate (dict or model) against `model_cls`.

    :raises EntityValidationError: listing every violated field.
    """
    if isinstance(candidate, pydantic.BaseModel):
        candidate = candidate.model_dump()
    try:
        return model_cls.model_validate(candidate)
    except pydantic.ValidationError as e:
        raise EntityValidationError.from_pydantic(model_cls.__name__, e) from e


def validate_json(model_cls: type[ModelT], raw_body: typing.Union[str, bytes]) -> ModelT:
    """
    Same as `validate_entity` for a raw JSON request body. Invalid JSON is reported as a violation too.
    """
    try:
        return model_cls.model_validate_json(raw_body)
    except pydantic.ValidationError as e:
        raise EntityValidationError.from_pydantic(model_cls.__name__, e) from e


def normalize_dynamodb_numbers(value: typing.Any) -> typing.Any:
    """DynamoDB hands numbers back as Decimal; turn them back into int/float before validation."""
    if isinstance(value, decimal.Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: normalize_dynamodb_numbers(v) for k, v in value.items()}
    if isinstance(value, list):
        return [normalize_dynamodb_numbers(v) for v in value]
    return value


def check_iso_timestamp(value: typing.Optional[str]) -> typing.Optional[str]:
    if value is None:
        return None
    try:
        parse_timestamp(value)
    except ValueError:
        raise ValueError(f"'{value}' is not a valid ISO8601 timestamp")
    return value


def check_key_component(value: typing.Optional[str]) -> typing.Optional[str]:
    """Fields that end up inside a table key may not contain the key delimiter."""
    if value is not None and KEY_DELIMITER in value:
        raise ValueError(f"must not contain '{KEY_DELIMITER}'")
    return value


def check_iso_date(value: str) -> str:
    try:
        datetime.date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"'{value}' is not a valid YYYY-MM-DD date")
    if len(value) != 10:
        raise ValueError(f"'{value}' is not a valid YYYY-MM-DD date")
    return value


def merge_patch(
    current: typing.Mapping[str, typing.Any],
    patch: pydantic.BaseModel,
    updatable_fields: typing.Iterable[str],
) -> dict[str, typing.Any]:
    """
    Overlays the fields explicitly present in `patch` onto `current`, walking only `updatable_fields`.
    Fields left out of the patch keep their current value; an explicit null clears an optional field.
    """
    merged = dict(current)
    present = [name for name in updatable_fields if name in patch.model_fields_set]
    merged.update(patch.model_dump(include=set(present)))
    return merged

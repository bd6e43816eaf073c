import typing

import pydantic

from krydd_backend.models.validation import (
    NonEmptyStr,
    StrictNonNegativeInt,
    StrictPositiveInt,
    check_iso_timestamp,
    check_key_component,
)
from krydd_backend.utils.base_types import Cursor, IsoTimestamp, RecipeId, UserId

Difficulty = typing.Literal["easy", "medium", "hard"]

RecipeTitle = typing.Annotated[str, pydantic.StringConstraints(min_length=1, max_length=200)]
RecipeDescription = typing.Annotated[str, pydantic.StringConstraints(max_length=1000)]
InstructionList = typing.Annotated[list[NonEmptyStr], pydantic.Field(min_length=1)]

_HTTP_URL_ADAPTER = pydantic.TypeAdapter(pydantic.HttpUrl)

# Fields a caller may change through PUT /recipes/{id}. id, createdAt and updatedAt are managed by RecipesTable.
RECIPE_UPDATABLE_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "ingredients",
    "instructions",
    "prepTime",
    "cookTime",
    "servings",
    "difficulty",
    "cuisine",
    "dietaryTags",
    "imageUrl",
    "authorId",
)


def _check_image_url(value: typing.Optional[str]) -> typing.Optional[str]:
    if value is None:
        return None
    # Keep the caller's string as-is; HttpUrl would normalise it (trailing slash etc).
    try:
        _HTTP_URL_ADAPTER.validate_python(value)
    except pydantic.ValidationError:
        raise ValueError(f"'{value}' is not a valid http(s) URL")
    return value


class IngredientModel(pydantic.BaseModel):
    name: NonEmptyStr
    amount: typing.Optional[str] = None
    unit: typing.Optional[str] = None
    notes: typing.Optional[str] = None


IngredientList = typing.Annotated[list[IngredientModel], pydantic.Field(min_length=1)]


class _RecipeFieldsModel(pydantic.BaseModel):
    title: RecipeTitle
    description: typing.Optional[RecipeDescription] = None
    ingredients: IngredientList
    instructions: InstructionList
    prepTime: StrictNonNegativeInt = pydantic.Field(description="Minutes")
    cookTime: StrictNonNegativeInt = pydantic.Field(description="Minutes")
    servings: StrictPositiveInt
    difficulty: Difficulty
    cuisine: typing.Optional[str] = None
    dietaryTags: list[str] = pydantic.Field(default_factory=list)
    imageUrl: typing.Optional[str] = None
    authorId: UserId = pydantic.Field(min_length=1, description="GSI1PK = AUTHOR#authorId")

    @pydantic.field_validator("imageUrl")
    @classmethod
    def image_url_is_http(cls, v: typing.Optional[str]) -> typing.Optional[str]:
        return _check_image_url(v)

    @pydantic.field_validator("cuisine", "authorId")
    @classmethod
    def usable_in_keys(cls, v: typing.Optional[str]) -> typing.Optional[str]:
        return check_key_component(v)


class CreateRecipeInputModel(_RecipeFieldsModel):
    """
    Body of POST /recipes. id and timestamps are generated server-side and may not be supplied.
    """

    model_config = pydantic.ConfigDict(extra="forbid")


class RecipeModel(_RecipeFieldsModel):
    """
    A recipe as stored in the Krydd table (index keys stripped).
    """

    model_config = pydantic.ConfigDict(extra="ignore")

    id: RecipeId = pydantic.Field(min_length=1, description="SK = RECIPE#id")
    createdAt: IsoTimestamp
    updatedAt: IsoTimestamp

    @pydantic.field_validator("createdAt", "updatedAt")
    @classmethod
    def timestamps_are_iso(cls, v: str) -> str:
        return check_iso_timestamp(v)


class UpdateRecipeInputModel(pydantic.BaseModel):
    """
    Body of PUT /recipes/{id}. Every field is optional; only the fields present in the
    request body are applied, everything else keeps its stored value.
    """

    model_config = pydantic.ConfigDict(extra="forbid")

    title: typing.Optional[RecipeTitle] = None
    description: typing.Optional[RecipeDescription] = None
    ingredients: typing.Optional[IngredientList] = None
    instructions: typing.Optional[InstructionList] = None
    prepTime: typing.Optional[StrictNonNegativeInt] = None
    cookTime: typing.Optional[StrictNonNegativeInt] = None
    servings: typing.Optional[StrictPositiveInt] = None
    difficulty: typing.Optional[Difficulty] = None
    cuisine: typing.Optional[str] = None
    dietaryTags: typing.Optional[list[str]] = None
    imageUrl: typing.Optional[str] = None
    authorId: typing.Optional[NonEmptyStr] = None

    @pydantic.field_validator("imageUrl")
    @classmethod
    def image_url_is_http(cls, v: typing.Optional[str]) -> typing.Optional[str]:
        return _check_image_url(v)

    @pydantic.field_validator("cuisine", "authorId")
    @classmethod
    def usable_in_keys(cls, v: typing.Optional[str]) -> typing.Optional[str]:
        return check_key_component(v)


class RecipeFilterModel(pydantic.BaseModel):
    """
    Query parameters of GET /recipes. Values arrive as strings, so `limit` is parsed leniently.
    """

    model_config = pydantic.ConfigDict(extra="forbid")

    authorId: typing.Optional[NonEmptyStr] = None
    cuisine: typing.Optional[NonEmptyStr] = None
    difficulty: typing.Optional[Difficulty] = None
    dietaryTags: typing.Optional[list[str]] = None
    limit: int = pydantic.Field(default=20, ge=1, le=100)
    cursor: typing.Optional[Cursor] = None


class ListOfRecipesResponseModel(pydantic.BaseModel):
    recipes: list[RecipeModel]
    cursor: typing.Optional[Cursor] = None


class RecipePageParamsModel(pydantic.BaseModel):
    """Query parameters of GET /recipes/author/{authorId} and GET /recipes/cuisine/{cuisine}."""

    model_config = pydantic.ConfigDict(extra="forbid")

    limit: int = pydantic.Field(default=20, ge=1, le=100)
    cursor: typing.Optional[Cursor] = None
    newestFirst: bool = False

import typing

from pydantic import BaseModel, ConfigDict, Field

from krydd_backend.models.recipe_models import Difficulty, RecipeModel
from krydd_backend.models.validation import NonEmptyStr
from krydd_backend.utils.base_types import RecipeId


class SimilarRecipe(typing.NamedTuple):
    recipeId: RecipeId
    similarity: float


class SearchInputModel(BaseModel):
    """Body of POST /search."""

    model_config = ConfigDict(extra="forbid")

    query: str = Field(min_length=1, max_length=500)
    cuisine: typing.Optional[str] = None
    difficulty: typing.Optional[Difficulty] = None
    maxResults: int = Field(default=10, ge=1, le=50)


class IngredientsSearchInputModel(BaseModel):
    """Body of POST /search/ingredients."""

    model_config = ConfigDict(extra="forbid")

    ingredients: list[NonEmptyStr] = Field(min_length=1, max_length=20)
    maxResults: int = Field(default=10, ge=1, le=50)


class ScoredRecipeModel(RecipeModel):
    similarityScore: typing.Optional[float] = None


class SearchResponseModel(BaseModel):
    recipes: list[ScoredRecipeModel]
    query: typing.Union[str, list[str]]
    totalResults: int


class RecommendationsResponseModel(BaseModel):
    recipes: list[RecipeModel]
    recommendations: str

import typing

from pydantic import BaseModel, ConfigDict, Field

from krydd_backend.models.recipe_models import RecipeModel
from krydd_backend.models.validation import NonEmptyStr
from krydd_backend.utils.base_types import RecipeId


class ChatContextModel(BaseModel):
    recentRecipes: typing.Optional[list[RecipeId]] = None
    preferences: typing.Optional[dict[str, typing.Any]] = None


class ChatMessageInputModel(BaseModel):
    """Body of POST /chat and POST /chat/search."""

    model_config = ConfigDict(extra="forbid")

    message: str = Field(min_length=1, max_length=2000)
    context: typing.Optional[ChatContextModel] = None


class ChatResponseModel(BaseModel):
    response: str
    messageId: str


class ChatSearchResponseModel(BaseModel):
    recipes: list[RecipeModel]
    summary: str
    searchQuery: str
    totalResults: int


class SuggestInputModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ingredients: list[NonEmptyStr] = Field(min_length=1)
    preferences: typing.Optional[dict[str, typing.Any]] = None


class SuggestResponseModel(BaseModel):
    suggestions: str
    basedOnIngredients: list[str]


class MealPlanGenerationPreferencesModel(BaseModel):
    cuisines: typing.Optional[list[str]] = None
    dietaryRestrictions: typing.Optional[list[str]] = None
    caloriesPerDay: typing.Optional[float] = Field(default=None, ge=0)
    mealsPerDay: int = Field(default=3, ge=2, le=6)


class MealPlanGenerationInputModel(BaseModel):
    """Body of POST /chat/meal-plan."""

    model_config = ConfigDict(extra="forbid")

    preferences: typing.Optional[MealPlanGenerationPreferencesModel] = None


class MealPlanGenerationResponseModel(BaseModel):
    mealPlan: str
    preferences: typing.Optional[MealPlanGenerationPreferencesModel] = None


class SubstitutionsInputModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ingredient: str = Field(min_length=1)
    dietaryRestriction: typing.Optional[str] = None


class SubstitutionsResponseModel(BaseModel):
    ingredient: str
    substitutions: str
    dietaryRestriction: typing.Optional[str] = None

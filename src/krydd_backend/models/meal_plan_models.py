import datetime
import typing

import pydantic

from krydd_backend.models.validation import (
    NonEmptyStr,
    StrictNonNegativeInt,
    check_iso_date,
    check_iso_timestamp,
    check_key_component,
)
from krydd_backend.utils.base_types import Cursor, IsoDate, IsoTimestamp, MealPlanId, UserId

MealType = typing.Literal["breakfast", "lunch", "dinner", "snack"]

MEAL_PLAN_UPDATABLE_FIELDS: tuple[str, ...] = (
    "userId",
    "weekStartDate",
    "days",
    "goals",
    "preferences",
)


def _check_week_start(value: str) -> str:
    check_iso_date(value)
    if datetime.date.fromisoformat(value).weekday() != 0:
        raise ValueError(f"weekStartDate '{value}' is not a Monday")
    return value


def _check_day_keys(days: typing.Optional[dict[str, typing.Any]]) -> typing.Optional[dict[str, typing.Any]]:
    if days is None:
        return None
    for day in days:
        check_iso_date(day)
    return days


class MealEntryModel(pydantic.BaseModel):
    recipeId: NonEmptyStr
    mealType: MealType
    notes: typing.Optional[str] = None


class DayMealsModel(pydantic.BaseModel):
    date: IsoDate
    breakfast: typing.Optional[list[MealEntryModel]] = None
    lunch: typing.Optional[list[MealEntryModel]] = None
    dinner: typing.Optional[list[MealEntryModel]] = None
    snacks: typing.Optional[list[MealEntryModel]] = None

    @pydantic.field_validator("date")
    @classmethod
    def date_is_iso(cls, v: str) -> str:
        return check_iso_date(v)


class NutritionGoalsModel(pydantic.BaseModel):
    """Daily targets. Grams for the macros, kcal for calories."""

    calories: typing.Optional[StrictNonNegativeInt] = None
    protein: typing.Optional[StrictNonNegativeInt] = None
    carbs: typing.Optional[StrictNonNegativeInt] = None
    fat: typing.Optional[StrictNonNegativeInt] = None


class MealPlanPreferencesModel(pydantic.BaseModel):
    cuisines: typing.Optional[list[str]] = None
    dietaryRestrictions: typing.Optional[list[str]] = None
    avoidIngredients: typing.Optional[list[str]] = None


class _MealPlanFieldsModel(pydantic.BaseModel):
    userId: UserId = pydantic.Field(min_length=1, description="PK = USER#userId")
    weekStartDate: IsoDate = pydantic.Field(description="Monday of the week, SK = MEALPLAN#weekStartDate")
    days: dict[IsoDate, DayMealsModel] = pydantic.Field(description="YYYY-MM-DD -> meals of that day")
    goals: typing.Optional[NutritionGoalsModel] = None
    preferences: typing.Optional[MealPlanPreferencesModel] = None

    @pydantic.field_validator("userId")
    @classmethod
    def usable_in_keys(cls, v: str) -> str:
        return check_key_component(v)

    @pydantic.field_validator("weekStartDate")
    @classmethod
    def week_starts_on_monday(cls, v: str) -> str:
        return _check_week_start(v)

    @pydantic.field_validator("days")
    @classmethod
    def day_keys_are_dates(cls, v: dict[str, typing.Any]) -> dict[str, typing.Any]:
        return _check_day_keys(v)


class CreateMealPlanInputModel(_MealPlanFieldsModel):
    """
    Body of POST /meal-plans. Creating a plan for a (userId, weekStartDate) pair that already has
    one replaces it.
    """

    model_config = pydantic.ConfigDict(extra="forbid")


class MealPlanModel(_MealPlanFieldsModel):
    """
    A meal plan as stored in the Krydd table. One plan per user per week.
    """

    model_config = pydantic.ConfigDict(extra="ignore")

    id: MealPlanId = pydantic.Field(min_length=1)
    createdAt: IsoTimestamp
    updatedAt: IsoTimestamp

    @pydantic.field_validator("createdAt", "updatedAt")
    @classmethod
    def timestamps_are_iso(cls, v: str) -> str:
        return check_iso_timestamp(v)


class UpdateMealPlanInputModel(pydantic.BaseModel):
    """
    Body of PUT /meal-plans/{weekStart}. Only the fields present in the body are applied.
    Changing userId or weekStartDate moves the plan to its new key.
    """

    model_config = pydantic.ConfigDict(extra="forbid")

    userId: typing.Optional[NonEmptyStr] = None
    weekStartDate: typing.Optional[IsoDate] = None
    days: typing.Optional[dict[IsoDate, DayMealsModel]] = None
    goals: typing.Optional[NutritionGoalsModel] = None
    preferences: typing.Optional[MealPlanPreferencesModel] = None

    @pydantic.field_validator("userId")
    @classmethod
    def usable_in_keys(cls, v: typing.Optional[str]) -> typing.Optional[str]:
        return check_key_component(v)

    @pydantic.field_validator("weekStartDate")
    @classmethod
    def week_starts_on_monday(cls, v: typing.Optional[str]) -> typing.Optional[str]:
        return None if v is None else _check_week_start(v)

    @pydantic.field_validator("days")
    @classmethod
    def day_keys_are_dates(cls, v: typing.Optional[dict[str, typing.Any]]) -> typing.Optional[dict[str, typing.Any]]:
        return _check_day_keys(v)


class UpdateDaysInputModel(pydantic.BaseModel):
    """Body of PATCH /meal-plans/{weekStart}/days. Given days replace the stored ones, others are kept."""

    model_config = pydantic.ConfigDict(extra="forbid")

    days: dict[IsoDate, DayMealsModel]

    @pydantic.field_validator("days")
    @classmethod
    def day_keys_are_dates(cls, v: dict[str, typing.Any]) -> dict[str, typing.Any]:
        return _check_day_keys(v)


class MealPlanFilterModel(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(extra="forbid")

    userId: NonEmptyStr
    limit: int = pydantic.Field(default=4, ge=1, le=52)
    cursor: typing.Optional[Cursor] = None


class ListOfMealPlansResponseModel(pydantic.BaseModel):
    mealPlans: list[MealPlanModel]
    cursor: typing.Optional[Cursor] = None


class WeekListParamsModel(pydantic.BaseModel):
    """Query parameters of GET /meal-plans/week/{weekStart}."""

    model_config = pydantic.ConfigDict(extra="forbid")

    limit: int = pydantic.Field(default=100, ge=1, le=100)
    cursor: typing.Optional[Cursor] = None

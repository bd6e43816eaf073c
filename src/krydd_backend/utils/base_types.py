import typing

UserId = typing.NewType("UserId", str)
RecipeId = typing.NewType("RecipeId", str)
MealPlanId = typing.NewType("MealPlanId", str)

IsoTimestamp = typing.NewType("IsoTimestamp", str)
IsoDate = typing.NewType("IsoDate", str)
Cursor = typing.NewType("Cursor", str)

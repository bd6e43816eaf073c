"""
Key layout for the single Krydd table.

Every entity shares one table keyed by (PK, SK) with two global secondary indexes:

    Entity    PK                 SK                          GSI1PK / GSI1SK                        GSI2PK / GSI2SK
    User      USER               USER#{email}                -                                      -
    Recipe    RECIPE             RECIPE#{id}                 AUTHOR#{authorId} / RECIPE#{id}        CUISINE#{cuisine} / RECIPE#{createdAt}
    MealPlan  USER#{userId}      MEALPLAN#{weekStartDate}    MEALPLAN#{weekStartDate} / USER#{userId}  -

Recipes without a cuisine are indexed under CUISINE#UNKNOWN.
"""

import typing

KEY_DELIMITER = "#"
UNKNOWN_CUISINE = "UNKNOWN"

PK = "PK"
SK = "SK"
GSI1PK = "GSI1PK"
GSI1SK = "GSI1SK"
GSI2PK = "GSI2PK"
GSI2SK = "GSI2SK"

GSI1_INDEX_NAME = "GSI1"
GSI2_INDEX_NAME = "GSI2"

INDEX_KEY_ATTRIBUTES: dict[typing.Optional[str], tuple[str, str]] = {
    None: (PK, SK),
    GSI1_INDEX_NAME: (GSI1PK, GSI1SK),
    GSI2_INDEX_NAME: (GSI2PK, GSI2SK),
}
KEY_ATTRIBUTES = frozenset(attr for pair in INDEX_KEY_ATTRIBUTES.values() for attr in pair)

USER_TAG = "USER"
RECIPE_TAG = "RECIPE"
MEALPLAN_TAG = "MEALPLAN"
AUTHOR_TAG = "AUTHOR"
CUISINE_TAG = "CUISINE"

EntityType = typing.Literal["user", "recipe", "meal_plan"]


class KeyEncodingError(ValueError):
    pass


class ItemKeys(typing.NamedTuple):
    pk: str
    sk: str
    gsi1pk: typing.Optional[str] = None
    gsi1sk: typing.Optional[str] = None
    gsi2pk: typing.Optional[str] = None
    gsi2sk: typing.Optional[str] = None

    def primary_key(self) -> dict[str, str]:
        return {PK: self.pk, SK: self.sk}

    def as_attributes(self) -> dict[str, str]:
        """Only the populated key attributes, ready to merge into a stored item."""
        attributes = {
            PK: self.pk,
            SK: self.sk,
            GSI1PK: self.gsi1pk,
            GSI1SK: self.gsi1sk,
            GSI2PK: self.gsi2pk,
            GSI2SK: self.gsi2sk,
        }
        return {name: value for name, value in attributes.items() if value is not None}


def _component(value: typing.Any, field_name: str) -> str:
    text = str(value) if value is not None else ""
    if not text:
        raise KeyEncodingError(f"Key component '{field_name}' must not be empty")
    if KEY_DELIMITER in text:
        raise KeyEncodingError(f"Key component '{field_name}' must not contain '{KEY_DELIMITER}'")
    return text


def make_key(tag: str, value: typing.Any = None, field_name: str = "value") -> str:
    if value is None:
        return tag
    return f"{tag}{KEY_DELIMITER}{_component(value, field_name)}"


def prefix(tag: str) -> str:
    """Sort-key prefix for a `begins_with` condition."""
    return f"{tag}{KEY_DELIMITER}"


def user_keys(email: str) -> ItemKeys:
    return ItemKeys(pk=USER_TAG, sk=make_key(USER_TAG, email, "email"))


def recipe_keys(
    recipe_id: str,
    author_id: str,
    cuisine: typing.Optional[str],
    created_at: str,
) -> ItemKeys:
    return ItemKeys(
        pk=RECIPE_TAG,
        sk=make_key(RECIPE_TAG, recipe_id, "id"),
        gsi1pk=make_key(AUTHOR_TAG, author_id, "authorId"),
        gsi1sk=make_key(RECIPE_TAG, recipe_id, "id"),
        gsi2pk=cuisine_partition(cuisine),
        gsi2sk=make_key(RECIPE_TAG, created_at, "createdAt"),
    )


def recipe_primary_key(recipe_id: str) -> dict[str, str]:
    return {PK: RECIPE_TAG, SK: make_key(RECIPE_TAG, recipe_id, "id")}


def cuisine_partition(cuisine: typing.Optional[str]) -> str:
    return make_key(CUISINE_TAG, cuisine or UNKNOWN_CUISINE, "cuisine")


def author_partition(author_id: str) -> str:
    return make_key(AUTHOR_TAG, author_id, "authorId")


def meal_plan_keys(user_id: str, week_start_date: str) -> ItemKeys:
    return ItemKeys(
        pk=make_key(USER_TAG, user_id, "userId"),
        sk=make_key(MEALPLAN_TAG, week_start_date, "weekStartDate"),
        gsi1pk=make_key(MEALPLAN_TAG, week_start_date, "weekStartDate"),
        gsi1sk=make_key(USER_TAG, user_id, "userId"),
    )


def encode_keys(entity_type: EntityType, fields: typing.Mapping[str, typing.Any]) -> ItemKeys:
    """
    Derives the full key tuple for an entity from its natural-key fields.
    Pure: the same fields always give the same keys, so an update re-derives the create's primary key.

    :raises KeyEncodingError: if a required field is missing, empty, or contains the delimiter.
    """
    try:
        if entity_type == "user":
            return user_keys(fields["email"])
        if entity_type == "recipe":
            return recipe_keys(fields["id"], fields["authorId"], fields.get("cuisine"), fields["createdAt"])
        if entity_type == "meal_plan":
            return meal_plan_keys(fields["userId"], fields["weekStartDate"])
    except KeyError as e:
        raise KeyEncodingError(f"Missing key field {e} for entity type '{entity_type}'") from e
    raise KeyEncodingError(f"Unknown entity type: {entity_type}")


def strip_index_keys(item: typing.Mapping[str, typing.Any]) -> dict[str, typing.Any]:
    return {name: value for name, value in item.items() if name not in KEY_ATTRIBUTES}


def boundary_key(item: typing.Mapping[str, typing.Any], index_name: typing.Optional[str] = None) -> dict[str, str]:
    """
    The key attributes DynamoDB needs as ExclusiveStartKey to resume a query right after `item`:
    the table's primary key plus, for an index query, that index's key.
    """
    names = list(INDEX_KEY_ATTRIBUTES[None])
    if index_name is not None:
        names.extend(INDEX_KEY_ATTRIBUTES[index_name])
    return {name: item[name] for name in names}

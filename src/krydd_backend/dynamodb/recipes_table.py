import concurrent.futures
import logging
import typing

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from krydd_backend.dynamodb.item_parsing import parse_stored_item, parse_stored_items, to_stored_item
from krydd_backend.dynamodb.keys import (
    GSI1_INDEX_NAME,
    GSI1PK,
    GSI1SK,
    GSI2_INDEX_NAME,
    GSI2PK,
    GSI2SK,
    PK,
    RECIPE_TAG,
    SK,
    author_partition,
    cuisine_partition,
    prefix,
    recipe_keys,
    recipe_primary_key,
)
from krydd_backend.models.recipe_models import (
    RECIPE_UPDATABLE_FIELDS,
    CreateRecipeInputModel,
    RecipeFilterModel,
    RecipeModel,
    UpdateRecipeInputModel,
)
from krydd_backend.models.validation import merge_patch, validate_entity
from krydd_backend.utils.base_types import Cursor, RecipeId
from krydd_backend.utils.pagination import query_page
from krydd_backend.utils.time_utils import Clock, IdFactory, new_id, next_timestamp, utc_now_iso

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

RecipePage = tuple[list[RecipeModel], typing.Optional[Cursor]]


class RecipesTable:
    """
    Data Abstraction Layer for recipe items in the Krydd table.

    Item layout:
      - PK: RECIPE,                 SK: RECIPE#{id}
      - GSI1PK: AUTHOR#{authorId},  GSI1SK: RECIPE#{id}         (recipes by author, ordered by id)
      - GSI2PK: CUISINE#{cuisine},  GSI2SK: RECIPE#{createdAt}  (recipes by cuisine, ordered by creation)
    """

    BATCH_GET_MAX_WORKERS = 10

    def __init__(
        self,
        table_name: str,
        dynamodb_resource: typing.Any = None,
        clock: Clock = utc_now_iso,
        id_factory: IdFactory = new_id,
    ) -> None:
        self.client = dynamodb_resource or boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)
        self.clock = clock
        self.id_factory = id_factory

    def _put_recipe(self, recipe: RecipeModel) -> RecipeModel:
        keys = recipe_keys(recipe.id, recipe.authorId, recipe.cuisine, recipe.createdAt)
        try:
            self.table.put_item(Item=to_stored_item(recipe, keys.as_attributes()))
            return recipe
        except ClientError as e:
            _LOGGER.error(f"Error saving recipe {recipe.id}: {e.response['Error']['Message']}", exc_info=True)
            raise

    def create_recipe(self, recipe_input: CreateRecipeInputModel) -> RecipeModel:
        """
        Stores a new recipe under a freshly generated id, with createdAt == updatedAt.

        :raises EntityValidationError: if the input is invalid.
        """
        recipe_input = validate_entity(CreateRecipeInputModel, recipe_input)
        now = self.clock()
        candidate = recipe_input.model_dump()
        candidate.update(id=self.id_factory(), createdAt=now, updatedAt=now)

        recipe = self._put_recipe(validate_entity(RecipeModel, candidate))
        _LOGGER.info(f"Created recipe {recipe.id} for author {recipe.authorId}")
        return recipe

    def get_recipe(self, recipe_id: RecipeId) -> typing.Optional[RecipeModel]:
        _LOGGER.debug(f"Fetching recipe {recipe_id}")
        try:
            response = self.table.get_item(Key=recipe_primary_key(recipe_id))
        except ClientError as e:
            _LOGGER.error(f"Failed to get recipe {recipe_id}: {e.response['Error']['Message']}")
            raise

        item = response.get("Item")
        if not item:
            _LOGGER.debug(f"No recipe found for id {recipe_id}")
            return None
        return parse_stored_item(RecipeModel, item)

    def update_recipe(self, recipe_id: RecipeId, patch: UpdateRecipeInputModel) -> typing.Optional[RecipeModel]:
        """
        Read-merge-write: fields absent from `patch` keep their stored values, index keys are
        re-derived (author and cuisine may change) and the whole item is overwritten.

        Two concurrent updates of the same recipe race; the later write wins.

        :return: the updated recipe, or None if it does not exist.
        :raises EntityValidationError: if the merged recipe is invalid.
        """
        current = self.get_recipe(recipe_id)
        if current is None:
            return None

        merged = merge_patch(current.model_dump(), patch, RECIPE_UPDATABLE_FIELDS)
        merged.update(
            id=current.id,
            createdAt=current.createdAt,
            updatedAt=next_timestamp(current.updatedAt, self.clock),
        )

        recipe = self._put_recipe(validate_entity(RecipeModel, merged))
        _LOGGER.info(f"Updated recipe {recipe_id} ({', '.join(sorted(patch.model_fields_set)) or 'no fields'})")
        return recipe

    def delete_recipe(self, recipe_id: RecipeId) -> bool:
        """:return: True if a recipe was deleted, False if there was nothing to delete."""
        try:
            response = self.table.delete_item(Key=recipe_primary_key(recipe_id), ReturnValues="ALL_OLD")
        except ClientError as e:
            _LOGGER.error(f"Error deleting recipe {recipe_id}: {e.response['Error']['Message']}", exc_info=True)
            raise

        deleted = bool(response.get("Attributes"))
        _LOGGER.info(f"Delete recipe {recipe_id}: {'deleted' if deleted else 'not found'}")
        return deleted

    def _query_recipes(
        self, description: str, partition: str, limit: int, cursor: typing.Optional[str], **query_kwargs
    ) -> RecipePage:
        try:
            items, next_cursor = query_page(self.table, limit=limit, partition=partition, cursor=cursor, **query_kwargs)
        except ClientError as e:
            _LOGGER.error(f"Error listing recipes {description}: {e.response['Error']['Message']}", exc_info=True)
            raise
        recipes = parse_stored_items(RecipeModel, items)
        _LOGGER.info(f"Listed {len(recipes)} recipes {description}. Has more: {bool(next_cursor)}")
        return recipes, next_cursor

    def list_recipes_by_author(
        self,
        author_id: str,
        limit: int = 20,
        cursor: typing.Optional[str] = None,
        newest_first: bool = False,
        filter_expression: typing.Any = None,
    ) -> RecipePage:
        """Recipes of one author via GSI1, ascending by id unless `newest_first`."""
        partition = author_partition(author_id)
        query_kwargs: dict[str, typing.Any] = {
            "IndexName": GSI1_INDEX_NAME,
            "KeyConditionExpression": Key(GSI1PK).eq(partition)
            & Key(GSI1SK).begins_with(prefix(RECIPE_TAG)),
            "ScanIndexForward": not newest_first,
        }
        if filter_expression is not None:
            query_kwargs["FilterExpression"] = filter_expression
        return self._query_recipes(f"by author {author_id}", partition, limit, cursor, **query_kwargs)

    def list_recipes_by_cuisine(
        self,
        cuisine: typing.Optional[str],
        limit: int = 20,
        cursor: typing.Optional[str] = None,
        newest_first: bool = False,
        filter_expression: typing.Any = None,
    ) -> RecipePage:
        """
        Recipes of one cuisine via GSI2, oldest first unless `newest_first`.
        `cuisine=None` lists the recipes that were stored without a cuisine.
        """
        partition = cuisine_partition(cuisine)
        query_kwargs: dict[str, typing.Any] = {
            "IndexName": GSI2_INDEX_NAME,
            "KeyConditionExpression": Key(GSI2PK).eq(partition)
            & Key(GSI2SK).begins_with(prefix(RECIPE_TAG)),
            "ScanIndexForward": not newest_first,
        }
        if filter_expression is not None:
            query_kwargs["FilterExpression"] = filter_expression
        return self._query_recipes(f"by cuisine {cuisine}", partition, limit, cursor, **query_kwargs)

    def list_recipes(self, recipe_filter: typing.Optional[RecipeFilterModel] = None) -> RecipePage:
        """
        Lists recipes matching the filter. authorId takes GSI1, cuisine takes GSI2, otherwise
        the whole RECIPE partition is read. difficulty and dietaryTags narrow the result server-side.
        """
        recipe_filter = recipe_filter or RecipeFilterModel()
        filter_expression = self._build_filter_expression(recipe_filter)

        if recipe_filter.authorId:
            if recipe_filter.cuisine:
                cuisine_condition = Attr("cuisine").eq(recipe_filter.cuisine)
                filter_expression = (
                    cuisine_condition if filter_expression is None else filter_expression & cuisine_condition
                )
            return self.list_recipes_by_author(
                recipe_filter.authorId,
                limit=recipe_filter.limit,
                cursor=recipe_filter.cursor,
                filter_expression=filter_expression,
            )

        if recipe_filter.cuisine:
            return self.list_recipes_by_cuisine(
                recipe_filter.cuisine,
                limit=recipe_filter.limit,
                cursor=recipe_filter.cursor,
                filter_expression=filter_expression,
            )

        query_kwargs: dict[str, typing.Any] = {
            "KeyConditionExpression": Key(PK).eq(RECIPE_TAG) & Key(SK).begins_with(prefix(RECIPE_TAG)),
        }
        if filter_expression is not None:
            query_kwargs["FilterExpression"] = filter_expression
        return self._query_recipes(
            "in all cuisines", RECIPE_TAG, recipe_filter.limit, recipe_filter.cursor, **query_kwargs
        )

    @staticmethod
    def _build_filter_expression(recipe_filter: RecipeFilterModel) -> typing.Any:
        conditions = []
        if recipe_filter.difficulty:
            conditions.append(Attr("difficulty").eq(recipe_filter.difficulty))
        for tag in recipe_filter.dietaryTags or []:
            conditions.append(Attr("dietaryTags").contains(tag))

        if not conditions:
            return None
        expression = conditions[0]
        for condition in conditions[1:]:
            expression = expression & condition
        return expression

    def batch_get_recipes(self, recipe_ids: typing.Sequence[RecipeId]) -> list[RecipeModel]:
        """
        Looks up each id concurrently. Missing (or corrupt) recipes are dropped; the rest come
        back in the order they were asked for.
        """
        if not recipe_ids:
            return []

        workers = min(self.BATCH_GET_MAX_WORKERS, len(recipe_ids))
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(self.get_recipe, recipe_ids))

        recipes = [recipe for recipe in results if recipe is not None]
        _LOGGER.info(f"Batch get: found {len(recipes)} of {len(recipe_ids)} recipes")
        return recipes

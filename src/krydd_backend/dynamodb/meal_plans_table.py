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
    MEALPLAN_TAG,
    PK,
    SK,
    USER_TAG,
    make_key,
    meal_plan_keys,
    prefix,
)
from krydd_backend.models.meal_plan_models import (
    MEAL_PLAN_UPDATABLE_FIELDS,
    CreateMealPlanInputModel,
    DayMealsModel,
    MealPlanModel,
    UpdateMealPlanInputModel,
)
from krydd_backend.models.validation import merge_patch, validate_entity
from krydd_backend.utils.base_types import Cursor, MealPlanId, UserId
from krydd_backend.utils.pagination import query_page
from krydd_backend.utils.time_utils import Clock, IdFactory, new_id, next_timestamp, utc_now_iso

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

MealPlanPage = tuple[list[MealPlanModel], typing.Optional[Cursor]]


class MealPlansTable:
    """
    Data Abstraction Layer for meal plan items in the Krydd table. A user has at most one plan per week.

    Item layout:
      - PK: USER#{userId},                  SK: MEALPLAN#{weekStartDate}
      - GSI1PK: MEALPLAN#{weekStartDate},   GSI1SK: USER#{userId}   (every plan of a given week)

    The generated `id` is not part of any key. Lookups by id scan the table.
    """

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

    def _put_meal_plan(self, meal_plan: MealPlanModel) -> MealPlanModel:
        keys = meal_plan_keys(meal_plan.userId, meal_plan.weekStartDate)
        try:
            self.table.put_item(Item=to_stored_item(meal_plan, keys.as_attributes()))
            return meal_plan
        except ClientError as e:
            _LOGGER.error(
                f"Error saving meal plan {meal_plan.userId}/{meal_plan.weekStartDate}: {e.response['Error']['Message']}",
                exc_info=True,
            )
            raise

    def create_meal_plan(self, meal_plan_input: CreateMealPlanInputModel) -> MealPlanModel:
        """
        Stores a new plan. A plan already stored for the same user and week is overwritten.

        :raises EntityValidationError: if the input is invalid.
        """
        meal_plan_input = validate_entity(CreateMealPlanInputModel, meal_plan_input)
        now = self.clock()
        candidate = meal_plan_input.model_dump()
        candidate.update(id=self.id_factory(), createdAt=now, updatedAt=now)

        meal_plan = self._put_meal_plan(validate_entity(MealPlanModel, candidate))
        _LOGGER.info(f"Created meal plan {meal_plan.id} for {meal_plan.userId}, week {meal_plan.weekStartDate}")
        return meal_plan

    def get_meal_plan(self, user_id: UserId, week_start_date: str) -> typing.Optional[MealPlanModel]:
        _LOGGER.debug(f"Fetching meal plan for {user_id}, week {week_start_date}")
        try:
            response = self.table.get_item(Key=meal_plan_keys(user_id, week_start_date).primary_key())
        except ClientError as e:
            _LOGGER.error(
                f"Failed to get meal plan for {user_id}, week {week_start_date}: {e.response['Error']['Message']}"
            )
            raise

        item = response.get("Item")
        if not item:
            _LOGGER.debug(f"No meal plan for {user_id}, week {week_start_date}")
            return None
        return parse_stored_item(MealPlanModel, item)

    def _find_item_by_id(self, meal_plan_id: MealPlanId) -> typing.Optional[dict[str, typing.Any]]:
        scan_kwargs: dict[str, typing.Any] = {
            "FilterExpression": Attr(SK).begins_with(prefix(MEALPLAN_TAG)) & Attr("id").eq(meal_plan_id),
        }
        try:
            while True:
                response = self.table.scan(**scan_kwargs)
                items = response.get("Items", [])
                if items:
                    return items[0]
                last_evaluated_key = response.get("LastEvaluatedKey")
                if not last_evaluated_key:
                    return None
                scan_kwargs["ExclusiveStartKey"] = last_evaluated_key
        except ClientError as e:
            _LOGGER.error(f"Error scanning for meal plan {meal_plan_id}: {e.response['Error']['Message']}", exc_info=True)
            raise

    def get_meal_plan_by_id(self, meal_plan_id: MealPlanId) -> typing.Optional[MealPlanModel]:
        """
        Resolves a plan by its generated id. The id is not a key, so this is a filtered scan;
        prefer `get_meal_plan` whenever the user and week are known.
        """
        item = self._find_item_by_id(meal_plan_id)
        if item is None:
            _LOGGER.debug(f"No meal plan with id {meal_plan_id}")
            return None
        return parse_stored_item(MealPlanModel, item)

    def update_meal_plan(
        self,
        user_id: UserId,
        week_start_date: str,
        patch: UpdateMealPlanInputModel,
    ) -> typing.Optional[MealPlanModel]:
        """
        Read-merge-write of the plan for (user_id, week_start_date). If the patch changes userId or
        weekStartDate, the plan is written under its new key and the old item is removed.
        Concurrent updates race; the later write wins.

        :return: the updated plan, or None if there is no plan for that user and week.
        :raises EntityValidationError: if the merged plan is invalid.
        """
        current = self.get_meal_plan(user_id, week_start_date)
        if current is None:
            return None

        merged = merge_patch(current.model_dump(), patch, MEAL_PLAN_UPDATABLE_FIELDS)
        merged.update(
            id=current.id,
            createdAt=current.createdAt,
            updatedAt=next_timestamp(current.updatedAt, self.clock),
        )
        meal_plan = self._put_meal_plan(validate_entity(MealPlanModel, merged))

        old_key = meal_plan_keys(current.userId, current.weekStartDate).primary_key()
        new_key = meal_plan_keys(meal_plan.userId, meal_plan.weekStartDate).primary_key()
        if old_key != new_key:
            _LOGGER.info(f"Meal plan {meal_plan.id} moved from {old_key[PK]}/{old_key[SK]} to {new_key[PK]}/{new_key[SK]}")
            self._delete_by_key(old_key)

        return meal_plan

    def update_meal_plan_days(
        self,
        user_id: UserId,
        week_start_date: str,
        days: typing.Mapping[str, typing.Union[DayMealsModel, dict[str, typing.Any]]],
    ) -> typing.Optional[MealPlanModel]:
        """
        Replaces the given days of the plan and keeps every other day as stored.

        :return: the updated plan, or None if there is no plan for that user and week.
        """
        current = self.get_meal_plan(user_id, week_start_date)
        if current is None:
            return None

        merged_days = current.model_dump()["days"]
        for day, meals in days.items():
            merged_days[day] = meals.model_dump() if isinstance(meals, DayMealsModel) else meals

        patch = UpdateMealPlanInputModel.model_validate({"days": merged_days})
        return self.update_meal_plan(user_id, week_start_date, patch)

    def _delete_by_key(self, key: dict[str, str]) -> bool:
        try:
            response = self.table.delete_item(Key=key, ReturnValues="ALL_OLD")
        except ClientError as e:
            _LOGGER.error(f"Error deleting meal plan {key[PK]}/{key[SK]}: {e.response['Error']['Message']}", exc_info=True)
            raise
        return bool(response.get("Attributes"))

    def delete_meal_plan(self, user_id: UserId, week_start_date: str) -> bool:
        """:return: True if a plan was deleted, False if there was nothing to delete."""
        deleted = self._delete_by_key(meal_plan_keys(user_id, week_start_date).primary_key())
        _LOGGER.info(f"Delete meal plan {user_id}/{week_start_date}: {'deleted' if deleted else 'not found'}")
        return deleted

    def delete_meal_plan_by_id(self, meal_plan_id: MealPlanId) -> bool:
        """Resolves the plan's key from its id, then deletes it."""
        item = self._find_item_by_id(meal_plan_id)
        if item is None:
            _LOGGER.info(f"Delete meal plan {meal_plan_id}: not found")
            return False
        deleted = self._delete_by_key({PK: item[PK], SK: item[SK]})
        _LOGGER.info(f"Delete meal plan {meal_plan_id}: {'deleted' if deleted else 'not found'}")
        return deleted

    def _query_meal_plans(
        self, description: str, partition: str, limit: int, cursor: typing.Optional[str], **query_kwargs
    ) -> MealPlanPage:
        try:
            items, next_cursor = query_page(self.table, limit=limit, partition=partition, cursor=cursor, **query_kwargs)
        except ClientError as e:
            _LOGGER.error(f"Error listing meal plans {description}: {e.response['Error']['Message']}", exc_info=True)
            raise
        meal_plans = parse_stored_items(MealPlanModel, items)
        _LOGGER.info(f"Listed {len(meal_plans)} meal plans {description}. Has more: {bool(next_cursor)}")
        return meal_plans, next_cursor

    def list_meal_plans_by_user(
        self,
        user_id: UserId,
        limit: int = 4,
        cursor: typing.Optional[str] = None,
    ) -> MealPlanPage:
        """A user's plans, most recent week first."""
        partition = make_key(USER_TAG, user_id, "userId")
        return self._query_meal_plans(
            f"for user {user_id}",
            partition,
            limit,
            cursor,
            KeyConditionExpression=Key(PK).eq(partition)
            & Key(SK).begins_with(prefix(MEALPLAN_TAG)),
            ScanIndexForward=False,
        )

    def list_meal_plans_by_week(
        self,
        week_start_date: str,
        limit: int = 100,
        cursor: typing.Optional[str] = None,
    ) -> MealPlanPage:
        """Every user's plan for one week via GSI1, ordered by user id."""
        partition = make_key(MEALPLAN_TAG, week_start_date, "weekStartDate")
        return self._query_meal_plans(
            f"for week {week_start_date}",
            partition,
            limit,
            cursor,
            IndexName=GSI1_INDEX_NAME,
            KeyConditionExpression=Key(GSI1PK).eq(partition)
            & Key(GSI1SK).begins_with(prefix(USER_TAG)),
        )

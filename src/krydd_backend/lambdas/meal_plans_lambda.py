import logging
import typing

from krydd_backend.cloudwatch.metrics import MetricsManager
from krydd_backend.dynamodb.keys import KeyEncodingError
from krydd_backend.dynamodb.meal_plans_table import MealPlansTable
from krydd_backend.models.meal_plan_models import (
    CreateMealPlanInputModel,
    ListOfMealPlansResponseModel,
    MealPlanFilterModel,
    MealPlanModel,
    UpdateDaysInputModel,
    UpdateMealPlanInputModel,
    WeekListParamsModel,
)
from krydd_backend.models.validation import EntityValidationError, validate_entity
from krydd_backend.utils.apig_utils import (
    ErrorCode,
    create_error_response,
    create_success_response,
    get_method,
    get_pagination_params,
    get_path,
    get_query_string_parameters,
    get_route_segments,
    get_user_id_from_event,
    parse_event_body,
)
from krydd_backend.utils.aws_env_vars import get_table_name
from krydd_backend.utils.base_types import MealPlanId, UserId
from krydd_backend.utils.pagination import InvalidCursorError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class MealPlansApiHandler:
    def __init__(self, meal_plans_table: MealPlansTable) -> None:
        self.meal_plans_table = meal_plans_table

    def _target_user(self, event: dict, caller: UserId) -> UserId:
        """The `userId` query parameter if given, otherwise the authenticated caller."""
        return UserId(get_query_string_parameters(event).get("userId") or caller)

    def _meal_plan_response(
        self, event: dict, meal_plan: typing.Optional[MealPlanModel], status_code: int = 200
    ) -> dict:
        if meal_plan is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Meal plan not found", event=event)
        return create_success_response(meal_plan.model_dump(exclude_none=True), status_code, event=event)

    def _list_meal_plans(self, event: dict, caller: UserId) -> dict:
        query_params = get_query_string_parameters(event)
        candidate = get_pagination_params(query_params, default_limit=4)
        candidate["userId"] = self._target_user(event, caller)
        plan_filter = validate_entity(MealPlanFilterModel, candidate)

        meal_plans, cursor = self.meal_plans_table.list_meal_plans_by_user(
            UserId(plan_filter.userId), limit=plan_filter.limit, cursor=plan_filter.cursor
        )
        response = ListOfMealPlansResponseModel(mealPlans=meal_plans, cursor=cursor)
        return create_success_response(response.model_dump(exclude_none=True), event=event)

    def _list_week(self, event: dict, week_start: str) -> dict:
        query_params = get_query_string_parameters(event)
        page = validate_entity(WeekListParamsModel, get_pagination_params(query_params, default_limit=100))
        meal_plans, cursor = self.meal_plans_table.list_meal_plans_by_week(
            week_start, limit=page.limit, cursor=page.cursor
        )
        response = ListOfMealPlansResponseModel(mealPlans=meal_plans, cursor=cursor)
        return create_success_response(response.model_dump(exclude_none=True), event=event)

    def _get_meal_plan(self, event: dict, caller: UserId, week_start: str) -> dict:
        meal_plan = self.meal_plans_table.get_meal_plan(self._target_user(event, caller), week_start)
        return self._meal_plan_response(event, meal_plan)

    def _create_meal_plan(self, event: dict) -> dict:
        meal_plan_input = parse_event_body(event, CreateMealPlanInputModel)
        meal_plan = self.meal_plans_table.create_meal_plan(meal_plan_input)
        return self._meal_plan_response(event, meal_plan, 201)

    def _update_meal_plan(self, event: dict, caller: UserId, week_start: str) -> dict:
        patch = parse_event_body(event, UpdateMealPlanInputModel)
        # The plan is located by the body's userId, falling back to the caller.
        user_id = UserId(patch.userId or caller)
        meal_plan = self.meal_plans_table.update_meal_plan(user_id, week_start, patch)
        return self._meal_plan_response(event, meal_plan)

    def _update_days(self, event: dict, caller: UserId, week_start: str) -> dict:
        days_input = parse_event_body(event, UpdateDaysInputModel)
        meal_plan = self.meal_plans_table.update_meal_plan_days(
            self._target_user(event, caller), week_start, days_input.days
        )
        return self._meal_plan_response(event, meal_plan)

    def _delete_meal_plan(self, event: dict, meal_plan_id: MealPlanId) -> dict:
        if not self.meal_plans_table.delete_meal_plan_by_id(meal_plan_id):
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Meal plan not found", event=event)
        return create_success_response({"id": meal_plan_id, "deleted": True}, event=event)

    def handle(self, event: dict) -> dict:
        _LOGGER.info(f"MealPlansApiHandler.handle invoked for path: {get_path(event)}, method: {get_method(event)}")
        caller = get_user_id_from_event(event)
        if not caller:
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)

        http_method = get_method(event).upper()
        segments = get_route_segments(event, "meal-plans")

        try:
            if segments == []:
                if http_method == "GET":
                    return self._list_meal_plans(event, caller)
                if http_method == "POST":
                    return self._create_meal_plan(event)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            if segments is not None and len(segments) == 2 and segments[0] == "week":
                if http_method != "GET":
                    return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)
                return self._list_week(event, segments[1])

            if segments is not None and len(segments) == 2 and segments[1] == "days":
                if http_method != "PATCH":
                    return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)
                return self._update_days(event, caller, segments[0])

            if segments is not None and len(segments) == 1:
                # GET and PUT address a plan by its week, DELETE by its id.
                if http_method == "GET":
                    return self._get_meal_plan(event, caller, segments[0])
                if http_method == "PUT":
                    return self._update_meal_plan(event, caller, segments[0])
                if http_method == "DELETE":
                    return self._delete_meal_plan(event, MealPlanId(segments[0]))
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Route not found", event=event)

        except EntityValidationError as e:
            _LOGGER.info(f"Rejected meal plan request: {e}")
            return create_error_response(ErrorCode.VALIDATION_ERROR, details=e.details(), event=event)
        except (KeyEncodingError, InvalidCursorError) as e:
            _LOGGER.info(f"Rejected meal plan request: {e}")
            return create_error_response(ErrorCode.VALIDATION_ERROR, str(e), event=event)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in MealPlansApiHandler: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)


def meal_plans_lambda_handler(event: dict, context: typing.Any) -> dict:
    _LOGGER.info(f"Global handler. Method: {get_method(event)}, Path: {get_path(event)}")
    metrics_manager = MetricsManager(service="MealPlans")

    try:
        api_handler = MealPlansApiHandler(meal_plans_table=MealPlansTable(get_table_name()))
        return api_handler.handle(event)
    except Exception as e:
        _LOGGER.critical(f"Critical error in global handler setup: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
    finally:
        metrics_manager.flush()

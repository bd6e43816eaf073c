import logging
import typing

from krydd_backend.cloudwatch.metrics import MetricsManager
from krydd_backend.dynamodb.keys import KeyEncodingError
from krydd_backend.dynamodb.user_table import UserTable
from krydd_backend.models.user_models import (
    ListOfUsersResponseModel,
    UserListParamsModel,
    UserModel,
    UserPatchModel,
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
from krydd_backend.utils.pagination import InvalidCursorError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class UserApiHandler:
    def __init__(self, user_table: UserTable) -> None:
        self.user_table = user_table

    def _list_users(self, event: dict) -> dict:
        query_params = get_query_string_parameters(event)
        page = validate_entity(UserListParamsModel, get_pagination_params(query_params, default_limit=50))
        users, cursor = self.user_table.list_users(limit=page.limit, cursor=page.cursor)
        response = ListOfUsersResponseModel(users=users, cursor=cursor)
        return create_success_response(response.model_dump(exclude_none=True), event=event)

    def _get_user(self, event: dict, email: str) -> dict:
        user = self.user_table.get_user(email)
        if user is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "User not found", event=event)
        return create_success_response(user.model_dump(exclude_none=True), event=event)

    def _create_user(self, event: dict) -> dict:
        user = parse_event_body(event, UserModel)
        if self.user_table.get_user(user.email) is not None:
            _LOGGER.info(f"Refusing to create existing user {user.email}")
            return create_error_response(ErrorCode.RESOURCE_CONFLICT, "User already exists", event=event)

        created = self.user_table.create_user(user)
        return create_success_response(created.model_dump(exclude_none=True), 201, event=event)

    def _update_user(self, event: dict, email: str) -> dict:
        patch = parse_event_body(event, UserPatchModel)
        user = self.user_table.update_user(email, patch)
        if user is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "User not found", event=event)
        return create_success_response(user.model_dump(exclude_none=True), event=event)

    def _delete_user(self, event: dict, email: str) -> dict:
        if not self.user_table.delete_user(email):
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "User not found", event=event)
        return create_success_response({"email": email, "deleted": True}, event=event)

    def handle(self, event: dict) -> dict:
        _LOGGER.info(f"UserApiHandler.handle invoked for path: {get_path(event)}, method: {get_method(event)}")
        if not get_user_id_from_event(event):
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)

        http_method = get_method(event).upper()
        segments = get_route_segments(event, "user")

        try:
            if segments == []:
                if http_method == "GET":
                    return self._list_users(event)
                if http_method == "POST":
                    return self._create_user(event)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            if segments is not None and len(segments) == 1:
                email = segments[0]
                if http_method == "GET":
                    return self._get_user(event, email)
                if http_method == "PUT":
                    return self._update_user(event, email)
                if http_method == "DELETE":
                    return self._delete_user(event, email)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Route not found", event=event)

        except EntityValidationError as e:
            _LOGGER.info(f"Rejected user request: {e}")
            return create_error_response(ErrorCode.VALIDATION_ERROR, details=e.details(), event=event)
        except (KeyEncodingError, InvalidCursorError) as e:
            _LOGGER.info(f"Rejected user request: {e}")
            return create_error_response(ErrorCode.VALIDATION_ERROR, str(e), event=event)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in UserApiHandler: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)


def user_lambda_handler(event: dict, context: typing.Any) -> dict:
    _LOGGER.info(f"Global handler. Method: {get_method(event)}, Path: {get_path(event)}")
    metrics_manager = MetricsManager(service="User")

    try:
        api_handler = UserApiHandler(user_table=UserTable(get_table_name()))
        return api_handler.handle(event)
    except Exception as e:
        _LOGGER.critical(f"Critical error in global handler setup: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
    finally:
        metrics_manager.flush()

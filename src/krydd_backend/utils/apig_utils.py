import base64
import enum
import json
import logging
import re
import typing
import urllib.parse

import pydantic

from krydd_backend.models.validation import EntityValidationError, FieldViolation, validate_json
from krydd_backend.utils.base_types import UserId

_LOGGER = logging.getLogger(__name__)


QueryParams = typing.NewType("QueryParams", dict[str, str])


class ErrorCode(enum.Enum):
    """Error codes returned in the `errorCode` field of failed responses, with their HTTP status."""

    VALIDATION_ERROR = ("VALIDATION_ERROR", 400, "Invalid request data")
    AUTHENTICATION_FAILED = ("AUTHENTICATION_FAILED", 401, "Authentication required")
    AUTHORIZATION_FAILED = ("AUTHORIZATION_FAILED", 403, "Access denied")
    RESOURCE_NOT_FOUND = ("RESOURCE_NOT_FOUND", 404, "Resource not found")
    METHOD_NOT_ALLOWED = ("METHOD_NOT_ALLOWED", 405, "Method not allowed")
    RESOURCE_CONFLICT = ("RESOURCE_CONFLICT", 400, "Resource already exists")
    RATE_LIMIT_EXCEEDED = ("RATE_LIMIT_EXCEEDED", 429, "Rate limit exceeded")
    INTERNAL_ERROR = ("INTERNAL_ERROR", 500, "Internal server error")
    AI_SERVICE_UNAVAILABLE = ("AI_SERVICE_UNAVAILABLE", 503, "AI service temporarily unavailable")

    def __init__(self, code: str, status_code: int, default_message: str) -> None:
        self.code = code
        self.status_code = status_code
        self.default_message = default_message


def get_event_body(event: dict) -> bytes:
    if "isBase64Encoded" in event and event["isBase64Encoded"]:
        return base64.b64decode(event["body"])
    else:
        return event["body"].encode("utf-8")


def get_method(event: dict) -> str:
    return event.get("requestContext", {}).get("http", {}).get("method", "UNKNOWN")


def get_path(event: dict) -> str:
    return event.get("requestContext", {}).get("http", {}).get("path", "")


def get_query_string_parameters(event: dict) -> QueryParams:
    return QueryParams(event.get("queryStringParameters") or {})


def get_route_segments(event: dict, resource: str) -> typing.Optional[list[str]]:
    """
    URL-decoded path segments after `resource`, ignoring any stage or base path in front of it:
    '/prod/recipes/author/u1' with resource 'recipes' -> ['author', 'u1'].
    None if `resource` is not in the path.
    """
    segments = [urllib.parse.unquote(segment) for segment in get_path(event).split("/") if segment]
    if resource not in segments:
        return None
    return segments[segments.index(resource) + 1 :]


ModelT = typing.TypeVar("ModelT", bound=pydantic.BaseModel)


def parse_event_body(event: dict, model_cls: type[ModelT]) -> ModelT:
    """
    Validates the JSON request body against `model_cls`.

    :raises EntityValidationError: if the body is missing, is not JSON, or breaks the model's constraints.
    """
    if not event.get("body"):
        raise EntityValidationError(model_cls.__name__, [FieldViolation("body", "Request body is missing")])
    return validate_json(model_cls, get_event_body(event))


def get_pagination_params(query_params: typing.Optional[QueryParams], default_limit: int) -> dict[str, typing.Any]:
    """
    Pulls `limit` and `cursor` out of the query string for a list endpoint. Values are left as strings
    so the endpoint's filter model reports bad input.
    """
    params: dict[str, typing.Any] = {"limit": default_limit}
    if query_params:
        if "limit" in query_params:
            params["limit"] = query_params["limit"]
        if query_params.get("cursor"):
            params["cursor"] = query_params["cursor"]
    return params


def get_user_id_from_event(event: dict[str, typing.Any]) -> typing.Optional[UserId]:
    """
    Extracts user ID from the Lambda event context provided by the custom Lambda Authorizer.
    The authorizer places the decoded JWT payload into the 'lambda' key.
    """
    try:
        user_id = event.get("requestContext", {}).get("authorizer", {}).get("lambda", {}).get("sub")
        if user_id:
            return UserId(str(user_id))

        _LOGGER.warning("User ID ('sub') not found in authorizer's lambda context.")
        return None
    except AttributeError as e:
        _LOGGER.error("Error extracting user_id from event: %s", str(e))
        return None


def get_allowed_origin(event: dict[str, typing.Any]) -> str:
    """
    Validates the Origin header and echoes it back if allowed.

    Allowed Origins:
    - localhost/127.0.0.1 (any port) for local development
    - the Krydd web app hosts (*.krydd.app)

    :returns: The origin if valid, otherwise "null" (which causes browser to deny the response)
    """
    origin = (event.get("headers") or {}).get("origin", "")

    # No origin header (curl, server-to-server)
    if not origin:
        return "*"

    if origin.startswith("http://localhost:") or origin.startswith("http://127.0.0.1:"):
        return origin

    allowed_patterns = [r"^https://([a-z0-9-]+\.)*krydd\.app$"]
    for pattern in allowed_patterns:
        if re.match(pattern, origin):
            return origin

    _LOGGER.warning(f"Origin not in allowed patterns: {origin}")
    return "null"


def format_lambda_response(
    status_code: int,
    body: typing.Any,
    *,
    event: typing.Optional[dict[str, typing.Any]] = None,
    additional_headers: typing.Optional[dict[str, str]] = None,
) -> dict[str, typing.Any]:
    """
    Formats API Gateway proxy responses with CORS headers.
    """
    allowed_origin = get_allowed_origin(event) if event else "*"

    headers = {
        "Content-Type": "application/json",
        "Access-Control-Allow-Origin": allowed_origin,
        "Access-Control-Allow-Headers": "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token",
        "Access-Control-Allow-Methods": "OPTIONS,GET,POST,PUT,PATCH,DELETE",
    }
    if additional_headers:
        headers.update(additional_headers)

    return {
        "statusCode": status_code,
        "headers": headers,
        "body": json.dumps(body) if body is not None else None,
    }


def create_success_response(
    data: typing.Any,
    status_code: int = 200,
    *,
    event: typing.Optional[dict[str, typing.Any]] = None,
) -> dict[str, typing.Any]:
    """Wraps `data` in the {"success": true, "data": ...} envelope."""
    return format_lambda_response(status_code, {"success": True, "data": data}, event=event)


def create_error_response(
    error_code: ErrorCode,
    message: typing.Optional[str] = None,
    *,
    details: typing.Any = None,
    event: typing.Optional[dict[str, typing.Any]] = None,
) -> dict[str, typing.Any]:
    """
    Builds a failed response: {"success": false, "error": ..., "errorCode": ..., "details"?: ...}.
    The message is meant for end users; never pass exception text from the store or the model here.
    """
    body: dict[str, typing.Any] = {
        "success": False,
        "error": message or error_code.default_message,
        "errorCode": error_code.code,
    }
    if details is not None:
        body["details"] = details
    return format_lambda_response(error_code.status_code, body, event=event)

import base64
import json

import pytest

from krydd_backend.models.user_models import UserModel
from krydd_backend.models.validation import EntityValidationError
from krydd_backend.utils.apig_utils import (
    ErrorCode,
    create_error_response,
    create_success_response,
    format_lambda_response,
    get_event_body,
    get_method,
    get_pagination_params,
    get_query_string_parameters,
    get_route_segments,
    get_user_id_from_event,
    parse_event_body,
)


def test_get_event_body_1() -> None:
    event_body = {"body": "hello everyone"}
    assert get_event_body(event_body) == b"hello everyone"


def test_get_event_body_2() -> None:
    event_body = {
        "body": "aGVsbG8gZXZlcnlvbmU=",
        "isBase64Encoded": True,
    }
    assert get_event_body(event_body) == b"hello everyone"


def test_get_method_1() -> None:
    event = {"requestContext": {"http": {"method": "PUT"}}}
    assert get_method(event) == "PUT"


def test_get_method_2() -> None:
    event = {"requestContext": {}}
    assert get_method(event) == "UNKNOWN"


def test_get_query_string_parameters_missing() -> None:
    assert get_query_string_parameters({"queryStringParameters": None}) == {}


def test_get_user_id_from_event_1() -> None:
    event = {"requestContext": {"authorizer": {"lambda": {"sub": "1234"}}}}
    assert get_user_id_from_event(event) == "1234"


def test_get_user_id_from_event_2() -> None:
    event = {"requestContext": {}}
    assert get_user_id_from_event(event) is None


@pytest.mark.parametrize(
    "path, resource, expected",
    [
        ("/recipes", "recipes", []),
        ("/recipes/", "recipes", []),
        ("/recipes/r1", "recipes", ["r1"]),
        ("/prod/recipes/author/u1", "recipes", ["author", "u1"]),
        ("/user/ana%40example.com", "user", ["ana@example.com"]),
        ("/recipes/cuisine/South%20Indian", "recipes", ["cuisine", "South Indian"]),
        ("/meal-plans", "recipes", None),
    ],
)
def test_get_route_segments(path: str, resource: str, expected) -> None:
    event = {"requestContext": {"http": {"path": path}}}
    assert get_route_segments(event, resource) == expected


def test_parse_event_body() -> None:
    event = {"body": json.dumps({"email": "ana@example.com"})}
    assert parse_event_body(event, UserModel) == UserModel(email="ana@example.com")


def test_parse_event_body_base64() -> None:
    event = {"body": base64.b64encode(b'{"email": "ana@example.com"}').decode(), "isBase64Encoded": True}
    assert parse_event_body(event, UserModel).email == "ana@example.com"


def test_parse_event_body_missing() -> None:
    with pytest.raises(EntityValidationError) as exc_info:
        parse_event_body({}, UserModel)
    assert exc_info.value.details() == [{"field": "body", "message": "Request body is missing"}]


def test_get_pagination_params() -> None:
    assert get_pagination_params(None, default_limit=20) == {"limit": 20}
    assert get_pagination_params({"limit": "5", "cursor": "abc", "other": "x"}, default_limit=20) == {
        "limit": "5",
        "cursor": "abc",
    }
    assert get_pagination_params({"cursor": ""}, default_limit=4) == {"limit": 4}


def test_format_lambda_response_1() -> None:
    ret = format_lambda_response(200, {"hey": "there"})
    assert ret["statusCode"] == 200
    assert len(ret["headers"]) == 4
    assert ret["headers"]["Content-Type"] == "application/json"
    assert ret["headers"]["Access-Control-Allow-Origin"] == "*"
    assert ret["headers"]["Access-Control-Allow-Methods"] == "OPTIONS,GET,POST,PUT,PATCH,DELETE"
    assert ret["body"] == '{"hey": "there"}'


def test_format_lambda_response_2() -> None:
    ret = format_lambda_response(200, None, additional_headers={"hi": "you"})
    assert len(ret["headers"]) == 5
    assert ret["headers"]["hi"] == "you"
    assert ret["body"] is None


@pytest.mark.parametrize(
    "origin, allowed",
    [
        ("evil.com", "null"),
        ("https://krydd.app.evil.com", "null"),
        ("https://krydd.app", "https://krydd.app"),
        ("https://www.krydd.app", "https://www.krydd.app"),
        ("http://localhost:5173", "http://localhost:5173"),
        ("http://127.0.0.1:3000", "http://127.0.0.1:3000"),
    ],
)
def test_format_lambda_response_origin(origin: str, allowed: str) -> None:
    ret = format_lambda_response(200, {"hey": "there"}, event={"headers": {"origin": origin}})
    assert ret["headers"]["Access-Control-Allow-Origin"] == allowed


def test_create_success_response() -> None:
    response = create_success_response({"id": "r1"}, 201)
    assert response["statusCode"] == 201
    assert json.loads(response["body"]) == {"success": True, "data": {"id": "r1"}}


def test_create_error_response_1() -> None:
    response = create_error_response(ErrorCode.VALIDATION_ERROR)

    assert response["statusCode"] == 400
    body = json.loads(response["body"])
    assert body == {"success": False, "error": "Invalid request data", "errorCode": "VALIDATION_ERROR"}
    assert "Access-Control-Allow-Origin" in response["headers"]


def test_create_error_response_2() -> None:
    response = create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Recipe not found")

    assert response["statusCode"] == 404
    body = json.loads(response["body"])
    assert body["error"] == "Recipe not found"
    assert body["errorCode"] == "RESOURCE_NOT_FOUND"
    assert "details" not in body


def test_create_error_response_3() -> None:
    details = [{"field": "servings", "message": "Input should be greater than or equal to 1"}]
    response = create_error_response(ErrorCode.VALIDATION_ERROR, details=details)

    body = json.loads(response["body"])
    assert body["details"] == details


@pytest.mark.parametrize(
    "error_code, status_code",
    [
        (ErrorCode.AUTHENTICATION_FAILED, 401),
        (ErrorCode.METHOD_NOT_ALLOWED, 405),
        (ErrorCode.RESOURCE_CONFLICT, 400),
        (ErrorCode.RATE_LIMIT_EXCEEDED, 429),
        (ErrorCode.INTERNAL_ERROR, 500),
        (ErrorCode.AI_SERVICE_UNAVAILABLE, 503),
    ],
)
def test_error_code_status(error_code: ErrorCode, status_code: int) -> None:
    assert create_error_response(error_code)["statusCode"] == status_code

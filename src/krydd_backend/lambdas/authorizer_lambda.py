import logging
import typing

from krydd_backend.cloudwatch.metrics import MetricsManager
from krydd_backend.dynamodb.secrets_table import SecretsTable
from krydd_backend.utils.aws_env_vars import get_aws_region, get_secrets_table_name
from krydd_backend.utils.jwt_utils import JwtWrapper

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

DENY_ALL_RESOURCE = "arn:aws:execute-api:*:*:*/*/*"


def _generate_iam_policy(principal_id: str, effect: str, resource: str, context: dict) -> dict:
    """
    Generates the IAM policy required by API Gateway Lambda authorizers.
    The 'resource' should be the ARN of the API Gateway endpoint.
    """
    return {
        "principalId": principal_id,
        "policyDocument": {
            "Version": "2012-10-17",
            "Statement": [{"Action": "execute-api:Invoke", "Effect": effect, "Resource": resource}],
        },
        "context": context,
    }


def _get_bearer_token(event: dict) -> typing.Optional[str]:
    headers = {name.lower(): value for name, value in (event.get("headers") or {}).items()}
    scheme, _, token = (headers.get("authorization") or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class AuthorizerLambda:
    def __init__(
        self,
        jwt_wrapper: JwtWrapper,
        secrets_table: SecretsTable,
        metrics_manager: MetricsManager,
        region: str,
    ) -> None:
        self.jwt_wrapper = jwt_wrapper
        self.secrets_table = secrets_table
        self.metrics_manager = metrics_manager
        self.region = region

    def _deny(self, resource_arn: str) -> dict:
        self.metrics_manager.put_metric("AuthorizationFailure", 1)
        return _generate_iam_policy("user", "Deny", resource_arn, {})

    def handle(self, event: dict) -> dict:
        try:
            aws_account_id = event["methodArn"].split(":")[4]
            api_id = event["requestContext"]["apiId"]
            stage = event["requestContext"]["stage"]

            # Wildcard over the stage so the cached policy covers every route
            resource_arn = f"arn:aws:execute-api:{self.region}:{aws_account_id}:{api_id}/{stage}/*"
        except (KeyError, IndexError, AttributeError):
            _LOGGER.error("Could not construct resource ARN from event.", exc_info=True)
            return self._deny(DENY_ALL_RESOURCE)

        token = _get_bearer_token(event)
        if token is None:
            _LOGGER.warning("Authorization token missing or malformed.")
            return self._deny(resource_arn)

        try:
            payload = self.jwt_wrapper.verify_token(token, self.secrets_table)
        except Exception as e:
            _LOGGER.error(f"Error during token validation: {e}", exc_info=True)
            return self._deny(resource_arn)

        if not payload or not payload.get("sub"):
            _LOGGER.warning("Token is invalid or expired.")
            return self._deny(resource_arn)

        user_id = str(payload["sub"])
        _LOGGER.info(f"Token validated successfully for user: {user_id}")
        self.metrics_manager.put_metric("AuthorizationSuccess", 1)
        # Downstream handlers read this from requestContext.authorizer.lambda
        return _generate_iam_policy(user_id, "Allow", resource_arn, {"sub": user_id})


def authorizer_lambda_handler(event: dict, context: typing.Any) -> dict:
    """
    Lambda Authorizer for the Krydd API. Validates the bearer JWT in the Authorization header.
    """
    _LOGGER.info("Authorizer lambda handler invoked.")
    metrics_manager = MetricsManager(service="Authorizer")

    try:
        handler = AuthorizerLambda(
            jwt_wrapper=JwtWrapper(),
            secrets_table=SecretsTable(get_secrets_table_name()),
            metrics_manager=metrics_manager,
            region=get_aws_region(),
        )
        return handler.handle(event)
    except Exception as e:
        _LOGGER.critical(f"Critical error in authorizer_lambda_handler: {e}", exc_info=True)
        return _generate_iam_policy("user", "Deny", DENY_ALL_RESOURCE, {})
    finally:
        metrics_manager.flush()

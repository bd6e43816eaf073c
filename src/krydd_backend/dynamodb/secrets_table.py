import logging
import typing

import boto3
from botocore.exceptions import ClientError

_LOGGER = logging.getLogger(__name__)

JWT_SECRET_KEY = "JWT_SECRET"


class SecretsTable:
    """
    Read-only access to the Krydd secrets table.

    Schema:
        - PK: secretKey (String), e.g. "JWT_SECRET"
        - secretValue (String)

    Secrets are provisioned out of band and cached for the lifetime of the Lambda container.
    """

    _cache: typing.ClassVar[dict[str, str]] = {}

    def __init__(self, table_name: str, dynamodb_resource: typing.Any = None) -> None:
        self.client = dynamodb_resource or boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    @classmethod
    def clear_cache(cls) -> None:
        cls._cache.clear()

    def __get_secret(self, secret_key: str) -> str:
        """
        :raises KeyError: if the secret is missing, empty, or the table cannot be read.
        """
        if secret_key in self._cache:
            _LOGGER.debug(f"Returning secret '{secret_key}' from cache.")
            return self._cache[secret_key]

        try:
            _LOGGER.info(f"Fetching secret '{secret_key}' from DynamoDB.")
            response = self.table.get_item(Key={"secretKey": secret_key})
        except ClientError as e:
            _LOGGER.error(f"Error retrieving secret {secret_key}: {e.response['Error']['Message']}")
            raise KeyError(f"Failed to retrieve secret '{secret_key}' from DynamoDB") from e

        item = response.get("Item")
        if not item:
            _LOGGER.error(f"Secret not found: {secret_key}")
            raise KeyError(f"Secret '{secret_key}' not found in secrets table")

        secret_value = item.get("secretValue")
        if not secret_value:
            _LOGGER.error(f"Secret '{secret_key}' has no secretValue field")
            raise KeyError(f"Secret '{secret_key}' has no value in secrets table")

        self._cache[secret_key] = secret_value
        return secret_value

    def get_jwt_secret_key(self) -> str:
        """Signing key of the bearer tokens checked by the API authorizer."""
        return self.__get_secret(JWT_SECRET_KEY)

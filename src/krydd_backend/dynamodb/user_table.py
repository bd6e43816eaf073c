import logging
import typing

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from krydd_backend.dynamodb.item_parsing import parse_stored_item, parse_stored_items, to_stored_item
from krydd_backend.dynamodb.keys import PK, SK, USER_TAG, prefix, user_keys
from krydd_backend.models.user_models import USER_UPDATABLE_FIELDS, UserModel, UserPatchModel, normalize_email
from krydd_backend.models.validation import merge_patch, validate_entity
from krydd_backend.utils.base_types import Cursor
from krydd_backend.utils.pagination import query_page

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class UserTable:
    """
    Data Abstraction Layer for user items in the Krydd table.

    Item layout:
      - PK: USER
      - SK: USER#{email}
    """

    def __init__(self, table_name: str, dynamodb_resource: typing.Any = None) -> None:
        self.client = dynamodb_resource or boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def create_user(self, user: UserModel) -> UserModel:
        """
        Writes the user unconditionally; an existing user with the same email is replaced.
        """
        user = validate_entity(UserModel, user)
        keys = user_keys(user.email)
        try:
            self.table.put_item(Item=to_stored_item(user, keys.as_attributes()))
            _LOGGER.info(f"Saved user {user.email}")
            return user
        except ClientError as e:
            _LOGGER.error(f"Error saving user {user.email}: {e.response['Error']['Message']}", exc_info=True)
            raise

    def get_user(self, email: str) -> typing.Optional[UserModel]:
        _LOGGER.debug(f"Fetching user {email}")
        key_email = normalize_email(email)
        if key_email is None:
            _LOGGER.debug(f"Not a valid email, no user to fetch: {email}")
            return None
        try:
            response = self.table.get_item(Key=user_keys(key_email).primary_key())
        except ClientError as e:
            _LOGGER.error(f"Failed to get user {email}: {e.response['Error']['Message']}")
            raise

        item = response.get("Item")
        if not item:
            _LOGGER.debug(f"No user found for {email}")
            return None
        return parse_stored_item(UserModel, item)

    def update_user(self, email: str, patch: UserPatchModel) -> typing.Optional[UserModel]:
        """
        Applies the fields present in `patch` to the stored user.

        :return: the updated user, or None if there is no user with this email.
        :raises EntityValidationError: if the merged user is invalid.
        """
        current = self.get_user(email)
        if current is None:
            return None

        merged = merge_patch(current.model_dump(), patch, USER_UPDATABLE_FIELDS)
        return self.create_user(validate_entity(UserModel, merged))

    def delete_user(self, email: str) -> bool:
        """:return: True if a user was deleted, False if there was nothing to delete."""
        key_email = normalize_email(email)
        if key_email is None:
            _LOGGER.info(f"Delete user {email}: not a valid email")
            return False
        try:
            response = self.table.delete_item(Key=user_keys(key_email).primary_key(), ReturnValues="ALL_OLD")
        except ClientError as e:
            _LOGGER.error(f"Error deleting user {email}: {e.response['Error']['Message']}", exc_info=True)
            raise

        deleted = bool(response.get("Attributes"))
        _LOGGER.info(f"Delete user {email}: {'deleted' if deleted else 'not found'}")
        return deleted

    def list_users(
        self,
        limit: int = 50,
        cursor: typing.Optional[str] = None,
    ) -> tuple[list[UserModel], typing.Optional[Cursor]]:
        try:
            items, next_cursor = query_page(
                self.table,
                limit=limit,
                partition=USER_TAG,
                cursor=cursor,
                KeyConditionExpression=Key(PK).eq(USER_TAG) & Key(SK).begins_with(prefix(USER_TAG)),
            )
        except ClientError as e:
            _LOGGER.error(f"Error listing users: {e.response['Error']['Message']}", exc_info=True)
            raise
        return parse_stored_items(UserModel, items), next_cursor

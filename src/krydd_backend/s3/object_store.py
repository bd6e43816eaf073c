import logging
import typing

import boto3
from botocore.exceptions import ClientError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

_MISSING_OBJECT_CODES = {"NoSuchKey", "404", "NotFound"}


class ObjectStore:
    """Thin wrapper over the S3 client, used for embedding documents."""

    def __init__(self, s3_client: typing.Any = None) -> None:
        self.client = s3_client or boto3.client("s3")

    def put(self, *, bucket: str, key: str, contents: bytes, content_type: str = "application/json") -> None:
        self.client.put_object(Bucket=bucket, Key=key, Body=contents, ContentType=content_type)

    def get(self, *, bucket: str, key: str) -> typing.Optional[bytes]:
        """:return: the object's bytes, or None if there is no object under `key`."""
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if e.response["Error"]["Code"] in _MISSING_OBJECT_CODES:
                _LOGGER.debug(f"No object at s3://{bucket}/{key}")
                return None
            raise
        return response["Body"].read()

    def delete(self, *, bucket: str, key: str) -> None:
        self.client.delete_object(Bucket=bucket, Key=key)

    def list_keys(self, *, bucket: str, prefix: str) -> list[str]:
        keys: list[str] = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))
        return keys

"""
Pytest configuration and fixtures for all tests.

This file contains fixtures that are automatically available to all test files.
"""

import os
import typing

import boto3
import pytest
from moto import mock_aws

REGION = "us-west-1"
TABLE_NAME = "test-krydd-table"
SECRETS_TABLE_NAME = "test-secrets-table"
VECTOR_BUCKET_NAME = "test-vector-bucket"


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """
    Sets up environment variables required for all tests.

    The fixture uses session scope, as these env vars don't change between tests
    and don't need to be cleaned up (test process is isolated).
    """
    # AWS Configuration
    os.environ["AWS_REGION"] = REGION

    # DynamoDB Table Names
    os.environ["KRYDD_TABLE_NAME"] = TABLE_NAME
    os.environ["SECRETS_TABLE_NAME"] = SECRETS_TABLE_NAME

    # S3
    os.environ["VECTOR_BUCKET_NAME"] = VECTOR_BUCKET_NAME
    os.environ["EMBEDDING_PREFIX"] = "embeddings"

    yield


@pytest.fixture(scope="function")
def aws_credentials() -> typing.Iterator[None]:
    """
    Mocks AWS credentials for moto (AWS mocking library).

    Note: This is different from the AWS_REGION set in setup_test_environment.
    - AWS_REGION: Used by application code via get_aws_region()
    - These credentials: Used by moto for AWS service mocking
    """
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = REGION
    yield
    # Clean up after each test
    del os.environ["AWS_ACCESS_KEY_ID"]
    del os.environ["AWS_SECRET_ACCESS_KEY"]
    del os.environ["AWS_SECURITY_TOKEN"]
    del os.environ["AWS_SESSION_TOKEN"]
    del os.environ["AWS_DEFAULT_REGION"]


@pytest.fixture
def krydd_table(aws_credentials) -> typing.Iterator[typing.Any]:
    """
    Creates the mocked single Krydd table with both global secondary indexes.
    Yields the boto3 DynamoDB resource the tables should be built on.
    """
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name=REGION)
        dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
                {"AttributeName": "GSI1PK", "AttributeType": "S"},
                {"AttributeName": "GSI1SK", "AttributeType": "S"},
                {"AttributeName": "GSI2PK", "AttributeType": "S"},
                {"AttributeName": "GSI2SK", "AttributeType": "S"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": "GSI1",
                    "KeySchema": [
                        {"AttributeName": "GSI1PK", "KeyType": "HASH"},
                        {"AttributeName": "GSI1SK", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                },
                {
                    "IndexName": "GSI2",
                    "KeySchema": [
                        {"AttributeName": "GSI2PK", "KeyType": "HASH"},
                        {"AttributeName": "GSI2SK", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                },
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        yield dynamodb


@pytest.fixture
def vector_bucket(aws_credentials) -> typing.Iterator[typing.Any]:
    """
    Creates the mocked vector bucket. Yields a boto3 S3 client.
    """
    with mock_aws():
        s3_client = boto3.client("s3", region_name=REGION)
        s3_client.create_bucket(
            Bucket=VECTOR_BUCKET_NAME, CreateBucketConfiguration={"LocationConstraint": REGION}
        )
        yield s3_client

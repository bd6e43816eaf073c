import os

DEFAULT_CHAT_MODEL_ID = "anthropic.claude-sonnet-4-5-20250929-v1:0"
DEFAULT_EMBEDDING_MODEL_ID = "amazon.titan-embed-text-v2:0"
DEFAULT_EMBEDDING_PREFIX = "embeddings"


def _get_resource_by_env_var(env_var: str) -> str:
    value = os.environ.get(env_var)
    if not value:
        raise ValueError(f"Missing environment variable: {env_var}")
    return value


def get_aws_region() -> str:
    return _get_resource_by_env_var("AWS_REGION")


def get_table_name() -> str:
    """The single DynamoDB table holding users, recipes and meal plans."""
    return _get_resource_by_env_var("KRYDD_TABLE_NAME")


def get_vector_bucket_name() -> str:
    return _get_resource_by_env_var("VECTOR_BUCKET_NAME")


def get_secrets_table_name() -> str:
    return _get_resource_by_env_var("SECRETS_TABLE_NAME")


def get_chat_model_id() -> str:
    return os.environ.get("CHAT_MODEL_ID") or DEFAULT_CHAT_MODEL_ID


def get_embedding_model_id() -> str:
    return os.environ.get("EMBEDDING_MODEL_ID") or DEFAULT_EMBEDDING_MODEL_ID


def get_embedding_prefix() -> str:
    return (os.environ.get("EMBEDDING_PREFIX") or DEFAULT_EMBEDDING_PREFIX).strip("/")

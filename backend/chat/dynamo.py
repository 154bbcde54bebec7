"""DynamoDB table access"""
import os
from functools import lru_cache
from pathlib import Path

import boto3
from dotenv import load_dotenv

BACKEND_DIR = Path(__file__).parent.parent


def load_local_env(backend_dir: Path = BACKEND_DIR) -> None:
    """
    Expose .env.local (or else .env) to boto3 during local development.

    Settings reads the same files for its own fields; this puts AWS_PROFILE,
    credentials and the like into os.environ where boto3 looks for them.
    Exported variables always win. No-op inside Lambda, where
    AWS_LAMBDA_FUNCTION_NAME is set by the runtime.
    """
    if os.getenv("AWS_LAMBDA_FUNCTION_NAME") is not None:
        return

    env_local = backend_dir / '.env.local'
    env_file = backend_dir / '.env'
    if env_local.exists():
        load_dotenv(env_local)
    elif env_file.exists():
        load_dotenv(env_file)


load_local_env()


@lru_cache(maxsize=1)
def get_dynamodb():
    """
    Shared DynamoDB service resource.

    Created lazily and reused across warm invocations of the same Lambda.
    """
    from config.settings import settings

    return boto3.resource("dynamodb", region_name=settings.AWS_REGION)


def get_table(table_name: str):
    """
    Get a DynamoDB Table resource by name.

    Usage:
        from chat.dynamo import get_table
        from config.settings import settings

        table = get_table(settings.MESSAGES_TABLE)
        table.put_item(Item={...})
    """
    return get_dynamodb().Table(table_name)

import logging
import os
from contextlib import contextmanager

import boto3
from botocore.exceptions import EndpointConnectionError, NoCredentialsError

from devevent.errors import NotConnectedError

logger = logging.getLogger(__name__)

DEFAULT_TABLE_NAME = "DevEvent"

_db_connection = None


def get_table_name():
    return os.getenv("DYNAMODB_TABLE_NAME", DEFAULT_TABLE_NAME)


def create_db_connection():
    return boto3.resource(
        "dynamodb",
        endpoint_url=os.getenv("DYNAMODB_ENDPOINT_URL") or None,
        region_name=os.getenv("AWS_DEFAULT_REGION", "us-east-1"),
        aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID", "fake"),
        aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY", "fake"),
    )


def init_db_connection():
    """Create the process-wide DynamoDB resource once; later calls reuse it."""
    global _db_connection
    if _db_connection is None:
        _db_connection = create_db_connection()
        logger.info("DynamoDB resource initialised (table=%s)", get_table_name())
    return _db_connection


def get_db_connection():
    return init_db_connection()


@contextmanager
def store_errors():
    """Translate connectivity failures from botocore into NotConnectedError."""
    try:
        yield
    except (EndpointConnectionError, NoCredentialsError) as e:
        logger.error("Event store unavailable: %s", e)
        raise NotConnectedError() from e


def cancellation_reasons(error):
    """
    Reason codes of a cancelled TransactWriteItems call, one per transact item.

    Returns None when ``error`` is not a transaction cancellation, and an empty
    list when the store did not report per-item reasons.
    """
    if error.response["Error"]["Code"] != "TransactionCanceledException":
        return None
    return [
        reason.get("Code", "None")
        for reason in error.response.get("CancellationReasons", [])
    ]


def condition_failed(reasons, index):
    return index < len(reasons) and reasons[index] == "ConditionalCheckFailed"

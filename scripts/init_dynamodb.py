import logging
import time

from botocore.exceptions import ClientError

from devevent.database.dynamodb import create_db_connection, get_table_name

logger = logging.getLogger(__name__)


def create_table_if_not_exists(table_name=None, dynamodb=None):
    """Create the single DevEvent table and its timeline GSI if it doesn't exist"""
    table_name = table_name or get_table_name()
    dynamodb = dynamodb or create_db_connection()

    try:
        # Check if table exists
        table = dynamodb.Table(table_name)
        table.table_status
        logger.info("Table %s already exists", table_name)
        return table
    except ClientError as e:
        if e.response["Error"]["Code"] != "ResourceNotFoundException":
            raise

    # Events, slug claims, tag memberships and bookings share one table
    table = dynamodb.create_table(
        TableName=table_name,
        KeySchema=[
            {"AttributeName": "PK", "KeyType": "HASH"},
            {"AttributeName": "SK", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "PK", "AttributeType": "S"},
            {"AttributeName": "SK", "AttributeType": "S"},
            {"AttributeName": "GSI_EventsByCreated_PK", "AttributeType": "S"},
            {"AttributeName": "GSI_EventsByCreated_SK", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
        GlobalSecondaryIndexes=[
            {
                "IndexName": "GSI_EventsByCreated",
                "KeySchema": [
                    {"AttributeName": "GSI_EventsByCreated_PK", "KeyType": "HASH"},
                    {"AttributeName": "GSI_EventsByCreated_SK", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
    )

    logger.info("Creating table %s...", table_name)
    table.wait_until_exists()

    # Wait for GSIs to be active
    while True:
        table.reload()
        gsi_statuses = [gsi["IndexStatus"] for gsi in table.global_secondary_indexes]
        if all(status == "ACTIVE" for status in gsi_statuses):
            break
        time.sleep(1)

    logger.info("Table %s created successfully", table_name)
    return table


def delete_table(table_name=None, dynamodb=None):
    """Delete the DevEvent table"""
    table_name = table_name or get_table_name()
    dynamodb = dynamodb or create_db_connection()

    try:
        table = dynamodb.Table(table_name)
        table.delete()
        table.wait_until_not_exists()
        logger.info("Table %s deleted successfully", table_name)
    except ClientError as e:
        if e.response["Error"]["Code"] != "ResourceNotFoundException":
            raise
        logger.info("Table %s does not exist", table_name)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    create_table_if_not_exists()

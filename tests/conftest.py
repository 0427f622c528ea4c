import pytest
import boto3
from datetime import datetime, timedelta, timezone
from moto import mock_aws
from scripts.init_dynamodb import create_table_if_not_exists

TEST_TABLE_NAME = "DevEvent_Test"


@pytest.fixture
def dynamodb_resource(monkeypatch):
    """In-process DynamoDB with a fresh test table for each test"""
    monkeypatch.delenv("DYNAMODB_ENDPOINT_URL", raising=False)
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")

    with mock_aws():
        resource = boto3.resource("dynamodb", region_name="us-east-1")
        create_table_if_not_exists(TEST_TABLE_NAME, dynamodb=resource)
        yield resource


@pytest.fixture
def clock():
    """Deterministic clock advancing one minute per reading"""
    current = {"moment": datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)}

    def now():
        current["moment"] += timedelta(minutes=1)
        return current["moment"]

    return now


@pytest.fixture
def event_payload():
    """Raw event fields as a route or form would submit them"""

    def make(**overrides):
        payload = {
            "title": "Cloud Native Summit 2026",
            "description": "Two days of talks on running services at scale.",
            "overview": "Kubernetes, serverless and platform engineering.",
            "image": "https://res.cloudinary.com/devevent/image/upload/summit.png",
            "venue": "Moscone Center",
            "location": "San Francisco, CA, USA",
            "date": "June 2, 2026",
            "time": "9:00 AM",
            "mode": "hybrid",
            "audience": "Platform engineers",
            "agenda": ["Keynote", "Workshops", "Networking"],
            "organizer": "CNCF Meetups",
            "tags": ["cloud", "devops"],
        }
        payload.update(overrides)
        return payload

    return make


def count_items(resource, prefix):
    """Number of items in the test table whose PK or SK starts with ``prefix``"""
    table = resource.Table(TEST_TABLE_NAME)
    items = table.scan().get("Items", [])
    return sum(
        1 for item in items if item["PK"].startswith(prefix) or item["SK"].startswith(prefix)
    )

"""
Module: conftest.py
Description: Shared pytest fixtures for email queue processor tests.

Provides reusable fixtures for the mocked queue table, store client,
queue items and a scripted delivery provider. Uses moto for AWS
service mocking to enable fast, isolated unit tests.
"""

import random
from datetime import datetime, timedelta, timezone
from typing import List, Union

import boto3
import pytest
from moto import mock_aws

from email_queue.config.settings import Settings
from email_queue.delivery.retry import RetryPolicy
from email_queue.models.outcome import Delivered, DeliveryOutcome
from email_queue.models.queue_item import QueueItem, QueueStatus
from email_queue.storage.dynamodb import QueueStoreClient

NOW = datetime(2026, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


def create_queue_table(table_name: str, index_name: str = "ClaimIndex"):
    """Create the queue table with the production key schema and claim index."""
    dynamodb = boto3.resource('dynamodb', region_name='us-east-1')
    return dynamodb.create_table(
        TableName=table_name,
        KeySchema=[{'AttributeName': 'id', 'KeyType': 'HASH'}],
        AttributeDefinitions=[
            {'AttributeName': 'id', 'AttributeType': 'S'},
            {'AttributeName': 'status', 'AttributeType': 'S'},
            {'AttributeName': 'next_attempt_at', 'AttributeType': 'S'}
        ],
        GlobalSecondaryIndexes=[
            {
                'IndexName': index_name,
                'KeySchema': [
                    {'AttributeName': 'status', 'KeyType': 'HASH'},
                    {'AttributeName': 'next_attempt_at', 'KeyType': 'RANGE'}
                ],
                'Projection': {'ProjectionType': 'ALL'}
            }
        ],
        BillingMode='PAY_PER_REQUEST'
    )


class ScriptedProvider:
    """
    Email provider that replays a script of outcomes.

    Each entry is returned (or raised, for exceptions) in order; once
    the script runs out, the last entry repeats.
    """

    name = "scripted"

    def __init__(self, *script: Union[DeliveryOutcome, Exception]):
        self.script = list(script) or [Delivered(message_id="msg_default")]
        self.calls: List[str] = []

    async def send(self, item: QueueItem) -> DeliveryOutcome:
        self.calls.append(item.id)
        index = min(len(self.calls) - 1, len(self.script) - 1)
        entry = self.script[index]
        if isinstance(entry, Exception):
            raise entry
        return entry


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def test_settings():
    """
    Provide test configuration settings.

    Disables .env loading for predictable tests.
    """
    return Settings(
        _env_file=None,
        app_version="0.1.0-test",
        stage="test",
        log_level="DEBUG",
        queue_table_name="test-email-queue",
        batch_size=10,
        max_attempts=3,
        base_delay_seconds=30,
        max_delay_seconds=3600,
        run_budget_seconds=30,
        stale_lock_threshold_seconds=600,
        dispatch_concurrency=4
    )


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches real AWS."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def mock_queue_table(aws_credentials, test_settings):
    """
    Create mock DynamoDB queue table.

    Uses moto to mock AWS DynamoDB; the mock stays active for the whole
    test that requests this fixture.
    """
    with mock_aws():
        yield create_queue_table(test_settings.queue_table_name, test_settings.claim_index_name)


@pytest.fixture
def store(test_settings, mock_queue_table):
    """Provide QueueStoreClient bound to the mocked table."""
    return QueueStoreClient(
        table_name=test_settings.queue_table_name,
        index_name=test_settings.claim_index_name,
        region_name='us-east-1'
    )


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def policy():
    """Deterministic retry policy: 3 attempts, 30s base, 1h cap."""
    return RetryPolicy(max_attempts=3, base_delay=30, max_delay=3600, jitter=0.2, rng=random.Random(7))


@pytest.fixture
def make_item():
    """Factory for pending queue items due at NOW."""
    counter = {"n": 0}

    def _make(**overrides) -> QueueItem:
        counter["n"] += 1
        n = counter["n"]
        data = {
            "id": f"eml_{n:012x}",
            "recipient": f"user{n}@example.com",
            "template_ref": "weekly-digest",
            "payload": {"first_name": "Ana", "plan": "smash", "streak": n},
            "status": QueueStatus.PENDING,
            "attempts": 0,
            "max_attempts": 3,
            "next_attempt_at": NOW - timedelta(minutes=5),
            "created_at": NOW - timedelta(hours=1, seconds=-n),
            "updated_at": NOW - timedelta(hours=1, seconds=-n),
        }
        data.update(overrides)
        return QueueItem(**data)

    return _make


@pytest.fixture
def seed(mock_queue_table):
    """Write queue items straight into the mocked table."""

    def _seed(*items: QueueItem) -> None:
        for item in items:
            mock_queue_table.put_item(Item=QueueStoreClient.to_record(item))

    return _seed

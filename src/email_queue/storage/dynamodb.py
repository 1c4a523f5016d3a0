"""
Module: dynamodb.py
Description: DynamoDB client for the durable email queue.

Exposes the conditional operations the processor relies on: a
compare-and-swap claim (pending -> processing under a fresh lock token)
and a finalization guarded by that same token. All cross-invocation
coordination goes through these conditional writes.

Key Components:
- QueueStoreClient: Main client class for queue table operations
- StoreUnavailableError: Raised when the table cannot be reached
- Timestamp helpers: fixed-width UTC strings that sort chronologically

Dependencies: boto3, botocore, pydantic, datetime, json, typing
Author: Email Queue Team
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from email_queue.models.queue_item import ItemTransition, QueueItem, QueueStatus
from email_queue.utils.logger import get_logger

logger = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
_TIMESTAMP_FIELDS = ("next_attempt_at", "created_at", "updated_at", "sent_at")


class StoreUnavailableError(Exception):
    """The queue table could not be read or written."""


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime as a fixed-width UTC string (lexicographic == chronological)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse a string written by format_timestamp()."""
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def _is_condition_failure(error: ClientError) -> bool:
    return error.response['Error']['Code'] == 'ConditionalCheckFailedException'


class QueueStoreClient:
    """
    DynamoDB client for queue item operations.

    The table is keyed by `id`; the claim index (hash `status`, range
    `next_attempt_at`) serves the ordered claim and staleness queries.

    Attributes:
        table_name: Name of the DynamoDB queue table
        index_name: Name of the claim GSI
        dynamodb: boto3 DynamoDB resource
        table: boto3 DynamoDB table resource

    Example:
        >>> store = QueueStoreClient(table_name="email-queue")
        >>> item = await store.try_claim("eml_0a1b2c3d4e5f", token, now)
        >>> await store.finalize(item.id, token, transition, now)
    """

    def __init__(
        self,
        table_name: str,
        index_name: str = "ClaimIndex",
        region_name: Optional[str] = None
    ):
        """
        Initialize queue store client.

        Args:
            table_name: Name of the DynamoDB queue table
            index_name: Name of the claim GSI
            region_name: AWS region (defaults to the boto3 session region)

        Raises:
            ValueError: If table_name is empty or invalid
        """
        if not table_name or not isinstance(table_name, str):
            raise ValueError("table_name must be a non-empty string")

        self.table_name = table_name
        self.index_name = index_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)

        logger.info(
            "Queue store client initialized",
            table_name=table_name,
            index_name=index_name
        )

    @staticmethod
    def to_record(item: QueueItem) -> Dict[str, Any]:
        """Convert a QueueItem into a DynamoDB item."""
        record = item.model_dump()
        record['status'] = item.status.value
        for name in _TIMESTAMP_FIELDS:
            if record.get(name) is not None:
                record[name] = format_timestamp(record[name])
        # JSON string keeps numeric/boolean payload values intact
        record['payload'] = json.dumps(record['payload'])
        # DynamoDB doesn't allow null attributes
        return {k: v for k, v in record.items() if v is not None}

    @staticmethod
    def from_record(record: Dict[str, Any]) -> QueueItem:
        """Convert a DynamoDB item back into a QueueItem."""
        data = dict(record)
        if isinstance(data.get('payload'), str):
            data['payload'] = json.loads(data['payload'])
        for name in _TIMESTAMP_FIELDS:
            if data.get(name) is not None:
                data[name] = parse_timestamp(data[name])
        data['attempts'] = int(data.get('attempts', 0))
        data['max_attempts'] = int(data['max_attempts'])
        data['tags'] = list(data.get('tags', []))
        return QueueItem(**data)

    @staticmethod
    def _parse_record(record: Dict[str, Any]) -> Optional[QueueItem]:
        """Parse one queried row, or log and return None if it is malformed."""
        try:
            return QueueStoreClient.from_record(record)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.error(
                "Skipping malformed queue row",
                item_id=record.get('id'),
                status=record.get('status'),
                error=str(e),
                error_type=type(e).__name__
            )
            return None

    async def put_item(self, item: QueueItem) -> None:
        """
        Store a new queue item.

        Args:
            item: QueueItem to store

        Raises:
            ValueError: If item is invalid or the id already exists
            ClientError: If DynamoDB operation fails
        """
        if not isinstance(item, QueueItem):
            raise ValueError("item must be a QueueItem instance")

        try:
            self.table.put_item(
                Item=self.to_record(item),
                ConditionExpression='attribute_not_exists(#id)',
                ExpressionAttributeNames={'#id': 'id'}
            )
            logger.info(
                "Queue item stored",
                item_id=item.id,
                status=item.status.value,
                table_name=self.table_name
            )

        except ClientError as e:
            if _is_condition_failure(e):
                raise ValueError(f"queue item {item.id} already exists")
            logger.error(
                "Failed to store queue item",
                item_id=item.id,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

    async def get_item(self, item_id: str) -> Optional[QueueItem]:
        """
        Retrieve a queue item by ID.

        Uses a strongly consistent read so callers observe the latest
        conditional write.

        Args:
            item_id: Queue item identifier

        Returns:
            QueueItem if found, None otherwise
        """
        if not item_id or not isinstance(item_id, str):
            raise ValueError("item_id must be a non-empty string")

        try:
            response = self.table.get_item(Key={'id': item_id}, ConsistentRead=True)
        except ClientError as e:
            logger.error(
                "Failed to retrieve queue item",
                item_id=item_id,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        if 'Item' not in response:
            return None
        return self.from_record(response['Item'])

    async def find_eligible(self, now: datetime, limit: int) -> List[QueueItem]:
        """
        List pending items whose next_attempt_at has passed.

        Reads the claim index in ascending next_attempt_at order and
        tie-breaks on created_at. Nothing is mutated; the index is
        eventually consistent, so callers must still claim with
        try_claim().

        Args:
            now: Eligibility cut-off
            limit: Maximum number of candidates

        Returns:
            Candidates ordered by (next_attempt_at, created_at)

        Raises:
            ValueError: If limit is not positive
            StoreUnavailableError: If the index cannot be queried
        """
        if limit <= 0:
            raise ValueError("limit must be a positive integer")

        kwargs: Dict[str, Any] = {
            'IndexName': self.index_name,
            'KeyConditionExpression': '#status = :status AND #next <= :now',
            'ExpressionAttributeNames': {'#status': 'status', '#next': 'next_attempt_at'},
            'ExpressionAttributeValues': {
                ':status': QueueStatus.PENDING.value,
                ':now': format_timestamp(now)
            },
            'ScanIndexForward': True,
            'Limit': limit,
        }
        return await self._query_all(kwargs, limit, "Failed to query claim candidates", complete_ties=True)

    async def find_stale(self, older_than: datetime, limit: int) -> List[QueueItem]:
        """
        List processing items whose last update is older than a cut-off.

        Args:
            older_than: Items updated at or before this time are stale
            limit: Maximum number of items

        Returns:
            Stale processing items

        Raises:
            StoreUnavailableError: If the index cannot be queried
        """
        if limit <= 0:
            raise ValueError("limit must be a positive integer")

        kwargs: Dict[str, Any] = {
            'IndexName': self.index_name,
            'KeyConditionExpression': '#status = :status',
            'FilterExpression': '#updated <= :cutoff',
            'ExpressionAttributeNames': {'#status': 'status', '#updated': 'updated_at'},
            'ExpressionAttributeValues': {
                ':status': QueueStatus.PROCESSING.value,
                ':cutoff': format_timestamp(older_than)
            },
            'ScanIndexForward': True,
            'Limit': limit,
        }
        return await self._query_all(kwargs, limit, "Failed to query stale items")

    async def _query_all(
        self,
        kwargs: Dict[str, Any],
        limit: int,
        failure_message: str,
        complete_ties: bool = False
    ) -> List[QueueItem]:
        """
        Page through a claim index query.

        With complete_ties, reading continues past `limit` until the
        index's next_attempt_at moves beyond the limit-th item, so the
        created_at tie-break sees every item sharing that timestamp.
        Rows that do not parse as queue items are logged and skipped.
        """
        items: List[QueueItem] = []
        try:
            while True:
                response = self.table.query(**kwargs)
                for record in response.get('Items', []):
                    item = self._parse_record(record)
                    if item is not None:
                        items.append(item)
                last_key = response.get('LastEvaluatedKey')
                if not last_key:
                    break
                if len(items) >= limit:
                    if not complete_ties:
                        break
                    # Index order is ascending next_attempt_at
                    if items[-1].next_attempt_at > items[limit - 1].next_attempt_at:
                        break
                kwargs['ExclusiveStartKey'] = last_key

        except ClientError as e:
            logger.error(
                failure_message,
                table_name=self.table_name,
                index_name=self.index_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise StoreUnavailableError(failure_message) from e

        except BotoCoreError as e:
            logger.error(
                failure_message,
                table_name=self.table_name,
                index_name=self.index_name,
                error=str(e)
            )
            raise StoreUnavailableError(failure_message) from e

        items.sort(key=lambda item: (item.next_attempt_at, item.created_at))
        return items[:limit]

    async def try_claim(self, item_id: str, lock_token: str, now: datetime) -> Optional[QueueItem]:
        """
        Atomically move one item from pending to processing.

        The write is conditional on the item still being pending and due,
        so two concurrent claimers can never both succeed for one item.

        Args:
            item_id: Queue item identifier
            lock_token: Fresh token identifying this claim
            now: Claim time (also becomes updated_at)

        Returns:
            The claimed item, or None if another claimer got there first

        Raises:
            StoreUnavailableError: If the conditional write cannot be executed
        """
        if not lock_token:
            raise ValueError("lock_token must be a non-empty string")

        stamp = format_timestamp(now)
        try:
            response = self.table.update_item(
                Key={'id': item_id},
                UpdateExpression='SET #status = :processing, #token = :token, #updated = :now',
                ConditionExpression='#status = :pending AND #next <= :now',
                ExpressionAttributeNames={
                    '#status': 'status',
                    '#token': 'lock_token',
                    '#updated': 'updated_at',
                    '#next': 'next_attempt_at'
                },
                ExpressionAttributeValues={
                    ':processing': QueueStatus.PROCESSING.value,
                    ':pending': QueueStatus.PENDING.value,
                    ':token': lock_token,
                    ':now': stamp
                },
                ReturnValues='ALL_NEW'
            )

        except ClientError as e:
            if _is_condition_failure(e):
                logger.debug("Queue item already claimed", item_id=item_id)
                return None
            logger.error(
                "Failed to claim queue item",
                item_id=item_id,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise StoreUnavailableError(f"claim of {item_id} failed") from e

        except BotoCoreError as e:
            logger.error("Failed to claim queue item", item_id=item_id, error=str(e))
            raise StoreUnavailableError(f"claim of {item_id} failed") from e

        return self.from_record(response['Attributes'])

    async def finalize(
        self,
        item_id: str,
        lock_token: str,
        transition: ItemTransition,
        now: datetime
    ) -> bool:
        """
        Apply a transition to a claimed item, guarded by its lock token.

        The write only happens while the item is still processing under
        `lock_token` and attempts would not decrease. lock_token is
        always removed.

        Args:
            item_id: Queue item identifier
            lock_token: Token assigned when the item was claimed
            transition: Target state
            now: Finalization time (becomes updated_at)

        Returns:
            True if applied, False on a lock conflict (nothing mutated)

        Raises:
            ClientError: If DynamoDB operation fails for another reason
        """
        if not lock_token:
            raise ValueError("lock_token must be a non-empty string")

        names = {
            '#status': 'status',
            '#attempts': 'attempts',
            '#updated': 'updated_at',
            '#token': 'lock_token',
        }
        values: Dict[str, Any] = {
            ':status': transition.status.value,
            ':attempts': transition.attempts,
            ':now': format_timestamp(now),
            ':processing': QueueStatus.PROCESSING.value,
            ':token': lock_token,
        }
        set_parts = ['#status = :status', '#attempts = :attempts', '#updated = :now']
        remove_parts = ['#token']

        if transition.next_attempt_at is not None:
            names['#next'] = 'next_attempt_at'
            values[':next'] = format_timestamp(transition.next_attempt_at)
            set_parts.append('#next = :next')
        if transition.last_error is not None:
            values[':error'] = transition.last_error
            set_parts.append('last_error = :error')
        elif transition.clear_last_error:
            remove_parts.append('last_error')
        if transition.provider_name is not None:
            values[':provider'] = transition.provider_name
            set_parts.append('provider_name = :provider')
        if transition.provider_message_id is not None:
            values[':message_id'] = transition.provider_message_id
            set_parts.append('provider_message_id = :message_id')
        if transition.sent_at is not None:
            values[':sent_at'] = format_timestamp(transition.sent_at)
            set_parts.append('sent_at = :sent_at')

        update_expression = f"SET {', '.join(set_parts)} REMOVE {', '.join(remove_parts)}"

        try:
            self.table.update_item(
                Key={'id': item_id},
                UpdateExpression=update_expression,
                ConditionExpression='#status = :processing AND #token = :token AND #attempts <= :attempts',
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values
            )

        except ClientError as e:
            if _is_condition_failure(e):
                logger.warning(
                    "Finalization skipped: lock token no longer owns item",
                    item_id=item_id,
                    lock_token=lock_token,
                    target_status=transition.status.value
                )
                return False
            logger.error(
                "Failed to finalize queue item",
                item_id=item_id,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        logger.info(
            "Queue item finalized",
            item_id=item_id,
            status=transition.status.value,
            attempts=transition.attempts
        )
        return True

"""
Module: delivery/dispatch.py
Description: Dispatch loop for claimed queue items.

Sends each claimed item through the delivery gateway and finalizes it
with a lock-token-guarded write. Items are independent after claiming:
one item's outcome or finalization failure never affects another.

Key Components:
- plan_transition(): outcome -> state transition mapping
- release_transition(): hands an unsent item back to the queue
- DispatchLoop: bounded-concurrency worker over one claimed batch
- ItemResult: per-item fate reported to the run coordinator

Dependencies: asyncio, pydantic, storage, delivery
Author: Email Queue Team
"""

import asyncio
import time
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence

from pydantic import BaseModel

from email_queue.delivery.gateway import EmailProvider, safe_send
from email_queue.delivery.retry import RetryPolicy
from email_queue.models.outcome import Delivered, DeliveryOutcome, PermanentFailure, TransientFailure
from email_queue.models.queue_item import ItemTransition, QueueItem, QueueStatus, utc_now
from email_queue.storage.dynamodb import QueueStoreClient
from email_queue.utils.logger import get_logger

logger = get_logger(__name__)


class Disposition(str, Enum):
    SENT = "sent"
    REQUEUED = "requeued"
    DEAD = "dead"
    ANOMALY = "anomaly"


_DISPOSITION_BY_STATUS = {
    QueueStatus.SENT: Disposition.SENT,
    QueueStatus.PENDING: Disposition.REQUEUED,
    QueueStatus.DEAD: Disposition.DEAD,
}


class ItemResult(BaseModel):
    """Fate of one claimed item."""

    item_id: str
    disposition: Disposition
    reason: Optional[str] = None
    released: bool = False


def plan_transition(
    item: QueueItem,
    outcome: DeliveryOutcome,
    now: datetime,
    policy: RetryPolicy,
    provider_name: Optional[str] = None
) -> ItemTransition:
    """
    Map a delivery outcome to the item's next state.

    Every dispatch counts as an attempt. Permanent failures go straight
    to dead; transient failures requeue with backoff until attempts
    reach the item's max_attempts.
    """
    attempts = item.attempts + 1

    if isinstance(outcome, Delivered):
        return ItemTransition(
            status=QueueStatus.SENT,
            attempts=attempts,
            clear_last_error=True,
            provider_name=provider_name,
            provider_message_id=outcome.message_id,
            sent_at=now
        )

    if isinstance(outcome, PermanentFailure):
        return ItemTransition(
            status=QueueStatus.DEAD,
            attempts=attempts,
            last_error=outcome.reason,
            provider_name=provider_name
        )

    if isinstance(outcome, TransientFailure):
        if not policy.should_retry(attempts, item.max_attempts):
            return ItemTransition(
                status=QueueStatus.DEAD,
                attempts=attempts,
                last_error=outcome.reason,
                provider_name=provider_name
            )
        return ItemTransition(
            status=QueueStatus.PENDING,
            attempts=attempts,
            next_attempt_at=now + policy.backoff(attempts),
            last_error=outcome.reason,
            provider_name=provider_name
        )

    raise TypeError(f"unknown delivery outcome: {outcome!r}")


def release_transition(item: QueueItem, now: datetime) -> ItemTransition:
    """Return an unsent item to pending, immediately claimable, attempts unchanged."""
    return ItemTransition(
        status=QueueStatus.PENDING,
        attempts=item.attempts,
        next_attempt_at=now
    )


class DispatchLoop:
    """
    Delivers a claimed batch with bounded parallelism.

    Attributes:
        store: Queue store used for finalization
        provider: Delivery backend
        policy: Retry/backoff policy
        concurrency: Maximum in-flight items
    """

    def __init__(
        self,
        store: QueueStoreClient,
        provider: EmailProvider,
        policy: RetryPolicy,
        concurrency: int = 5,
        clock: Callable[[], datetime] = utc_now
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")

        self.store = store
        self.provider = provider
        self.policy = policy
        self.concurrency = concurrency
        self.clock = clock

    async def run(self, items: Sequence[QueueItem], deadline: Optional[float] = None) -> List[ItemResult]:
        """
        Dispatch every item and return one result per item, in input order.

        Args:
            items: Items claimed by this run
            deadline: time.monotonic() value after which remaining items
                are released instead of sent
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def guarded(item: QueueItem) -> ItemResult:
            async with semaphore:
                try:
                    return await self.process_item(item, deadline)
                except Exception as e:
                    logger.error(
                        "Unexpected error dispatching queue item",
                        item_id=item.id,
                        error=str(e),
                        error_type=type(e).__name__
                    )
                    return ItemResult(
                        item_id=item.id,
                        disposition=Disposition.ANOMALY,
                        reason=f"dispatch error: {e}"
                    )

        return list(await asyncio.gather(*(guarded(item) for item in items)))

    async def process_item(self, item: QueueItem, deadline: Optional[float] = None) -> ItemResult:
        """Send one item and persist its new state."""
        if deadline is not None and time.monotonic() >= deadline:
            logger.info("Run budget exhausted, releasing item", item_id=item.id)
            result = await self._finalize(
                item,
                release_transition(item, self.clock()),
                reason="run budget exhausted"
            )
            result.released = result.disposition == Disposition.REQUEUED
            return result

        outcome = await safe_send(self.provider, item)
        now = self.clock()
        transition = plan_transition(
            item,
            outcome,
            now,
            self.policy,
            provider_name=getattr(self.provider, "name", None)
        )

        logger.info(
            "Delivery outcome",
            item_id=item.id,
            outcome=outcome.kind,
            attempts=transition.attempts,
            next_status=transition.status.value
        )

        reason = getattr(outcome, "reason", None)
        return await self._finalize(item, transition, reason=reason)

    async def _finalize(self, item: QueueItem, transition: ItemTransition, reason: Optional[str]) -> ItemResult:
        try:
            applied = await self.store.finalize(item.id, item.lock_token, transition, self.clock())
        except Exception as e:
            logger.error(
                "Finalization failed, item left for reconciliation",
                item_id=item.id,
                target_status=transition.status.value,
                error=str(e)
            )
            return ItemResult(
                item_id=item.id,
                disposition=Disposition.ANOMALY,
                reason=f"finalization failed: {e}"
            )

        if not applied:
            return ItemResult(
                item_id=item.id,
                disposition=Disposition.ANOMALY,
                reason="lock token mismatch"
            )

        return ItemResult(
            item_id=item.id,
            disposition=_DISPOSITION_BY_STATUS[transition.status],
            reason=reason
        )

"""
Module: processing/reconciler.py
Description: Reconciliation sweep for items stuck in processing.

Runs as its own invocation, never inside a processing pass. An item
whose lock has outlived the staleness threshold belonged to a run that
crashed or timed out; the interrupted dispatch counts as an attempt and
the item is requeued with backoff, or moved to dead when out of
attempts. The stale lock token guards the write, so an item finalized
by a late-finishing run in the meantime is left alone.
"""

from datetime import datetime, timedelta
from typing import Callable

from email_queue.delivery.retry import RetryPolicy
from email_queue.models.queue_item import ItemTransition, QueueItem, QueueStatus, utc_now
from email_queue.models.response import ReconcileSummary
from email_queue.storage.dynamodb import QueueStoreClient
from email_queue.utils.logger import get_logger

logger = get_logger(__name__)

STALE_LOCK_ERROR = "lock expired before finalization"


class Reconciler:
    """Recovers processing items whose lock is older than stale_after seconds."""

    def __init__(
        self,
        store: QueueStoreClient,
        policy: RetryPolicy,
        stale_after: float,
        clock: Callable[[], datetime] = utc_now
    ):
        if stale_after <= 0:
            raise ValueError("stale_after must be positive")

        self.store = store
        self.policy = policy
        self.stale_after = stale_after
        self.clock = clock

    def plan(self, item: QueueItem, now: datetime) -> ItemTransition:
        attempts = item.attempts + 1
        if self.policy.should_retry(attempts, item.max_attempts):
            return ItemTransition(
                status=QueueStatus.PENDING,
                attempts=attempts,
                next_attempt_at=now + self.policy.backoff(attempts),
                last_error=STALE_LOCK_ERROR
            )
        return ItemTransition(status=QueueStatus.DEAD, attempts=attempts, last_error=STALE_LOCK_ERROR)

    async def sweep(self, limit: int = 25) -> ReconcileSummary:
        """
        Recover up to `limit` stale processing items.

        Raises:
            StoreUnavailableError: If stale items cannot be listed
        """
        now = self.clock()
        cutoff = now - timedelta(seconds=self.stale_after)
        stale = await self.store.find_stale(cutoff, limit)

        summary = ReconcileSummary(scanned=len(stale))
        for item in stale:
            transition = self.plan(item, now)
            try:
                applied = await self.store.finalize(item.id, item.lock_token, transition, now)
            except Exception as e:
                logger.error("Failed to recover stale item", item_id=item.id, error=str(e))
                summary.errors += 1
                continue

            if not applied:
                summary.conflicts += 1
            elif transition.status == QueueStatus.DEAD:
                summary.dead += 1
            else:
                summary.requeued += 1

        logger.info(
            "Reconciliation sweep completed",
            scanned=summary.scanned,
            requeued=summary.requeued,
            dead=summary.dead,
            conflicts=summary.conflicts,
            errors=summary.errors,
            stale_after_seconds=self.stale_after
        )
        return summary

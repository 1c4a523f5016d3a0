"""
Module: processing/claimer.py
Description: Batch claimer for the email queue.

Reserves up to `limit` eligible items for this invocation. Candidates
come from the claim index; each one is then claimed with its own
conditional write, so an item can only ever be won by one claimer.
"""

import time
from datetime import datetime
from typing import Callable, List, Optional
from uuid import uuid4

from email_queue.models.queue_item import QueueItem, utc_now
from email_queue.storage.dynamodb import QueueStoreClient, StoreUnavailableError
from email_queue.utils.logger import get_logger

logger = get_logger(__name__)


def new_lock_token() -> str:
    return uuid4().hex


class BatchClaimer:
    """
    Claims bounded batches of pending, due queue items.

    Attributes:
        store: Queue store client
        scan_factor: Candidates fetched per requested item, so losing
            races against concurrent claimers still fills the batch
    """

    def __init__(
        self,
        store: QueueStoreClient,
        scan_factor: int = 3,
        clock: Callable[[], datetime] = utc_now,
        token_factory: Callable[[], str] = new_lock_token
    ):
        if scan_factor < 1:
            raise ValueError("scan_factor must be >= 1")

        self.store = store
        self.scan_factor = scan_factor
        self.clock = clock
        self.token_factory = token_factory

    async def claim_batch(self, limit: int, deadline: Optional[float] = None) -> List[QueueItem]:
        """
        Claim up to `limit` items in (next_attempt_at, created_at) order.

        Args:
            limit: Maximum items to claim
            deadline: time.monotonic() value after which no further
                items are claimed

        Returns:
            Items now in processing under fresh lock tokens; possibly empty

        Raises:
            ValueError: If limit is not a positive integer
            StoreUnavailableError: If the store fails before anything was claimed
        """
        if not isinstance(limit, int) or limit < 1:
            raise ValueError("limit must be a positive integer")

        now = self.clock()
        candidates = await self.store.find_eligible(now, limit * self.scan_factor)

        claimed: List[QueueItem] = []
        lost = 0
        for candidate in candidates:
            if len(claimed) >= limit:
                break
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning("Run budget exhausted while claiming", claimed=len(claimed), requested=limit)
                break
            try:
                item = await self.store.try_claim(candidate.id, self.token_factory(), now)
            except StoreUnavailableError:
                if not claimed:
                    raise
                # Keep what is already reserved; it must still be dispatched
                logger.warning(
                    "Store failed mid-claim, continuing with partial batch",
                    claimed=len(claimed),
                    requested=limit
                )
                break
            if item is None:
                lost += 1
                continue
            claimed.append(item)

        logger.info(
            "Batch claimed",
            requested=limit,
            candidates=len(candidates),
            claimed=len(claimed),
            lost_races=lost
        )
        return claimed

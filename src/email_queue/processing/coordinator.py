"""
Module: processing/coordinator.py
Description: Run coordinator for one email queue processing pass.

Each invocation claims at most one batch, dispatches it within the
run budget and returns a summary accounting for every claimed item.
Repeated draining comes from repeated external invocations.

Key Components:
- RunCoordinator: claim -> dispatch -> summarize
- summarize(): folds per-item results into a RunSummary

Dependencies: asyncio, structlog, storage, delivery, processing
Author: Email Queue Team
"""

import time
from datetime import datetime
from typing import Callable, List, Optional, Sequence
from uuid import uuid4

from email_queue.delivery.dispatch import Disposition, DispatchLoop, ItemResult
from email_queue.delivery.gateway import EmailProvider
from email_queue.delivery.retry import RetryPolicy
from email_queue.models.queue_item import QueueItem, utc_now
from email_queue.models.response import Anomaly, RunSummary
from email_queue.processing.claimer import BatchClaimer
from email_queue.storage.dynamodb import QueueStoreClient
from email_queue.utils.logger import get_logger
from email_queue.utils.metrics import MetricsClient

logger = get_logger(__name__)


def new_run_id() -> str:
    return f"run_{uuid4().hex[:12]}"


def summarize(
    run_id: str,
    items: Sequence[QueueItem],
    results: Sequence[ItemResult],
    duration_ms: float
) -> RunSummary:
    """Build the run summary from per-item dispatch results."""
    counts = {disposition: 0 for disposition in Disposition}
    anomalies: List[Anomaly] = []
    for result in results:
        counts[result.disposition] += 1
        if result.disposition == Disposition.ANOMALY:
            anomalies.append(Anomaly(item_id=result.item_id, reason=result.reason or "unknown"))

    return RunSummary(
        run_id=run_id,
        claimed=len(items),
        sent=counts[Disposition.SENT],
        requeued=counts[Disposition.REQUEUED],
        dead=counts[Disposition.DEAD],
        anomalies=anomalies,
        budget_exhausted=any(result.released for result in results),
        duration_ms=round(duration_ms, 3)
    )


class RunCoordinator:
    """
    Orchestrates exactly one processing pass per call.

    Attributes:
        store: Queue store client
        claimer: Batch claimer
        dispatcher: Dispatch loop
        batch_size: Default items claimed per pass
        run_budget: Wall-clock budget in seconds
        metrics: Optional CloudWatch metrics client
    """

    def __init__(
        self,
        store: QueueStoreClient,
        provider: EmailProvider,
        policy: RetryPolicy,
        batch_size: int = 25,
        run_budget: float = 50.0,
        concurrency: int = 5,
        scan_factor: int = 3,
        metrics: Optional[MetricsClient] = None,
        stage: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if run_budget <= 0:
            raise ValueError("run_budget must be positive")

        self.store = store
        self.batch_size = batch_size
        self.run_budget = run_budget
        self.metrics = metrics
        self.stage = stage
        self.clock = clock
        self.claimer = BatchClaimer(store, scan_factor=scan_factor, clock=clock)
        self.dispatcher = DispatchLoop(store, provider, policy, concurrency=concurrency, clock=clock)

    @classmethod
    def from_settings(
        cls,
        settings,
        store: QueueStoreClient,
        provider: EmailProvider,
        metrics: Optional[MetricsClient] = None
    ) -> "RunCoordinator":
        return cls(
            store=store,
            provider=provider,
            policy=RetryPolicy.from_settings(settings),
            batch_size=settings.batch_size,
            run_budget=settings.run_budget_seconds,
            concurrency=settings.dispatch_concurrency,
            scan_factor=settings.claim_scan_factor,
            metrics=metrics,
            stage=settings.stage
        )

    async def run_once(self, batch_size: Optional[int] = None, dry_run: bool = False) -> RunSummary:
        """
        Run one pass: claim a batch, dispatch it, summarize.

        Args:
            batch_size: Override for the configured batch size
            dry_run: Only count eligible items; nothing is claimed or sent

        Returns:
            RunSummary with sent + requeued + dead + len(anomalies) == claimed

        Raises:
            StoreUnavailableError: If nothing could be claimed because the
                store is unreachable
        """
        run_id = new_run_id()
        started = time.monotonic()
        deadline = started + self.run_budget
        limit = batch_size or self.batch_size
        log = logger.bind(run_id=run_id)

        if dry_run:
            eligible = await self.store.find_eligible(self.clock(), limit)
            log.info("Dry run completed", eligible=len(eligible), batch_size=limit)
            return RunSummary(
                run_id=run_id,
                dry_run=True,
                eligible=len(eligible),
                duration_ms=round((time.monotonic() - started) * 1000, 3)
            )

        log.info("Processing run started", batch_size=limit, run_budget_seconds=self.run_budget)

        items = await self.claimer.claim_batch(limit, deadline=deadline)
        results = await self.dispatcher.run(items, deadline=deadline) if items else []

        summary = summarize(run_id, items, results, (time.monotonic() - started) * 1000)
        if summary.accounted != summary.claimed:
            log.error("Run summary does not account for every claimed item",
                      claimed=summary.claimed, accounted=summary.accounted)

        log.info(
            "Processing run completed",
            claimed=summary.claimed,
            sent=summary.sent,
            requeued=summary.requeued,
            dead=summary.dead,
            anomalies=len(summary.anomalies),
            budget_exhausted=summary.budget_exhausted,
            duration_ms=summary.duration_ms
        )
        for anomaly in summary.anomalies:
            log.warning("Queue item anomaly", item_id=anomaly.item_id, reason=anomaly.reason)

        if self.metrics is not None:
            self.metrics.publish_run(summary, stage=self.stage)

        return summary

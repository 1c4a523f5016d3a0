"""
Module: scheduled.py
Description: Lambda entry points for scheduled (EventBridge) invocations.

The schedule invokes handler() to drain one batch and
reconcile_handler() to recover stale processing items. Event overrides
are validated with the same request models as the HTTP trigger. A store
outage is raised so the scheduler records the invocation as failed.
"""

import asyncio
from typing import Any, Dict, Optional

from email_queue.handlers.dependencies import build_coordinator, build_reconciler
from email_queue.models.request import ProcessQueueRequest, ReconcileRequest
from email_queue.utils.logger import get_logger

logger = get_logger(__name__)


def handler(event: Optional[Dict[str, Any]], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for scheduled queue processing.

    Args:
        event: Scheduler event; may carry batchSize and dryRun overrides
        context: Lambda context

    Returns:
        Run summary as a camelCase dictionary

    Raises:
        ValidationError: If the event carries invalid overrides
        StoreUnavailableError: If the queue store cannot be reached
    """
    overrides = ProcessQueueRequest.model_validate(event or {})
    coordinator = build_coordinator()

    logger.info(
        "Scheduled processing run triggered",
        batch_size=overrides.batch_size,
        dry_run=overrides.dry_run
    )

    summary = asyncio.run(coordinator.run_once(batch_size=overrides.batch_size, dry_run=overrides.dry_run))
    return summary.model_dump(by_alias=True, mode='json')


def reconcile_handler(event: Optional[Dict[str, Any]], context: Any) -> Dict[str, Any]:
    """Lambda handler for the scheduled reconciliation sweep."""
    overrides = ReconcileRequest.model_validate(event or {})
    reconciler = build_reconciler()

    logger.info("Scheduled reconciliation triggered", limit=overrides.limit)

    if overrides.limit is not None:
        summary = asyncio.run(reconciler.sweep(limit=overrides.limit))
    else:
        summary = asyncio.run(reconciler.sweep())
    return summary.model_dump(by_alias=True, mode='json')

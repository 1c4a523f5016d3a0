"""
Module: models
Description: Package initialization for Pydantic data models.

This package contains all data models used by the queue processor:
- QueueItem / QueueStatus / ItemTransition: Queue item lifecycle
- Delivered / TransientFailure / PermanentFailure: Delivery outcomes
- ProcessQueueRequest: Optional trigger overrides
- RunSummary / Anomaly: Per-run accounting returned to the caller
"""

from .outcome import Delivered, DeliveryOutcome, PermanentFailure, TransientFailure
from .queue_item import ItemTransition, QueueItem, QueueStatus
from .request import ProcessQueueRequest, ReconcileRequest
from .response import Anomaly, ReconcileSummary, RunSummary

__all__ = [
    "QueueItem",
    "QueueStatus",
    "ItemTransition",
    "Delivered",
    "TransientFailure",
    "PermanentFailure",
    "DeliveryOutcome",
    "ProcessQueueRequest",
    "ReconcileRequest",
    "Anomaly",
    "RunSummary",
    "ReconcileSummary",
]

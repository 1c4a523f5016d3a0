"""
Module: response.py
Description: API response models for the email queue processor.

Defines the run summary returned by a processing pass and the
result of a reconciliation sweep. Field names serialize as camelCase.

Key Components:
- Anomaly: An item whose fate could not be recorded normally
- RunSummary: Accounting of every item claimed by one pass
- ReconcileSummary: Accounting of one reconciliation sweep

Dependencies: pydantic, typing
Author: Email Queue Team
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Anomaly(BaseModel):
    """
    A claimed item whose finalization did not go through.

    Attributes:
        item_id: Queue item identifier
        reason: Why the item could not be finalized
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    item_id: str = Field(..., description="Queue item identifier")
    reason: str = Field(..., description="Why finalization did not go through")


class RunSummary(BaseModel):
    """
    Summary of one processing pass.

    Every claimed item is accounted for exactly once:
    sent + requeued + dead + len(anomalies) == claimed.

    Attributes:
        run_id: Identifier of the pass (appears in logs)
        claimed: Items reserved by this pass
        sent: Items delivered
        requeued: Items returned to pending (retry or budget release)
        dead: Items moved to the dead state
        anomalies: Items whose finalization failed or conflicted
        dry_run: Whether the pass only inspected the queue
        eligible: Claimable items seen by a dry run
        budget_exhausted: Whether the run budget ran out mid-batch
        duration_ms: Wall-clock duration of the pass
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    run_id: str = Field(..., description="Run identifier")
    claimed: int = Field(default=0, ge=0)
    sent: int = Field(default=0, ge=0)
    requeued: int = Field(default=0, ge=0)
    dead: int = Field(default=0, ge=0)
    anomalies: List[Anomaly] = Field(default_factory=list)
    dry_run: bool = Field(default=False)
    eligible: Optional[int] = Field(default=None, ge=0)
    budget_exhausted: bool = Field(default=False)
    duration_ms: float = Field(default=0.0, ge=0)

    @property
    def accounted(self) -> int:
        return self.sent + self.requeued + self.dead + len(self.anomalies)


class ReconcileSummary(BaseModel):
    """Summary of one reconciliation sweep over stale processing items."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    scanned: int = Field(default=0, ge=0)
    requeued: int = Field(default=0, ge=0)
    dead: int = Field(default=0, ge=0)
    conflicts: int = Field(default=0, ge=0)
    errors: int = Field(default=0, ge=0)


class ErrorBody(BaseModel):
    """Error information returned on transport-level failures."""

    code: int
    message: str
    type: str


class ErrorResponse(BaseModel):
    error: ErrorBody

"""
Module: queue_item.py
Description: Queue item data models for the email queue processor.

Defines the QueueItem model (one unit of outbound email work), its
lifecycle states, and ItemTransition, the state change written by
the dispatch loop when it finalizes an item.

Key Components:
- QueueStatus: Enum for queue item lifecycle states
- QueueItem: Core queue item model with lifecycle tracking
- ItemTransition: Target state applied by a guarded finalization

Dependencies: pydantic, datetime, typing, uuid
Author: Email Queue Team
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class QueueStatus(str, Enum):
    """
    Lifecycle states of a queue item.

    pending -> processing -> {sent | pending (retry) | dead}. FAILED only
    describes a failed attempt while the dispatch loop decides between
    requeue and dead; it is never persisted by normal processing.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    DEAD = "dead"

    @property
    def is_terminal(self) -> bool:
        return self in (QueueStatus.SENT, QueueStatus.DEAD)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_item_id() -> str:
    """Generate a queue item id of the form eml_<12 hex chars>."""
    return f"eml_{uuid4().hex[:12]}"


class QueueItem(BaseModel):
    """
    Queue item representing one outbound email.

    recipient, template_ref and payload are opaque to the processor and
    are handed to the delivery provider unmodified.

    Attributes:
        id: Unique, immutable item identifier
        recipient: Destination address
        template_ref: Provider-side template reference
        payload: Template data
        status: Lifecycle state
        attempts: Dispatch attempts made so far (only increases)
        max_attempts: Ceiling at which the item is moved to dead
        next_attempt_at: Item is not claimable before this time
        lock_token: Token written by the claim that owns a processing item
        last_error: Last failure description
        created_at: Creation timestamp
        updated_at: Last mutation timestamp
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(..., min_length=1, max_length=128, description="Unique item identifier")
    recipient: str = Field(..., min_length=1, max_length=320, description="Destination address")
    template_ref: str = Field(..., min_length=1, max_length=200, description="Template reference")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Template data")
    status: QueueStatus = Field(default=QueueStatus.PENDING, description="Lifecycle state")
    attempts: int = Field(default=0, ge=0, description="Dispatch attempts made so far")
    max_attempts: int = Field(default=5, ge=1, description="Retry ceiling")
    next_attempt_at: datetime = Field(..., description="Earliest time the item may be claimed")
    lock_token: Optional[str] = Field(default=None, description="Owning claim token")
    last_error: Optional[str] = Field(default=None, description="Last failure description")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    # Carried over from the campaign queue
    campaign_id: Optional[str] = Field(default=None, description="Originating campaign")
    tags: List[str] = Field(default_factory=list, description="Provider tags")
    provider_name: Optional[str] = Field(default=None, description="Provider that accepted the message")
    provider_message_id: Optional[str] = Field(default=None, description="Provider message id")
    sent_at: Optional[datetime] = Field(default=None, description="Delivery timestamp")

    @model_validator(mode='after')
    def validate_lock(self) -> "QueueItem":
        """A processing item is always owned by a claim."""
        if self.status == QueueStatus.PROCESSING and not self.lock_token:
            raise ValueError("processing items must carry a lock_token")
        return self

    @classmethod
    def create(
        cls,
        recipient: str,
        template_ref: str,
        payload: Optional[Dict[str, Any]] = None,
        max_attempts: Optional[int] = None,
        campaign_id: Optional[str] = None,
        tags: Optional[List[str]] = None,
        now: Optional[datetime] = None,
    ) -> "QueueItem":
        """Build a new pending item, immediately eligible for claiming."""
        if max_attempts is None:
            from email_queue.config.settings import settings
            max_attempts = settings.max_attempts
        now = now or utc_now()
        return cls(
            id=generate_item_id(),
            recipient=recipient,
            template_ref=template_ref,
            payload=payload or {},
            max_attempts=max_attempts,
            next_attempt_at=now,
            created_at=now,
            updated_at=now,
            campaign_id=campaign_id,
            tags=tags or [],
        )

    @property
    def attempts_remaining(self) -> int:
        return max(self.max_attempts - self.attempts, 0)


class ItemTransition(BaseModel):
    """
    State change applied when a claimed item is finalized.

    The store applies it only while the item is still processing under
    the claim's lock token; lock_token is always cleared. A None
    last_error leaves the stored value untouched unless
    clear_last_error is set.
    """

    model_config = ConfigDict(frozen=True)

    status: QueueStatus
    attempts: int = Field(..., ge=0)
    next_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    clear_last_error: bool = False
    provider_name: Optional[str] = None
    provider_message_id: Optional[str] = None
    sent_at: Optional[datetime] = None

    @model_validator(mode='after')
    def validate_target(self) -> "ItemTransition":
        if self.status in (QueueStatus.PROCESSING, QueueStatus.FAILED):
            raise ValueError(f"cannot finalize into {self.status.value}")
        if self.status == QueueStatus.PENDING and self.next_attempt_at is None:
            raise ValueError("requeued items need next_attempt_at")
        return self

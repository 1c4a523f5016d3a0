"""
Module: outcome.py
Description: Delivery outcome variants returned by email providers.

Outcomes form a closed set discriminated on `kind` so the dispatch
loop's mapping from outcome to state transition is exhaustive.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Delivered(BaseModel):
    """Provider accepted the message for delivery."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["delivered"] = "delivered"
    message_id: Optional[str] = Field(default=None, description="Provider message id")


class TransientFailure(BaseModel):
    """Retryable failure (timeout, rate limit, 5xx-class)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["transient_failure"] = "transient_failure"
    reason: str = Field(..., description="Failure description")


class PermanentFailure(BaseModel):
    """Non-retryable failure (invalid recipient, rejected content)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["permanent_failure"] = "permanent_failure"
    reason: str = Field(..., description="Failure description")


DeliveryOutcome = Annotated[
    Union[Delivered, TransientFailure, PermanentFailure],
    Field(discriminator="kind"),
]

"""
Module: request.py
Description: API request models for the email queue processor.

Defines the optional request body accepted by the processing trigger.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ProcessQueueRequest(BaseModel):
    """
    Optional overrides for one processing pass.

    Accepts both camelCase (batchSize, dryRun) and snake_case keys.

    Attributes:
        batch_size: Items to claim instead of the configured batch size
        dry_run: Report eligible items without claiming or sending
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore"
    )

    batch_size: Optional[int] = Field(
        default=None,
        ge=1,
        le=100,
        description="Override for the configured batch size"
    )
    dry_run: bool = Field(
        default=False,
        description="Report eligible items without claiming or sending"
    )


class ReconcileRequest(BaseModel):
    """Optional overrides for a reconciliation sweep."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore"
    )

    limit: Optional[int] = Field(
        default=None,
        ge=1,
        le=100,
        description="Maximum stale items to recover"
    )

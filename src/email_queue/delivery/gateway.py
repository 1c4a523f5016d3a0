"""
Module: delivery/gateway.py
Description: Delivery gateway boundary.

Any backend with a `name` and an async `send(item)` returning a
DeliveryOutcome can deliver queue items. safe_send() is the only way
the dispatch loop calls a provider.
"""

from typing import Protocol, runtime_checkable

from email_queue.models.outcome import Delivered, DeliveryOutcome, PermanentFailure, TransientFailure
from email_queue.models.queue_item import QueueItem
from email_queue.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class EmailProvider(Protocol):
    """Capability interface implemented by delivery backends."""

    name: str

    async def send(self, item: QueueItem) -> DeliveryOutcome:
        ...


async def safe_send(provider: EmailProvider, item: QueueItem) -> DeliveryOutcome:
    """
    Invoke a provider, converting unexpected errors into TransientFailure.

    Args:
        provider: Delivery backend
        item: Claimed queue item

    Returns:
        The provider's outcome, or TransientFailure if it raised
    """
    provider_name = getattr(provider, "name", type(provider).__name__)
    try:
        outcome = await provider.send(item)
    except Exception as e:
        logger.error(
            "Uncategorized provider error, treating as transient",
            item_id=item.id,
            provider=provider_name,
            error=str(e),
            error_type=type(e).__name__
        )
        return TransientFailure(reason=f"{type(e).__name__}: {e}"[:500])

    if not isinstance(outcome, (Delivered, TransientFailure, PermanentFailure)):
        logger.error(
            "Provider returned an unknown outcome, treating as transient",
            item_id=item.id,
            provider=provider_name,
            outcome_type=type(outcome).__name__
        )
        return TransientFailure(reason=f"unexpected provider result: {type(outcome).__name__}")
    return outcome

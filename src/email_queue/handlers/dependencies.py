"""
Module: dependencies.py
Description: Component factories shared by the HTTP and scheduled handlers.

Every invocation builds fresh clients; nothing mutable is shared
between invocations.
"""

from typing import Optional

from email_queue.config.settings import settings
from email_queue.delivery.gateway import EmailProvider
from email_queue.delivery.providers import get_email_provider
from email_queue.delivery.retry import RetryPolicy
from email_queue.processing.coordinator import RunCoordinator
from email_queue.processing.reconciler import Reconciler
from email_queue.storage.dynamodb import QueueStoreClient
from email_queue.utils.metrics import MetricsClient


def get_store() -> QueueStoreClient:
    """Queue store client for the configured table."""
    return QueueStoreClient(
        table_name=settings.queue_table_name,
        index_name=settings.claim_index_name,
        region_name=settings.aws_region
    )


def get_provider() -> EmailProvider:
    """Delivery backend selected by settings.email_provider."""
    return get_email_provider(settings)


def get_metrics_client() -> Optional[MetricsClient]:
    """CloudWatch metrics client, or None when metrics are disabled."""
    if not settings.metrics_enabled:
        return None
    return MetricsClient(namespace=settings.metrics_namespace, region_name=settings.aws_region)


def build_coordinator(
    store: Optional[QueueStoreClient] = None,
    provider: Optional[EmailProvider] = None,
    metrics: Optional[MetricsClient] = None
) -> RunCoordinator:
    return RunCoordinator.from_settings(
        settings,
        store=store or get_store(),
        provider=provider or get_provider(),
        metrics=metrics if metrics is not None else get_metrics_client()
    )


def build_reconciler(store: Optional[QueueStoreClient] = None) -> Reconciler:
    return Reconciler(
        store=store or get_store(),
        policy=RetryPolicy.from_settings(settings),
        stale_after=settings.stale_lock_threshold_seconds
    )

"""
Module: delivery/providers.py
Description: Email provider implementations.

DummyEmailProvider simulates delivery without sending anything.
HttpEmailProvider pushes one message to an HTTP email API and maps the
response onto the delivered / transient / permanent outcomes.
"""

import asyncio
import time
from uuid import uuid4

import httpx

from email_queue.delivery.gateway import EmailProvider
from email_queue.models.outcome import Delivered, DeliveryOutcome, PermanentFailure, TransientFailure
from email_queue.models.queue_item import QueueItem
from email_queue.utils.logger import get_logger

logger = get_logger(__name__)

# Client errors worth retrying: timeout, conflict, too early, rate limit
RETRYABLE_STATUS_CODES = frozenset({408, 409, 425, 429})


class DummyEmailProvider:
    """Simulates sending; every message is reported as delivered."""

    name = "dummy"

    def __init__(self, delay_seconds: float = 0.05):
        self.delay_seconds = delay_seconds

    async def send(self, item: QueueItem) -> DeliveryOutcome:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        logger.info(
            "Dummy provider would send email",
            item_id=item.id,
            recipient=item.recipient,
            template_ref=item.template_ref
        )
        return Delivered(message_id=f"dummy-{int(time.time() * 1000)}-{uuid4().hex[:7]}")


class HttpEmailProvider:
    """
    HTTP client for an email delivery API.

    Sends one message per request with bearer authentication. The queue
    item id doubles as the Idempotency-Key so a retried request for the
    same item is not delivered twice by providers that honor it.
    """

    name = "http"

    def __init__(self, api_url: str, api_key: str, sender: str, timeout_seconds: int = 10):
        """
        Initialize HTTP email provider.

        Args:
            api_url: Send endpoint of the provider
            api_key: Bearer token
            sender: From address
            timeout_seconds: HTTP timeout in seconds

        Raises:
            ValueError: If api_url is invalid
        """
        if not api_url or not isinstance(api_url, str):
            raise ValueError("api_url must be a non-empty string")
        if not api_url.startswith(('http://', 'https://')):
            raise ValueError("api_url must be a valid HTTP/HTTPS URL")

        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = httpx.Timeout(timeout_seconds, connect=timeout_seconds)

        logger.info(
            "HTTP email provider initialized",
            api_url=api_url,
            timeout_seconds=timeout_seconds
        )

    def build_message(self, item: QueueItem) -> dict:
        return {
            'from': self.sender,
            'to': [item.recipient],
            'template': item.template_ref,
            'data': item.payload,
            'tags': item.tags,
        }

    async def send(self, item: QueueItem) -> DeliveryOutcome:
        """
        Deliver one queue item.

        Args:
            item: Claimed queue item

        Returns:
            Delivered on 2xx, TransientFailure on timeouts, network errors,
            408/409/425/429 and 5xx, PermanentFailure on other 4xx
        """
        headers = {
            'Content-Type': 'application/json',
            'Idempotency-Key': item.id,
        }
        if self.api_key:
            headers['Authorization'] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                logger.debug("Attempting email delivery", item_id=item.id, api_url=self.api_url)

                response = await client.post(
                    self.api_url,
                    json=self.build_message(item),
                    headers=headers
                )
                response.raise_for_status()

            except httpx.TimeoutException:
                logger.warning("Email delivery timeout", item_id=item.id, api_url=self.api_url)
                return TransientFailure(reason="provider timeout")

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                body = e.response.text[:500]
                logger.warning(
                    "Email delivery HTTP error",
                    item_id=item.id,
                    status_code=status_code,
                    response=body
                )
                reason = f"HTTP {status_code}: {body}".strip()
                if status_code >= 500 or status_code in RETRYABLE_STATUS_CODES:
                    return TransientFailure(reason=reason)
                return PermanentFailure(reason=reason)

            except httpx.NetworkError as e:
                logger.warning("Email delivery network error", item_id=item.id, error=str(e))
                return TransientFailure(reason=f"network error: {e}")

        message_id = None
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get('id') is not None:
            message_id = str(data['id'])

        logger.info(
            "Email delivered to provider",
            item_id=item.id,
            status_code=response.status_code,
            message_id=message_id,
            response_time_ms=response.elapsed.total_seconds() * 1000
        )
        return Delivered(message_id=message_id)


def get_email_provider(settings) -> EmailProvider:
    """Build the provider selected by settings.email_provider."""
    if settings.email_provider == "http":
        return HttpEmailProvider(
            api_url=settings.email_api_url,
            api_key=settings.email_api_key,
            sender=settings.email_from,
            timeout_seconds=settings.delivery_timeout
        )
    return DummyEmailProvider()

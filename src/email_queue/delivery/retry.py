"""
Module: delivery/retry.py
Description: Retry/backoff policy for failed email deliveries.

Retries are not performed in-process: a failed item goes back to the
queue with a next_attempt_at in the future. This module decides how far
in the future, using tenacity's exponential wait strategy for the
capped curve and a symmetric jitter on top of it.
"""

import random
from datetime import timedelta
from typing import Optional

from tenacity import RetryCallState, wait_exponential


class RetryPolicy:
    """
    Exponential backoff with a cap and +/- jitter.

    backoff(n) = min(base_delay * 2^(n-1), max_delay) * (1 + U(-jitter, +jitter))

    Attributes:
        max_attempts: Default retry ceiling for items without their own
        base_delay: Delay after the first failed attempt (seconds)
        max_delay: Cap on a single delay before jitter (seconds)
        jitter: Relative jitter, 0.2 means +/-20%
    """

    def __init__(
        self,
        max_attempts: int,
        base_delay: float,
        max_delay: float,
        jitter: float = 0.2,
        rng: Optional[random.Random] = None
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if max_delay < base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if not 0 <= jitter < 1:
            raise ValueError("jitter must be in [0, 1)")

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._rng = rng or random.Random()
        self._wait = wait_exponential(multiplier=base_delay, min=0, max=max_delay)

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.base_delay_seconds,
            max_delay=settings.max_delay_seconds,
            jitter=settings.backoff_jitter
        )

    def base_backoff(self, attempt_number: int) -> timedelta:
        """Capped exponential delay for attempt_number, before jitter."""
        if attempt_number < 1:
            raise ValueError("attempt_number must be >= 1")

        state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
        state.attempt_number = attempt_number
        return timedelta(seconds=self._wait(state))

    def backoff(self, attempt_number: int) -> timedelta:
        """Delay before the item becomes claimable again after attempt_number failed."""
        delay = self.base_backoff(attempt_number).total_seconds()
        factor = 1 + self._rng.uniform(-self.jitter, self.jitter)
        return timedelta(seconds=delay * factor)

    def should_retry(self, attempts: int, max_attempts: Optional[int] = None) -> bool:
        """True while the item has attempts left after `attempts` failures."""
        ceiling = max_attempts if max_attempts is not None else self.max_attempts
        return attempts < ceiling

"""Backoff policy for rate-limited polling and push re-subscription."""

from __future__ import annotations

import random


class RetryPolicy:
    """Exponential backoff retry policy with jitter.

    Provides retry delay calculation using exponential backoff with random
    jitter so that many devices rate-limited together do not resume together.
    """

    def __init__(
        self,
        base_delay_seconds: float = 10.0,
        max_delay_seconds: float = 1800.0,
        jitter_factor: float = 0.1,
    ):
        """Initialize retry policy.

        Args:
            base_delay_seconds: Delay before the first retry
            max_delay_seconds: Maximum delay cap
            jitter_factor: Jitter as fraction of delay (0.1 = 10%)
        """
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.jitter_factor = jitter_factor

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt.

        Formula: min(base * 2 ** attempt, max) + jitter, jitter drawn from
        [0, delay * jitter_factor].

        Args:
            attempt: Retry attempt number (0-indexed, so attempt=0 is first retry)

        Returns:
            Delay in seconds
        """
        delay = min(self.base_delay_seconds * (2 ** max(attempt, 0)), self.max_delay_seconds)
        return delay + random.uniform(0, delay * self.jitter_factor)

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(base_delay={self.base_delay_seconds}s, "
            f"max_delay={self.max_delay_seconds}s, "
            f"jitter_factor={self.jitter_factor})"
        )

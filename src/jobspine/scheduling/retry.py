"""Retry policies for failed job attempts.

A failed attempt is retried while ``attempts < max_attempts``; the delay
before the retry becomes the job's new ``next_run_at``.  ``attempts``
counts execution starts (it is incremented at claim time), so after the
first failure the delay is computed from ``attempts == 1``.

Example:
    >>> from jobspine.scheduling.retry import ExponentialBackoff
    >>>
    >>> policy = ExponentialBackoff(base_delay=1.0, max_delay=60.0, jitter=False)
    >>> [policy.next_delay(attempts) for attempts in range(1, 5)]
    [2.0, 4.0, 8.0, 16.0]
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass

from jobspine.core.models import RetryConfig


class RetryPolicy(ABC):
    """Abstract base for retry policies."""

    @abstractmethod
    def next_delay(self, attempts: int) -> float:
        """Calculate delay before the next attempt.

        Args:
            attempts: Execution starts so far, including the failed one

        Returns:
            Delay in seconds before next attempt
        """
        ...

    def should_retry(self, attempts: int, max_attempts: int) -> bool:
        """True while the job has attempts left."""
        return attempts < max_attempts


@dataclass
class FixedDelay(RetryPolicy):
    """Constant delay between attempts."""

    delay: float = 1.0

    def next_delay(self, attempts: int) -> float:
        return self.delay


@dataclass
class ExponentialBackoff(RetryPolicy):
    """Exponential backoff with optional jitter.

    Delay = min(base_delay * (multiplier ** attempts), max_delay) +/- jitter

    Attributes:
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap in seconds (None = uncapped)
        multiplier: Exponential multiplier (default: 2)
        jitter: Add randomness to prevent thundering herd
        jitter_range: Range of jitter as fraction of delay (0.0-1.0)
    """

    base_delay: float = 1.0
    max_delay: float | None = 3600.0
    multiplier: float = 2.0
    jitter: bool = False
    jitter_range: float = 0.25

    def next_delay(self, attempts: int) -> float:
        delay = self.base_delay * (self.multiplier ** max(0, attempts))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)

        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay += random.uniform(-jitter_amount, jitter_amount)
            delay = max(0, delay)

        return delay


@dataclass
class NoRetry(RetryPolicy):
    """No retry - the first failure is terminal."""

    def next_delay(self, attempts: int) -> float:
        return 0.0

    def should_retry(self, attempts: int, max_attempts: int) -> bool:
        return False


def policy_from_config(config: RetryConfig | None) -> RetryPolicy:
    """Build the policy described by a job's retry options."""
    if config is None:
        return NoRetry()
    if config.backoff == "exponential":
        return ExponentialBackoff(
            base_delay=config.delay_ms / 1000.0,
            max_delay=config.max_delay_ms / 1000.0 if config.max_delay_ms is not None else None,
            multiplier=config.multiplier,
            jitter=config.jitter,
        )
    return FixedDelay(delay=config.delay_ms / 1000.0)


__all__ = [
    "RetryPolicy",
    "FixedDelay",
    "ExponentialBackoff",
    "NoRetry",
    "policy_from_config",
]

"""Bounded exponential backoff around one provider attempt."""

from __future__ import annotations

import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import anyio

from .errors import RateLimitError, SDKError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry a retryable failure.

    ``max_retries`` counts retries, so a call is attempted at most
    ``max_retries + 1`` times. With ``jitter`` each wait is drawn from
    the upper half of the computed delay.
    """

    max_retries: int = 2
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter: bool = True

    def compute_delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (0-based)."""
        delay = min(self.initial_delay * self.backoff_factor**attempt, self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.5, 1.0)  # noqa: S311
        return delay

    def delay_for(self, attempt: int, error: SDKError) -> float:
        delay = self.compute_delay(attempt)
        if isinstance(error, RateLimitError) and error.retry_after is not None:
            delay = max(delay, error.retry_after)
        return delay


async def retry_with_policy(fn: Callable[[], Awaitable[T]], policy: RetryPolicy) -> T:
    """Await ``fn()`` until it succeeds or fails for good.

    Non-retryable errors propagate at once; the last retryable error
    propagates when the retry budget is spent.
    """
    if policy.max_retries < 0:
        raise ValueError(f"max_retries must be >= 0, got {policy.max_retries}")

    attempt = 0
    while True:
        try:
            return await fn()
        except SDKError as exc:
            if not exc.retryable or attempt == policy.max_retries:
                raise
            delay = policy.delay_for(attempt, exc)
            attempt += 1
            logger.warning(
                "Provider call failed with %s (%s); retry %d/%d in %.2fs",
                type(exc).__name__,
                exc,
                attempt,
                policy.max_retries,
                delay,
            )
            await anyio.sleep(delay)

"""
Retry with exponential backoff and jitter for external calls (LLM, media).
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from nodeflow import config
from nodeflow.services.node_errors import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    min_delay: float = 1.0
    max_delay: float = 10.0
    factor: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry following `attempt` (0-based), with up to 10% jitter."""
        delay = min(self.min_delay * (self.factor ** attempt), self.max_delay)
        if delay <= 0:
            return 0.0
        return min(delay + random.uniform(0, delay * 0.1), self.max_delay)


def get_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.retry_max_attempts(),
        min_delay=config.retry_min_delay_seconds(),
        max_delay=config.retry_max_delay_seconds(),
    )


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    label: str,
    policy: RetryPolicy | None = None,
) -> T:
    """
    Await `fn()` up to `policy.max_attempts` times.

    Non-retryable errors (bad input, deadlines) propagate immediately; the last
    error propagates once the budget is spent.
    """
    policy = policy or get_retry_policy()
    attempts = max(1, policy.max_attempts)

    for attempt in range(attempts):
        try:
            return await fn()
        except Exception as e:
            if not is_retryable(e) or attempt == attempts - 1:
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                label,
                attempt + 1,
                attempts,
                e,
                delay,
            )
            await asyncio.sleep(delay)

    raise RuntimeError(f"{label} failed after retries")

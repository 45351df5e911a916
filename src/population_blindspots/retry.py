"""Exponential backoff retry for transient Gemini API errors.

Whether an error is transient is decided by :mod:`population_blindspots.errors`,
so the retry loop and the logged ``BackendFailure.retryable`` flag agree.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .errors import describe_failure

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number *attempt* (0-based), with up to 1s of jitter."""
    return min(base_delay * (2 ** attempt) + random.random(), max_delay)


async def with_retry(
    coro_factory: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> T:
    """Execute an async callable, retrying errors categorized as transient.

    Quota, unavailable, network and timeout failures are retried; anything
    else is raised on the first occurrence.

    Args:
        coro_factory: Zero-arg callable that returns a fresh awaitable each attempt.
        max_attempts: Total attempts, including the first.
        base_delay: Delay before the first retry; doubles each attempt.
        max_delay: Upper bound for a single delay.

    Returns:
        The result of the first successful call.

    Raises:
        The last exception if all attempts are exhausted or non-retryable.
    """
    for attempt in range(max_attempts):
        try:
            return await coro_factory()
        except Exception as exc:
            failure = describe_failure(exc)
            if not failure.retryable or attempt == max_attempts - 1:
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "Retry %d/%d after %.1fs [%s]: %s",
                attempt + 1, max_attempts, delay, failure.category, failure.error,
            )
            await asyncio.sleep(delay)
    raise RuntimeError("with_retry requires max_attempts >= 1")

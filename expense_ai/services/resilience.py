"""
Deadline + bounded exponential backoff for calls to external capabilities.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_with_retries(
    fn: Callable[[], Awaitable[T]],
    *,
    label: str,
    attempts: int,
    timeout: float,
    backoff: float,
    backoff_max: float,
    retry_on: tuple[type[BaseException], ...],
) -> T:
    """Await ``fn()`` under *timeout*, retrying *retry_on* errors.

    ``asyncio.TimeoutError`` is always retryable. The last error is re-raised
    once *attempts* are exhausted.
    """
    retryable = retry_on + (asyncio.TimeoutError,)
    delay = backoff
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(fn(), timeout)
        except retryable as exc:
            if attempt == attempts:
                raise
            logger.warning(
                "%s failed (attempt %d/%d): %r; retrying in %.2fs",
                label, attempt, attempts, exc, delay,
            )
            await asyncio.sleep(delay)
            delay = min(delay * 2, backoff_max)

    raise AssertionError("unreachable")

"""Retry logic for rate-limited Notion calls.

This module provides:
- retry_rate_limited: Retry a call on HTTP 429 with linear backoff

Only rate-limit responses are retried. Any other error (validation,
not found, network) propagates on the first failure.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from notionsync.client.errors import RateLimitedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default retry configuration
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0  # seconds, multiplied by the attempt number


async def retry_rate_limited(
    func: Callable[[], Awaitable[T]],
    attempts: int = DEFAULT_RETRY_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
) -> T:
    """Execute a coroutine function, retrying while it is rate limited.

    The n-th retry waits n * base_delay seconds.

    Args:
        func: Zero-argument coroutine function to execute.
        attempts: Total number of attempts (at least 1).
        base_delay: Backoff step in seconds.

    Returns:
        Result of the function.

    Raises:
        RateLimitedError: The error of the final attempt, unchanged.
        Exception: Any other error, immediately.
    """
    attempts = max(attempts, 1)

    for attempt in range(attempts):
        try:
            return await func()
        except RateLimitedError as e:
            if attempt == attempts - 1:
                logger.error(f"Still rate limited after {attempts} attempts: {e}")
                raise

            wait = (attempt + 1) * base_delay
            logger.warning(
                f"Rate limited (attempt {attempt + 1}/{attempts}), "
                f"retrying in {wait:.1f}s..."
            )
            await asyncio.sleep(wait)

    # Should not reach here, but satisfy type checker
    raise RuntimeError("Unexpected retry loop exit")

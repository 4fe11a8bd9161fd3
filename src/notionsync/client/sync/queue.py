"""Request queue serializing all remote calls.

This module provides:
- RequestQueue: FIFO executor running one remote call at a time

Every call to the Notion API goes through a single queue owned by the
daemon. Tasks run strictly in submission order, never concurrently, and
the queue pauses for a fixed delay between the end of one task and the
start of the next. The pause keeps the request rate just under Notion's
limit of three requests per second, so rate-limit responses stay rare.

Usage:
    queue = RequestQueue(delay=0.334)
    page = await queue.enqueue(lambda: client.get("/pages/abc"))
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Notion allows an average of 3 requests per second
DEFAULT_CALL_DELAY = 0.334


class RequestQueue:
    """Serial FIFO executor with pacing between tasks.

    Attributes:
        delay: Seconds to sleep between two consecutive tasks.
    """

    def __init__(self, delay: float = DEFAULT_CALL_DELAY) -> None:
        """Initialize the queue.

        Args:
            delay: Pause between the completion of a task and the next start.
        """
        self._delay = delay
        self._tasks: deque[
            tuple[Callable[[], Awaitable[Any]], asyncio.Future[Any]]
        ] = deque()
        self._drainer: asyncio.Task[None] | None = None

    @property
    def delay(self) -> float:
        """Get the pacing delay."""
        return self._delay

    @property
    def pending(self) -> int:
        """Number of tasks waiting to start."""
        return len(self._tasks)

    @property
    def is_draining(self) -> bool:
        """Check if the drain task is currently running."""
        return self._drainer is not None and not self._drainer.done()

    async def enqueue(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Submit a task and wait for its own result.

        Args:
            fn: Zero-argument coroutine function performing one remote call.

        Returns:
            Whatever the task returned.

        Raises:
            Whatever the task raised.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        self._tasks.append((fn, future))

        if not self.is_draining:
            self._drainer = loop.create_task(self._drain())

        return await future

    async def _drain(self) -> None:
        """Run queued tasks one at a time until the queue is empty."""
        first = True
        while self._tasks:
            if not first:
                await asyncio.sleep(self._delay)
            first = False

            fn, future = self._tasks.popleft()
            if future.cancelled():
                continue

            try:
                result = await fn()
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)

"""Periodic pull of remote changes.

This module provides:
- Poller: Runs a pull pass every few seconds on the asyncio loop

A tick that lands while a push is running does nothing; the next tick
tries again.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from notionsync.client.sync.engine import Reconciler, SyncResult

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30.0  # seconds
POLL_JOB_ID = "remote_poll"


class Poller:
    """Scheduler for the periodic remote pull."""

    def __init__(
        self,
        reconciler: Reconciler,
        interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Initialize the poller.

        Args:
            reconciler: Reconciler running the pull passes.
            interval: Seconds between passes.
        """
        self._reconciler = reconciler
        self._interval = interval
        self._scheduler: AsyncIOScheduler | None = None
        self._current: asyncio.Task[SyncResult | None] | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    async def _poll_job(self) -> None:
        """Job function for the scheduled pull.

        The pass runs in its own task so stopping the scheduler does not
        cancel it halfway.
        """
        if self._current is not None and not self._current.done():
            return
        self._current = asyncio.get_running_loop().create_task(self.run_now())
        await asyncio.shield(self._current)

    def start(self) -> None:
        """Start polling. Must be called from within the running event loop."""
        if self._scheduler is not None:
            return  # Already running

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._poll_job,
            trigger=IntervalTrigger(seconds=self._interval),
            id=POLL_JOB_ID,
            name="Remote poll",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Remote poller started (every %.0fs)", self._interval)

    def stop(self) -> None:
        """Stop polling."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Remote poller stopped")

    async def drain(self) -> None:
        """Wait for a scheduled pass that is still running."""
        if self._current is not None:
            await asyncio.gather(self._current, return_exceptions=True)
            self._current = None

    async def run_now(self) -> SyncResult | None:
        """Run one pull pass immediately (manual trigger).

        Returns:
            The pass result, or None if it failed.
        """
        try:
            result = await self._reconciler.sync_from_remote()
        except Exception:
            logger.exception("Error during remote poll")
            return None

        if result.changed or result.errors:
            logger.info(f"Remote poll: {result.summary()}")
        else:
            logger.debug("Remote poll: no changes")
        return result

"""Coordination between local->remote pushes and remote->local pulls.

This module provides:
- SyncLock: Push counter and pull-write suppression for one daemon

A pull pass must not run while a push is in flight: it could read a page
that is half rewritten and write the truncated content back to disk.
Pull passes check ``is_push_active`` and skip themselves.

A file written by a pull generates a filesystem event. The pull marks the
path before writing, and the watcher ignores events for marked paths.
The mark is held for ``suppress_window`` seconds after the write so the
debounced event arrives while it is still set.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

DEFAULT_SUPPRESS_WINDOW = 2.0  # seconds, matched to the watcher debounce


class SyncLock:
    """Cross-direction exclusion state, one instance per daemon."""

    def __init__(self, suppress_window: float = DEFAULT_SUPPRESS_WINDOW) -> None:
        self._suppress_window = suppress_window
        self._active_pushes = 0
        self._pull_writing: set[str] = set()
        self._pending_clears: dict[str, asyncio.TimerHandle] = {}

    @property
    def suppress_window(self) -> float:
        return self._suppress_window

    @property
    def is_push_active(self) -> bool:
        """True while at least one local->remote sync is running."""
        return self._active_pushes > 0

    @asynccontextmanager
    async def push(self) -> AsyncIterator[None]:
        """Count a local->remote sync for the duration of the block."""
        self._active_pushes += 1
        try:
            yield
        finally:
            self._active_pushes -= 1

    def mark_pull_write(self, rel_path: str) -> None:
        """Mark a path as being written by a pull."""
        handle = self._pending_clears.pop(rel_path, None)
        if handle is not None:
            handle.cancel()
        self._pull_writing.add(rel_path)

    def clear_pull_write(self, rel_path: str) -> None:
        """Unmark a path once the suppression window has passed.

        Must be called from within the running event loop.
        """
        handle = self._pending_clears.pop(rel_path, None)
        if handle is not None:
            handle.cancel()
        loop = asyncio.get_running_loop()
        self._pending_clears[rel_path] = loop.call_later(
            self._suppress_window, self._discard, rel_path
        )

    def _discard(self, rel_path: str) -> None:
        self._pending_clears.pop(rel_path, None)
        self._pull_writing.discard(rel_path)

    def is_pull_writing(self, rel_path: str) -> bool:
        """Check if a path was just written by a pull."""
        return rel_path in self._pull_writing

    def close(self) -> None:
        """Cancel pending clears and drop all marks."""
        for handle in self._pending_clears.values():
            handle.cancel()
        self._pending_clears.clear()
        self._pull_writing.clear()

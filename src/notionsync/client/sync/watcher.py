"""File system watcher pushing local edits to Notion.

This module provides:
- Debouncer: Per-path cancel-and-reschedule timers on the event loop
- PathSyncGuard: One running sync per path, at most one queued rerun
- LocalChangeHandler: watchdog handler forwarding events to the loop
- FileWatcher: Wires the observer, the debouncer and the reconciler

watchdog delivers events on its observer thread. The handler only hands
them over to the asyncio loop; all sync work runs on the loop.

When a debounced path fires, the file is pushed if it exists and its page
is archived if it does not. A move is therefore a delete of the source
and a change of the destination.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    FileSystemEvent,
    FileSystemEventHandler,
    FileSystemMovedEvent,
)
from watchdog.observers import Observer

from notionsync.client.sync.scanner import IGNORED_NAMES, is_tracked_file, to_relative

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

    from notionsync.client.sync.engine import Reconciler

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_DELAY = 1.0  # seconds


class Debouncer:
    """Collapses rapid calls for the same key into one delayed callback.

    Each call for a key cancels that key's pending timer and starts a new
    one, so the callback runs ``delay`` seconds after the last call.
    """

    def __init__(self, delay: float = DEFAULT_DEBOUNCE_DELAY) -> None:
        self._delay = delay
        self._timers: dict[str, asyncio.TimerHandle] = {}

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> list[str]:
        """Keys with a scheduled callback."""
        return list(self._timers)

    def schedule(self, key: str, callback: Callable[[], None]) -> None:
        """(Re)schedule the callback of a key. Call from the event loop."""
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()

        def fire() -> None:
            self._timers.pop(key, None)
            callback()

        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(self._delay, fire)

    def cancel_all(self) -> None:
        """Drop every pending callback."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()


class PathSyncGuard:
    """Serializes syncs per path.

    A sync requested while one is running for the same path is remembered
    and run right after it. Further requests replace the remembered one.
    """

    def __init__(self) -> None:
        self._running: set[str] = set()
        self._rerun: dict[str, Callable[[], Awaitable[None]]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def is_running(self, key: str) -> bool:
        return key in self._running

    def has_rerun(self, key: str) -> bool:
        return key in self._rerun

    async def run(self, key: str, fn: Callable[[], Awaitable[None]]) -> None:
        """Run ``fn`` now, or after the sync already running for ``key``."""
        if key in self._running:
            self._rerun[key] = fn
            return

        self._running.add(key)
        try:
            await fn()
            while key in self._rerun:
                await self._rerun.pop(key)()
        finally:
            self._running.discard(key)
            self._rerun.pop(key, None)

    def spawn(self, key: str, fn: Callable[[], Awaitable[None]]) -> asyncio.Task[None]:
        """Start ``run`` as a task tracked until it completes."""
        task = asyncio.get_running_loop().create_task(self.run(key, fn))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every spawned sync to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class LocalChangeHandler(FileSystemEventHandler):
    """Forwards Markdown file events to a callback on the event loop."""

    def __init__(
        self,
        base_path: Path,
        loop: asyncio.AbstractEventLoop,
        on_change: Callable[[str], None],
    ) -> None:
        """Initialize the handler.

        Args:
            base_path: Watched sync root.
            loop: Loop the callback runs on.
            on_change: Called with the relative path of each changed file.
        """
        super().__init__()
        self._base_path = base_path
        self._loop = loop
        self._on_change = on_change

    def _relative(self, raw_path: str | bytes) -> str | None:
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode("utf-8", errors="replace")
        path = Path(raw_path)
        if not is_tracked_file(path):
            return None
        try:
            rel_path = to_relative(self._base_path, path)
        except ValueError:
            logger.warning("Path %s is not relative to %s", path, self._base_path)
            return None
        if IGNORED_NAMES.intersection(rel_path.split("/")):
            return None
        return rel_path

    def _forward(self, raw_path: str | bytes) -> None:
        rel_path = self._relative(raw_path)
        if rel_path is not None:
            self._loop.call_soon_threadsafe(self._on_change, rel_path)

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Handle any event (runs on the observer thread)."""
        if event.is_directory or event.event_type not in (
            "created",
            "modified",
            "deleted",
            "moved",
        ):
            return

        self._forward(event.src_path)
        if isinstance(event, FileSystemMovedEvent):
            self._forward(event.dest_path)


class FileWatcher:
    """Watches the sync root and pushes changed files."""

    def __init__(
        self,
        reconciler: Reconciler,
        debounce_delay: float = DEFAULT_DEBOUNCE_DELAY,
    ) -> None:
        """Initialize the file watcher.

        Args:
            reconciler: Reconciler to push changes with.
            debounce_delay: Quiet time before a changed path is synced.
        """
        self._reconciler = reconciler
        self._watch_path = reconciler.root
        if not self._watch_path.is_dir():
            raise ValueError(f"Watch path must be a directory: {self._watch_path}")

        self._debouncer = Debouncer(debounce_delay)
        self._guard = PathSyncGuard()
        self._observer: BaseObserver | None = None
        self._accepting = True

    @property
    def watch_path(self) -> Path:
        return self._watch_path

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    @property
    def guard(self) -> PathSyncGuard:
        return self._guard

    def on_change(self, rel_path: str) -> None:
        """Handle a changed path on the event loop."""
        if not self._accepting:
            return
        if self._reconciler.lock.is_pull_writing(rel_path):
            logger.debug("Ignoring pull write: %s", rel_path)
            return
        self._debouncer.schedule(rel_path, lambda: self._dispatch(rel_path))

    def _dispatch(self, rel_path: str) -> None:
        if not self._accepting:
            return
        if self._reconciler.lock.is_pull_writing(rel_path):
            logger.debug("Ignoring pull write: %s", rel_path)
            return
        self._guard.spawn(rel_path, lambda: self._sync(rel_path))

    async def _sync(self, rel_path: str) -> None:
        """Push or archive one path."""
        async with self._reconciler.lock.push():
            try:
                if (self._watch_path / rel_path).is_file():
                    await self._reconciler.sync_file(rel_path)
                else:
                    await self._reconciler.sync_delete_file(rel_path)
            except Exception:
                logger.exception(f"Failed to sync {rel_path}")

    def start(self) -> None:
        """Start watching. Must be called from within the running event loop."""
        if self._observer is not None:
            return

        handler = LocalChangeHandler(
            base_path=self._watch_path,
            loop=asyncio.get_running_loop(),
            on_change=self.on_change,
        )
        self._observer = Observer()
        self._observer.schedule(handler, str(self._watch_path), recursive=True)
        self._observer.start()
        self._accepting = True
        logger.info(f"Watching {self._watch_path}")

    def stop(self) -> None:
        """Stop accepting events and drop pending timers."""
        self._accepting = False
        self._debouncer.cancel_all()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None

    async def drain(self) -> None:
        """Wait for in-flight syncs to finish."""
        await self._guard.wait_idle()

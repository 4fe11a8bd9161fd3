"""Tests for the file watcher, debouncing and per-path serialization."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from watchdog.events import (
    DirModifiedEvent,
    FileClosedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from fakes import ROOT_ID, FakeNotion
from notionsync.client.errors import APIError
from notionsync.client.state import StateStore
from notionsync.client.sync.engine import Reconciler
from notionsync.client.sync.lock import SyncLock
from notionsync.client.sync.watcher import (
    DEFAULT_DEBOUNCE_DELAY,
    Debouncer,
    FileWatcher,
    LocalChangeHandler,
    PathSyncGuard,
)


class TestDebouncer:
    """Tests for Debouncer."""

    def test_default_delay(self) -> None:
        """Default debounce is one second."""
        assert Debouncer().delay == DEFAULT_DEBOUNCE_DELAY == 1.0

    @pytest.mark.asyncio
    async def test_rapid_calls_fire_once(self) -> None:
        """Only the last of several quick calls runs."""
        debouncer = Debouncer(delay=0.02)
        fired: list[int] = []

        for n in range(3):
            debouncer.schedule("a.md", lambda n=n: fired.append(n))
            await asyncio.sleep(0.005)

        await asyncio.sleep(0.05)
        assert fired == [2]
        assert debouncer.pending == []

    @pytest.mark.asyncio
    async def test_keys_independent(self) -> None:
        """Each key has its own timer."""
        debouncer = Debouncer(delay=0.01)
        fired: list[str] = []

        debouncer.schedule("a.md", lambda: fired.append("a"))
        debouncer.schedule("b.md", lambda: fired.append("b"))
        assert sorted(debouncer.pending) == ["a.md", "b.md"]

        await asyncio.sleep(0.05)
        assert sorted(fired) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_cancel_all(self) -> None:
        """Cancelled callbacks never run."""
        debouncer = Debouncer(delay=0.01)
        fired: list[str] = []
        debouncer.schedule("a.md", lambda: fired.append("a"))

        debouncer.cancel_all()
        await asyncio.sleep(0.03)

        assert fired == []
        assert debouncer.pending == []


class TestPathSyncGuard:
    """Tests for PathSyncGuard."""

    @pytest.mark.asyncio
    async def test_request_during_run_queued_once(self) -> None:
        """Requests during a run collapse into one rerun with the latest call."""
        guard = PathSyncGuard()
        gate = asyncio.Event()
        calls: list[str] = []

        async def first() -> None:
            calls.append("first")
            await gate.wait()

        def recorder(name: str):  # type: ignore[no-untyped-def]
            async def fn() -> None:
                calls.append(name)

            return fn

        task = guard.spawn("a.md", first)
        await asyncio.sleep(0)
        assert guard.is_running("a.md")

        await guard.run("a.md", recorder("second"))
        await guard.run("a.md", recorder("third"))
        assert guard.has_rerun("a.md")

        gate.set()
        await task

        assert calls == ["first", "third"]
        assert not guard.is_running("a.md")
        assert not guard.has_rerun("a.md")

    @pytest.mark.asyncio
    async def test_paths_run_concurrently(self) -> None:
        """Different paths do not wait on each other."""
        guard = PathSyncGuard()
        gate = asyncio.Event()

        async def blocked() -> None:
            await gate.wait()

        async def opener() -> None:
            gate.set()

        guard.spawn("a.md", blocked)
        guard.spawn("b.md", opener)

        await asyncio.wait_for(guard.wait_idle(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_failure_releases_path(self) -> None:
        """A failing run frees the path for the next request."""
        guard = PathSyncGuard()

        async def fail() -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await guard.run("a.md", fail)

        assert not guard.is_running("a.md")


class TestLocalChangeHandler:
    """Tests for the watchdog event handler."""

    async def _deliver(self, tmp_path: Path, received: list[str], *events) -> list[str]:  # type: ignore[no-untyped-def]
        handler = LocalChangeHandler(tmp_path, asyncio.get_running_loop(), received.append)
        for event in events:
            handler.on_any_event(event)
        await asyncio.sleep(0)
        return received

    @pytest.mark.asyncio
    async def test_markdown_events_forwarded(self, tmp_path: Path) -> None:
        """Created, modified and deleted documents are forwarded."""
        received = await self._deliver(
            tmp_path,
            [],
            FileCreatedEvent(str(tmp_path / "a.md")),
            FileModifiedEvent(str(tmp_path / "sub" / "b.md")),
            FileDeletedEvent(str(tmp_path / "c.md")),
        )

        assert received == ["a.md", "sub/b.md", "c.md"]

    @pytest.mark.asyncio
    async def test_move_forwards_both_paths(self, tmp_path: Path) -> None:
        """A move reports the source and the destination."""
        received = await self._deliver(
            tmp_path, [], FileMovedEvent(str(tmp_path / "old.md"), str(tmp_path / "new.md"))
        )

        assert received == ["old.md", "new.md"]

    @pytest.mark.asyncio
    async def test_filtered_events(self, tmp_path: Path) -> None:
        """Directories, other files, node_modules and non-change events are dropped."""
        received = await self._deliver(
            tmp_path,
            [],
            DirModifiedEvent(str(tmp_path / "sub")),
            FileModifiedEvent(str(tmp_path / "image.png")),
            FileModifiedEvent(str(tmp_path / "node_modules" / "pkg" / "x.md")),
            FileClosedEvent(str(tmp_path / "a.md")),
            FileModifiedEvent(str(tmp_path.parent / "elsewhere.md")),
        )

        assert received == []


@pytest.fixture
def watcher(reconciler: Reconciler) -> FileWatcher:
    """Watcher with a short debounce, not observing the file system."""
    return FileWatcher(reconciler, debounce_delay=0.01)


async def settle(watcher: FileWatcher) -> None:
    await asyncio.sleep(0.05)
    await watcher.drain()


class TestFileWatcher:
    """Tests for FileWatcher."""

    def test_requires_directory(self, tmp_path: Path, notion: FakeNotion) -> None:
        """The sync root must exist."""
        store = StateStore(tmp_path / "missing", ROOT_ID, state_root=tmp_path / "state")
        reconciler = Reconciler(notion, store, SyncLock())  # type: ignore[arg-type]

        with pytest.raises(ValueError, match="must be a directory"):
            FileWatcher(reconciler)

    @pytest.mark.asyncio
    async def test_change_pushed_after_debounce(
        self, watcher: FileWatcher, reconciler: Reconciler, notion: FakeNotion, sync_dir: Path
    ) -> None:
        """A changed file is pushed once the debounce expires."""
        (sync_dir / "a.md").write_text("hello\n", encoding="utf-8")

        watcher.on_change("a.md")
        watcher.on_change("a.md")
        await settle(watcher)

        assert notion.calls["create_page"] == 1
        assert "a.md" in reconciler.state.files

    @pytest.mark.asyncio
    async def test_missing_file_archived(
        self, watcher: FileWatcher, reconciler: Reconciler, notion: FakeNotion, sync_dir: Path
    ) -> None:
        """A path that no longer exists archives its page."""
        path = sync_dir / "a.md"
        path.write_text("hello\n", encoding="utf-8")
        await reconciler.sync_file(path)
        page_id = reconciler.state.files["a.md"].remote_id
        path.unlink()

        watcher.on_change("a.md")
        await settle(watcher)

        assert notion.pages[page_id].archived
        assert "a.md" not in reconciler.state.files

    @pytest.mark.asyncio
    async def test_pull_writes_ignored(
        self, watcher: FileWatcher, reconciler: Reconciler, notion: FakeNotion, sync_dir: Path
    ) -> None:
        """Events for paths a pull just wrote are dropped."""
        (sync_dir / "a.md").write_text("pulled\n", encoding="utf-8")
        reconciler.lock.mark_pull_write("a.md")

        watcher.on_change("a.md")

        assert watcher.debouncer.pending == []
        await settle(watcher)
        assert notion.mutation_count == 0

    @pytest.mark.asyncio
    async def test_sync_holds_push_lock(
        self, watcher: FileWatcher, reconciler: Reconciler, sync_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Pull passes see a push in progress while a file syncs."""
        (sync_dir / "a.md").write_text("x\n", encoding="utf-8")
        seen: list[bool] = []

        async def fake_sync_file(path: str) -> bool:
            seen.append(reconciler.lock.is_push_active)
            return True

        monkeypatch.setattr(reconciler, "sync_file", fake_sync_file)

        watcher.on_change("a.md")
        await settle(watcher)

        assert seen == [True]
        assert not reconciler.lock.is_push_active

    @pytest.mark.asyncio
    async def test_failure_logged_not_raised(
        self,
        watcher: FileWatcher,
        reconciler: Reconciler,
        notion: FakeNotion,
        sync_dir: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A failed push is logged and the watcher keeps going."""
        notion.errors[("create_page", ROOT_ID)] = APIError("server error", 500)
        (sync_dir / "a.md").write_text("x\n", encoding="utf-8")

        watcher.on_change("a.md")
        await settle(watcher)

        assert "Failed to sync a.md" in caplog.text
        assert not reconciler.lock.is_push_active

    @pytest.mark.asyncio
    async def test_stop_drops_pending(
        self, watcher: FileWatcher, notion: FakeNotion, sync_dir: Path
    ) -> None:
        """After stop, pending and new events are ignored."""
        (sync_dir / "a.md").write_text("x\n", encoding="utf-8")
        watcher.on_change("a.md")

        watcher.stop()
        watcher.on_change("a.md")
        await settle(watcher)

        assert notion.mutation_count == 0

    @pytest.mark.asyncio
    async def test_observes_file_system(
        self, reconciler: Reconciler, sync_dir: Path
    ) -> None:
        """A file written after start is picked up by the observer."""
        watcher = FileWatcher(reconciler, debounce_delay=0.05)
        watcher.start()
        assert watcher.is_running
        try:
            (sync_dir / "live.md").write_text("live\n", encoding="utf-8")
            for _ in range(100):
                await asyncio.sleep(0.05)
                if "live.md" in reconciler.state.files:
                    break
        finally:
            watcher.stop()
            await watcher.drain()

        assert "live.md" in reconciler.state.files
        assert not watcher.is_running

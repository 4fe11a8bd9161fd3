"""Shared fixtures for notionsync tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from fakes import ROOT_ID, FakeNotion
from notionsync.client.state import StateStore
from notionsync.client.sync.engine import Reconciler
from notionsync.client.sync.lock import SyncLock


@pytest.fixture
def notion() -> FakeNotion:
    """Fake Notion workspace."""
    return FakeNotion()


@pytest.fixture
def sync_dir(tmp_path: Path) -> Path:
    """Local folder being synced."""
    path = tmp_path / "notes"
    path.mkdir()
    return path


@pytest.fixture
def store(tmp_path: Path, sync_dir: Path) -> StateStore:
    """State store kept under the test's temp directory."""
    return StateStore(sync_dir, ROOT_ID, state_root=tmp_path / "state")


@pytest.fixture
def lock() -> SyncLock:
    """Sync lock with a short suppression window."""
    return SyncLock(suppress_window=0.05)


@pytest.fixture
def reconciler(notion: FakeNotion, store: StateStore, lock: SyncLock) -> Reconciler:
    """Reconciler wired to the fake workspace."""
    return Reconciler(notion, store, lock)  # type: ignore[arg-type]

"""Persisted sync state for one sync target.

This module provides:
- FileState / DirState: What we know about a synced file or folder
- SyncState: All tracked paths of a (root page, local folder) pair
- StateStore: JSON persistence and the daemon's pid file

Layout on disk:
    ~/.notion-sync/<key>/state.json
    ~/.notion-sync/<key>/daemon.pid
    ~/.notion-sync/<key>/notionsync.log

where <key> is a short hash of the root page id and the absolute folder
path, so each target gets its own directory.

A missing state file means a fresh start. A state file that exists but
cannot be parsed is an error: silently starting over would make the next
push create duplicate pages for every file.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from notionsync.core.config import DEFAULT_STATE_ROOT
from notionsync.core.hashing import state_key

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.json"
PID_FILENAME = "daemon.pid"
LOG_FILENAME = "notionsync.log"


class StateError(Exception):
    """The persisted state file is unreadable."""


def utc_now() -> str:
    """Current time as an ISO 8601 UTC string."""
    return datetime.now(UTC).isoformat()


@dataclass
class FileState:
    """A file synced with a Notion page.

    Attributes:
        remote_id: Id of the Notion page holding the file's content.
        content_hash: SHA-256 of the local content last synced.
        local_mtime: File mtime when last synced (fast-path fingerprint).
        local_size: File size when last synced (fast-path fingerprint).
        remote_last_edited: Page ``last_edited_time`` after our last sync.
        last_synced_at: When the file was last synced.
    """

    remote_id: str
    content_hash: str
    remote_last_edited: str
    local_mtime: float | None = None
    local_size: int | None = None
    last_synced_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON representation."""
        return {
            "remoteId": self.remote_id,
            "contentHash": self.content_hash,
            "localMtime": self.local_mtime,
            "localSize": self.local_size,
            "remoteLastEdited": self.remote_last_edited,
            "lastSyncedAt": self.last_synced_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileState:
        """Create from the JSON representation."""
        return cls(
            remote_id=data["remoteId"],
            content_hash=data["contentHash"],
            remote_last_edited=data["remoteLastEdited"],
            local_mtime=data.get("localMtime"),
            local_size=data.get("localSize"),
            last_synced_at=data.get("lastSyncedAt") or utc_now(),
        )


@dataclass
class DirState:
    """A folder mirrored as a Notion container page."""

    remote_id: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON representation."""
        return {"remoteId": self.remote_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DirState:
        """Create from the JSON representation."""
        return cls(remote_id=data["remoteId"])


@dataclass
class SyncState:
    """Everything tracked for one sync target.

    Keys of ``files`` and ``dirs`` are '/'-separated paths relative to
    ``dir_path``.
    """

    root_id: str
    dir_path: str
    files: dict[str, FileState] = field(default_factory=dict)
    dirs: dict[str, DirState] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON representation."""
        return {
            "rootId": self.root_id,
            "dirPath": self.dir_path,
            "files": {path: state.to_dict() for path, state in self.files.items()},
            "dirs": {path: state.to_dict() for path, state in self.dirs.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncState:
        """Create from the JSON representation."""
        return cls(
            root_id=data["rootId"],
            dir_path=data["dirPath"],
            files={
                path: FileState.from_dict(entry)
                for path, entry in (data.get("files") or {}).items()
            },
            dirs={
                path: DirState.from_dict(entry)
                for path, entry in (data.get("dirs") or {}).items()
            },
        )


class StateStore:
    """JSON-file persistence for a sync target's state and pid."""

    def __init__(
        self,
        dir_path: Path | str,
        root_id: str,
        state_root: Path | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            dir_path: Local folder being synced.
            root_id: Notion root page id.
            state_root: Base directory for all targets (default ~/.notion-sync).
        """
        self._dir_path = Path(dir_path).resolve()
        self._root_id = root_id
        base = Path(state_root) if state_root is not None else DEFAULT_STATE_ROOT
        self._state_dir = base / state_key(root_id, self._dir_path)

    @property
    def dir_path(self) -> Path:
        """Absolute local folder being synced."""
        return self._dir_path

    @property
    def root_id(self) -> str:
        """Notion root page id."""
        return self._root_id

    @property
    def state_dir(self) -> Path:
        """Directory holding this target's files."""
        return self._state_dir

    @property
    def state_file(self) -> Path:
        """Path to the state JSON file."""
        return self._state_dir / STATE_FILENAME

    @property
    def pid_file(self) -> Path:
        """Path to the daemon pid file."""
        return self._state_dir / PID_FILENAME

    @property
    def log_path(self) -> Path:
        """Path to the daemon log file."""
        return self._state_dir / LOG_FILENAME

    def new_state(self) -> SyncState:
        """Create an empty state bound to this target."""
        return SyncState(root_id=self._root_id, dir_path=str(self._dir_path))

    def load(self) -> SyncState | None:
        """Load the persisted state.

        Returns:
            The state, or None if no state file exists.

        Raises:
            StateError: If the file exists but cannot be parsed.
        """
        try:
            raw = self.state_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            return SyncState.from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            raise StateError(f"Corrupt state file {self.state_file}: {e}") from e

    def load_or_create(self) -> SyncState:
        """Load the persisted state or start a fresh one."""
        state = self.load()
        if state is None:
            logger.info("No saved state for %s, starting fresh", self._dir_path)
            return self.new_state()
        return state

    def save(self, state: SyncState) -> None:
        """Write the state atomically."""
        self._state_dir.mkdir(parents=True, exist_ok=True)
        tmp = self.state_file.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")
        os.replace(tmp, self.state_file)

    # === Pid file ===

    def write_pid(self, pid: int | None = None) -> None:
        """Record the daemon's process id."""
        self._state_dir.mkdir(parents=True, exist_ok=True)
        self.pid_file.write_text(str(os.getpid() if pid is None else pid))

    def read_pid(self) -> int | None:
        """Read the recorded process id, if any."""
        try:
            return int(self.pid_file.read_text().strip())
        except (FileNotFoundError, ValueError):
            return None

    def clean_pid(self) -> None:
        """Remove the pid file (no error if already gone)."""
        with contextlib.suppress(FileNotFoundError):
            self.pid_file.unlink()

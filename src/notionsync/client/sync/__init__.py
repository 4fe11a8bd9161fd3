"""Sync operations between a local folder and a Notion page tree.

Architecture:
    Triggers (FileWatcher, Poller, webhook) → Reconciler → NotionClient → RequestQueue

Components:
- **RequestQueue**: Serializes every remote call, with pacing between calls
- **retry_rate_limited**: Retries rate-limited calls with linear backoff
- **diff_blocks**: Minimal edit script between two block lists
- **scan_local / fetch_remote_tree**: Both sides of the tree, fetched fresh
- **SyncLock**: Keeps pulls away from running pushes, hides pull writes
- **Reconciler**: Startup sync, push / delete / pull of single files
- **FileWatcher**: Debounced local change detection
- **Poller**: Periodic remote pull
"""

from notionsync.client.sync.diff import (
    Delete,
    DiffOp,
    Insert,
    Keep,
    Update,
    apply_ops,
    blocks_match,
    diff_blocks,
)
from notionsync.client.sync.engine import Reconciler, SyncResult
from notionsync.client.sync.lock import SyncLock
from notionsync.client.sync.poller import Poller
from notionsync.client.sync.queue import RequestQueue
from notionsync.client.sync.retry import (
    DEFAULT_BASE_DELAY,
    DEFAULT_RETRY_ATTEMPTS,
    retry_rate_limited,
)
from notionsync.client.sync.scanner import LocalDir, LocalFile, scan_local
from notionsync.client.sync.tree import RemoteTreeNode, fetch_remote_tree
from notionsync.client.sync.watcher import Debouncer, FileWatcher, PathSyncGuard

__all__ = [
    # Diff
    "Delete",
    "DiffOp",
    "Insert",
    "Keep",
    "Update",
    "apply_ops",
    "blocks_match",
    "diff_blocks",
    # Engine
    "Reconciler",
    "SyncResult",
    "SyncLock",
    # Triggers
    "Debouncer",
    "FileWatcher",
    "PathSyncGuard",
    "Poller",
    # Remote calls
    "DEFAULT_BASE_DELAY",
    "DEFAULT_RETRY_ATTEMPTS",
    "RequestQueue",
    "retry_rate_limited",
    # Trees
    "LocalDir",
    "LocalFile",
    "RemoteTreeNode",
    "fetch_remote_tree",
    "scan_local",
]

"""Two-way reconciliation between a local folder and a Notion page tree.

This module provides:
- Reconciler: Startup sync, push / delete of one file, pull passes
- SyncResult: Summary of what a pass changed

Mapping:
    folder "notes/ideas"      -> page titled "ideas" under the "notes" page
    file "notes/ideas/x.md"   -> page titled "x" under the "ideas" page

Remote calls are made one at a time through the client's request queue,
and every file is persisted as soon as it is synced. A single Reconciler
owns the live SyncState; callers running concurrently on the event loop
always go through it rather than holding entries across awaits.

Failure policy:
- During startup, directory creation and file pushes propagate errors and
  abort the sync.
- Pulls, remote-only discovery and archiving log per-item errors and go on
  with the next item.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import posixpath
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from notionsync.client.converter import markdown_to_blocks, page_to_markdown
from notionsync.client.errors import NotFoundError
from notionsync.client.state import DirState, FileState, SyncState
from notionsync.client.sync.scanner import IGNORED_NAMES, scan_local, to_relative
from notionsync.client.sync.tree import RemoteTreeNode, fetch_remote_tree
from notionsync.core.hashing import hash_content

if TYPE_CHECKING:
    from notionsync.client.api import ChildPage, NotionClient
    from notionsync.client.state import StateStore
    from notionsync.client.sync.lock import SyncLock

logger = logging.getLogger(__name__)

ToBlocks = Callable[[str], list[dict[str, Any]]]
ToText = Callable[[str], Awaitable[str]]


@dataclass
class SyncResult:
    """Paths touched by a sync pass."""

    pushed: list[str] = field(default_factory=list)
    pulled: list[str] = field(default_factory=list)
    archived: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def changed(self) -> bool:
        """True if anything was pushed, pulled or archived."""
        return bool(self.pushed or self.pulled or self.archived)

    def summary(self) -> str:
        if self.skipped:
            return "skipped"
        return (
            f"{len(self.pushed)} pushed, {len(self.pulled)} pulled, "
            f"{len(self.archived)} archived, {len(self.errors)} errors"
        )


def title_for_file(rel_path: str) -> str:
    """Page title of a document: its file name without the extension."""
    return posixpath.splitext(posixpath.basename(rel_path))[0]


def is_usable_title(title: str) -> bool:
    """Check if a page title can name a single local path segment.

    Titles that would leave the sync root, or land in a folder the scanner
    skips, cannot be tracked.
    """
    if title in ("", ".", "..") or title in IGNORED_NAMES:
        return False
    return not any(char in title for char in ("/", "\\", "\x00"))


class Reconciler:
    """Keeps one local folder and one Notion root page in sync."""

    def __init__(
        self,
        client: NotionClient,
        store: StateStore,
        lock: SyncLock,
        to_blocks: ToBlocks = markdown_to_blocks,
        to_text: ToText | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            client: Notion client.
            store: State store of this sync target.
            lock: Sync lock shared with the watcher and pull triggers.
            to_blocks: Converts document text to Notion blocks.
            to_text: Renders a page's content as document text.
        """
        self._client = client
        self._store = store
        self._lock = lock
        self._to_blocks = to_blocks
        self._to_text: ToText = to_text or functools.partial(page_to_markdown, client)
        self._state: SyncState | None = None
        self._dir_locks: dict[str, asyncio.Lock] = {}

    @property
    def root(self) -> Path:
        """Absolute local sync root."""
        return self._store.dir_path

    @property
    def lock(self) -> SyncLock:
        return self._lock

    @property
    def state(self) -> SyncState:
        """Live sync state, loaded from disk on first access."""
        if self._state is None:
            self._state = self._store.load_or_create()
        return self._state

    def save(self) -> None:
        """Persist the live state."""
        self._store.save(self.state)

    def relative_path(self, path: Path | str) -> str:
        """Return a path relative to the sync root, '/'-separated."""
        path = Path(path)
        if not path.is_absolute():
            return path.as_posix()
        return to_relative(self.root, path)

    async def _find_child_page(self, parent_id: str, title: str) -> ChildPage | None:
        """Find an existing sub-page by title (first match)."""
        for child in await self._client.get_child_pages(parent_id):
            if child.title == title:
                return child
        return None

    # === Directories ===

    async def ensure_dir_page(self, rel_dir: str) -> str:
        """Get the page mirroring a folder, creating parents as needed.

        A folder already recorded in state is returned without any remote
        call. Otherwise an existing sub-page with the folder's name is
        reused before a new one is created, so a lost state file does not
        duplicate the tree.

        Args:
            rel_dir: Folder path relative to the sync root ("" for the root).

        Returns:
            Id of the folder's page.
        """
        if rel_dir in ("", "."):
            return self.state.root_id

        existing = self.state.dirs.get(rel_dir)
        if existing is not None:
            return existing.remote_id

        dir_lock = self._dir_locks.setdefault(rel_dir, asyncio.Lock())
        async with dir_lock:
            existing = self.state.dirs.get(rel_dir)
            if existing is not None:
                return existing.remote_id

            parent_id = await self.ensure_dir_page(posixpath.dirname(rel_dir))
            title = posixpath.basename(rel_dir)

            match = await self._find_child_page(parent_id, title)
            if match is not None:
                page_id = match.id
                logger.info(f"Reusing folder page: {rel_dir} -> {page_id}")
            else:
                page_id = await self._client.create_page(parent_id, title, [])
                logger.info(f"Created folder page: {rel_dir} -> {page_id}")

            self.state.dirs[rel_dir] = DirState(remote_id=page_id)
            return page_id

    # === Push ===

    async def sync_file(self, path: Path | str) -> bool:
        """Push one local file to its page.

        Args:
            path: Absolute path, or path relative to the sync root.

        Returns:
            True if the remote page was created or updated.
        """
        rel_path = self.relative_path(path)
        abs_path = self.root / rel_path
        stat = abs_path.stat()

        existing = self.state.files.get(rel_path)
        if (
            existing is not None
            and existing.local_mtime is not None
            and existing.local_size is not None
            and existing.local_mtime == stat.st_mtime
            and existing.local_size == stat.st_size
        ):
            logger.debug("Unchanged (mtime/size): %s", rel_path)
            return False

        content = abs_path.read_text(encoding="utf-8")
        if not content.strip():
            logger.info(f"Skipping empty file: {rel_path}")
            return False

        content_hash = hash_content(content)
        if existing is not None and existing.content_hash == content_hash:
            logger.debug("Unchanged (hash): %s", rel_path)
            return False

        blocks = self._to_blocks(content)
        parent_id = await self.ensure_dir_page(posixpath.dirname(rel_path))

        if existing is not None:
            page_id = existing.remote_id
            logger.info(f"Updating: {rel_path}")
            await self._client.update_page_content(page_id, blocks)
        else:
            title = title_for_file(rel_path)
            match = await self._find_child_page(parent_id, title)
            if match is not None:
                page_id = match.id
                logger.info(f"Reusing: {rel_path} -> {page_id}")
                await self._client.update_page_content(page_id, blocks)
            else:
                logger.info(f"Creating: {rel_path}")
                page_id = await self._client.create_page(parent_id, title, blocks)

        last_edited = await self._client.get_last_edited_time(page_id)
        self.state.files[rel_path] = FileState(
            remote_id=page_id,
            content_hash=content_hash,
            remote_last_edited=last_edited,
            local_mtime=stat.st_mtime,
            local_size=stat.st_size,
        )
        self.save()
        return True

    async def sync_delete_file(self, path: Path | str) -> bool:
        """Archive the page of a locally deleted file.

        A page that no longer exists remotely is treated as archived.

        Returns:
            True if the file was tracked and its entry was dropped.
        """
        rel_path = self.relative_path(path)
        existing = self.state.files.get(rel_path)
        if existing is None:
            return False

        logger.info(f"Archiving: {rel_path}")
        try:
            await self._client.archive_page(existing.remote_id)
        except NotFoundError:
            logger.warning(f"Page of {rel_path} is already gone: {existing.remote_id}")

        self.state.files.pop(rel_path, None)
        self.save()
        return True

    # === Pull ===

    def _write_local(self, rel_path: str, text: str) -> Path:
        abs_path = self.root / rel_path
        abs_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock.mark_pull_write(rel_path)
        try:
            abs_path.write_text(text, encoding="utf-8")
        finally:
            self._lock.clear_pull_write(rel_path)
        return abs_path

    async def pull_file(self, rel_path: str, file_state: FileState) -> bool:
        """Pull a tracked page if it changed remotely.

        Args:
            rel_path: Tracked file path relative to the sync root.
            file_state: The file's current state entry.

        Returns:
            True if the local file was rewritten.
        """
        last_edited = await self._client.get_last_edited_time(file_state.remote_id)
        if last_edited == file_state.remote_last_edited:
            return False

        logger.info(f"Remote changed: {rel_path}")
        text = await self._to_text(file_state.remote_id)
        abs_path = self._write_local(rel_path, text)
        stat = abs_path.stat()

        self.state.files[rel_path] = FileState(
            remote_id=file_state.remote_id,
            content_hash=hash_content(text),
            remote_last_edited=last_edited,
            local_mtime=stat.st_mtime,
            local_size=stat.st_size,
        )
        return True

    async def pull_remote_only(
        self,
        tree: dict[str, RemoteTreeNode],
        base: str = "",
        result: SyncResult | None = None,
    ) -> SyncResult:
        """Materialize pages that exist only remotely.

        A node with sub-pages becomes a folder, a leaf becomes a ``.md``
        file. Empty leaf pages and pages whose title is not a usable file
        name are skipped. Tracked paths are left alone. A folder that cannot
        be created is recorded as an error and its sub-pages are skipped.

        Args:
            tree: Fetched sub-page tree.
            base: Folder the tree is rooted at, relative to the sync root.
            result: Result to record pulled paths and errors into.

        Returns:
            The result.
        """
        result = result if result is not None else SyncResult()

        for title, node in tree.items():
            if not is_usable_title(title):
                logger.warning(f"Skipping remote page {node.id}: unusable title {title!r}")
                continue

            if node.children:
                rel_dir = posixpath.join(base, title) if base else title
                if rel_dir not in self.state.dirs:
                    try:
                        (self.root / rel_dir).mkdir(parents=True, exist_ok=True)
                    except Exception:
                        logger.exception(f"Failed to pull remote folder {rel_dir}")
                        result.errors.append(rel_dir)
                        continue
                    self.state.dirs[rel_dir] = DirState(remote_id=node.id)
                    logger.info(f"Pulled folder: {rel_dir}")
                await self.pull_remote_only(node.children, rel_dir, result)
                continue

            rel_path = posixpath.join(base, f"{title}.md") if base else f"{title}.md"
            if rel_path in self.state.files:
                continue

            try:
                text = await self._to_text(node.id)
                if not text.strip():
                    logger.debug("Skipping empty remote page: %s", rel_path)
                    continue

                abs_path = self._write_local(rel_path, text)
                stat = abs_path.stat()
                last_edited = await self._client.get_last_edited_time(node.id)
                self.state.files[rel_path] = FileState(
                    remote_id=node.id,
                    content_hash=hash_content(text),
                    remote_last_edited=last_edited,
                    local_mtime=stat.st_mtime,
                    local_size=stat.st_size,
                )
                result.pulled.append(rel_path)
                logger.info(f"Pulled file: {rel_path}")
            except Exception:
                logger.exception(f"Failed to pull remote page {rel_path}")
                result.errors.append(rel_path)

        return result

    async def sync_from_remote(self) -> SyncResult:
        """Pull remote changes of every tracked file.

        Skipped entirely, without any remote call, while a push is running.
        """
        if self._lock.is_push_active:
            logger.info("Skipping pull: local sync in progress")
            return SyncResult(skipped=True)

        result = SyncResult()
        for rel_path in list(self.state.files):
            if self._lock.is_push_active:
                logger.info("Stopping pull: local sync started")
                break

            file_state = self.state.files.get(rel_path)
            if file_state is None:
                continue
            try:
                if await self.pull_file(rel_path, file_state):
                    result.pulled.append(rel_path)
            except Exception:
                logger.exception(f"Error checking {rel_path}")
                result.errors.append(rel_path)

        self.save()
        return result

    # === Startup ===

    async def startup_sync(self) -> SyncResult:
        """Reconcile both sides once, at daemon start.

        Steps:
        1. Load state (or start fresh).
        2. Scan the local folder.
        3. Ensure a page for every local folder, parents first.
        4. Push every local file.
        5. Remember which files were tracked before pulling.
        6. Pull remote changes of tracked files that still exist locally
           (files pushed in step 4 already carry a fresh timestamp).
        7. Materialize remote-only pages.
        8. Archive pages of files that were tracked but are gone locally.
        9. Save state.

        Returns:
            Summary of the pass.

        Raises:
            StateError: If the state file is corrupt.
            APIError: If a folder or file push fails.
        """
        self._state = self._store.load_or_create()
        self._state.root_id = self._store.root_id
        self._state.dir_path = str(self.root)
        result = SyncResult()

        files, dirs = scan_local(self.root)
        logger.info(f"Found {len(files)} files in {len(dirs)} folders under {self.root}")

        for local_dir in dirs:
            await self.ensure_dir_page(local_dir.relative_path)

        for local_file in files:
            if await self.sync_file(local_file.absolute_path):
                result.pushed.append(local_file.relative_path)

        tracked_before_pull = set(self.state.files)
        local_paths = {local_file.relative_path for local_file in files}

        just_pushed = set(result.pushed)
        for rel_path in sorted((tracked_before_pull & local_paths) - just_pushed):
            file_state = self.state.files.get(rel_path)
            if file_state is None:
                continue
            try:
                if await self.pull_file(rel_path, file_state):
                    result.pulled.append(rel_path)
            except Exception:
                logger.exception(f"Error checking {rel_path}")
                result.errors.append(rel_path)

        try:
            tree = await fetch_remote_tree(self._client, self.state.root_id)
        except Exception:
            logger.exception("Failed to fetch the remote page tree")
            result.errors.append("")
        else:
            await self.pull_remote_only(tree, "", result)

        for rel_path in sorted(tracked_before_pull - local_paths):
            file_state = self.state.files.get(rel_path)
            if file_state is None:
                continue
            logger.info(f"Archiving: {rel_path}")
            try:
                await self._client.archive_page(file_state.remote_id)
            except NotFoundError:
                logger.warning(f"Page of {rel_path} is already gone: {file_state.remote_id}")
            except Exception:
                logger.exception(f"Failed to archive {rel_path}")
                result.errors.append(rel_path)
                continue
            self.state.files.pop(rel_path, None)
            result.archived.append(rel_path)

        self.save()
        logger.info(f"Startup sync done: {result.summary()}")
        return result

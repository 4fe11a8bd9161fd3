"""Local directory scanning.

This module provides:
- LocalFile / LocalDir: Entries found under the sync root
- scan_local: Walk the sync root for tracked documents and folders

Symlinks are followed. Symlink cycles are not detected, so a link pointing
at one of its own ancestors makes the walk recurse until the OS gives up.
"""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

IGNORED_NAMES = frozenset({"node_modules"})
TRACKED_SUFFIX = ".md"


@dataclass(frozen=True)
class LocalFile:
    """A tracked document on disk."""

    relative_path: str
    absolute_path: Path


@dataclass(frozen=True)
class LocalDir:
    """A folder on disk."""

    relative_path: str
    absolute_path: Path


def is_tracked_file(path: Path | str) -> bool:
    """Check if a path has the tracked document extension."""
    return Path(path).suffix == TRACKED_SUFFIX


def to_relative(root: Path, path: Path) -> str:
    """Return ``path`` relative to ``root`` with '/' separators."""
    return path.relative_to(root).as_posix()


def scan_local(root: Path | str) -> tuple[list[LocalFile], list[LocalDir]]:
    """Walk a directory tree for Markdown files and folders.

    Entries of each directory are visited in sorted order. A directory is
    recorded before anything inside it, so parents always precede their
    children in the returned list.

    Args:
        root: Sync root directory.

    Returns:
        Tuple of (files, dirs).
    """
    root = Path(root).resolve()
    files: list[LocalFile] = []
    dirs: list[LocalDir] = []

    def walk(current: Path) -> None:
        with os.scandir(current) as it:
            entries = sorted(it, key=lambda entry: entry.name)

        for entry in entries:
            if entry.name in IGNORED_NAMES:
                continue

            path = current / entry.name
            rel_path = to_relative(root, path)

            if entry.is_symlink():
                try:
                    mode = path.stat().st_mode
                except OSError:
                    logger.warning(f"Skipping broken symlink: {rel_path}")
                    continue
                is_dir = stat.S_ISDIR(mode)
                is_file = stat.S_ISREG(mode)
            else:
                is_dir = entry.is_dir(follow_symlinks=False)
                is_file = entry.is_file(follow_symlinks=False)

            if is_dir:
                dirs.append(LocalDir(rel_path, path))
                walk(path)
            elif is_file and is_tracked_file(entry.name):
                files.append(LocalFile(rel_path, path))

    walk(root)
    return files, dirs

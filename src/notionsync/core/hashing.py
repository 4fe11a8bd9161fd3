"""Content fingerprinting for notionsync.

This module provides:
- Content hashing with SHA-256
- Deterministic state keys for a (root page, local folder) pair
"""

import hashlib
from pathlib import Path

STATE_KEY_LENGTH = 12


def hash_content(content: str) -> str:
    """Compute SHA-256 hash of a document's text.

    Args:
        content: Document text.

    Returns:
        Hexadecimal SHA-256 hash string.
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def state_key(root_id: str, dir_path: Path | str) -> str:
    """Derive the short key naming a sync target's state directory.

    Args:
        root_id: Notion root page id.
        dir_path: Local folder (resolved to an absolute path).

    Returns:
        First 12 hex characters of SHA-256 over both values.
    """
    hasher = hashlib.sha256()
    hasher.update(root_id.replace("-", "").encode("utf-8"))
    hasher.update(b"\0")
    hasher.update(str(Path(dir_path).resolve()).encode("utf-8"))
    return hasher.hexdigest()[:STATE_KEY_LENGTH]

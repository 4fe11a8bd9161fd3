"""Minimal edit scripts between two Notion block lists.

This module provides:
- Keep / Insert / Delete / Update: Edit operations on a page's blocks
- diff_blocks: LCS-based edit script from existing to desired blocks
- apply_ops: Apply an edit script to an in-memory block list

Two blocks match when their type tag and their plain text are equal.
Formatting, colors and other payload details are ignored by the match,
so a page whose text did not change is left untouched.

The script is produced in document order:
1. LCS table over the match predicate, backtracked from the end. On a
   tie the new-side element is taken as an insert.
2. A delete immediately followed by an insert of the same block type is
   merged into an in-place update.
3. Each insert is anchored after the most recent kept or updated block,
   or None when no such block precedes it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

Block = dict[str, Any]


@dataclass(frozen=True)
class Keep:
    """Existing block stays as is."""

    block_id: str


@dataclass(frozen=True)
class Insert:
    """New block placed after an existing block (None: page start)."""

    after_block_id: str | None
    block: Block


@dataclass(frozen=True)
class Delete:
    """Existing block is removed."""

    block_id: str


@dataclass(frozen=True)
class Update:
    """Existing block's payload is replaced in place (same block type)."""

    block_id: str
    block: Block


DiffOp = Union[Keep, Insert, Delete, Update]


def extract_plain_text(rich_text: Any) -> str:
    """Concatenate the text of a rich-text array.

    Accepts both the API response shape (``plain_text``) and the request
    shape (``text.content``). Anything else contributes an empty string.
    """
    if not isinstance(rich_text, list):
        return ""

    parts = []
    for item in rich_text:
        if not isinstance(item, dict):
            continue
        if item.get("plain_text") is not None:
            parts.append(item["plain_text"])
            continue
        text = item.get("text")
        if isinstance(text, dict) and text.get("content") is not None:
            parts.append(text["content"])
    return "".join(parts)


def block_content(block: Block | None) -> tuple[str, str]:
    """Return the (type, plain text) pair used to compare blocks."""
    if not block:
        return "", ""
    block_type = block.get("type") or ""
    body = block.get(block_type)
    text = ""
    if isinstance(body, dict) and isinstance(body.get("rich_text"), list):
        text = extract_plain_text(body["rich_text"])
    return block_type, text


def blocks_match(old_block: Block, new_block: Block) -> bool:
    """Check if two blocks have the same type and the same text."""
    return block_content(old_block) == block_content(new_block)


def _lcs_table(old: list[Block], new: list[Block]) -> list[list[int]]:
    m, n = len(old), len(new)
    dp = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(1, m + 1):
        for j in range(1, n + 1):
            if blocks_match(old[i - 1], new[j - 1]):
                dp[i][j] = dp[i - 1][j - 1] + 1
            else:
                dp[i][j] = max(dp[i - 1][j], dp[i][j - 1])
    return dp


def diff_blocks(old: list[Block], new: list[Block]) -> list[DiffOp]:
    """Compute the edit script turning ``old`` into ``new``.

    Args:
        old: Blocks currently on the page (each with an ``id``).
        new: Desired blocks (ids not required).

    Returns:
        Operations in document order.
    """
    dp = _lcs_table(old, new)

    # Backtrack from the end, collecting ops in reverse
    reversed_ops: list[DiffOp] = []
    i, j = len(old), len(new)
    while i > 0 or j > 0:
        if i > 0 and j > 0 and blocks_match(old[i - 1], new[j - 1]):
            reversed_ops.append(Keep(old[i - 1].get("id", "")))
            i -= 1
            j -= 1
        elif j > 0 and (i == 0 or dp[i][j - 1] >= dp[i - 1][j]):
            reversed_ops.append(Insert(None, new[j - 1]))
            j -= 1
        else:
            reversed_ops.append(Delete(old[i - 1].get("id", "")))
            i -= 1
    ops = reversed_ops[::-1]

    # Merge delete + insert of the same type into an update
    types_by_id = {block.get("id", ""): block.get("type") or "" for block in old}
    merged: list[DiffOp] = []
    k = 0
    while k < len(ops):
        current = ops[k]
        following = ops[k + 1] if k + 1 < len(ops) else None
        if (
            isinstance(current, Delete)
            and isinstance(following, Insert)
            and types_by_id.get(current.block_id) == block_content(following.block)[0]
        ):
            merged.append(Update(current.block_id, following.block))
            k += 2
            continue
        merged.append(current)
        k += 1

    # Anchor inserts after the last block that survives
    anchored: list[DiffOp] = []
    last_id: str | None = None
    for op in merged:
        if isinstance(op, (Keep, Update)):
            last_id = op.block_id
            anchored.append(op)
        elif isinstance(op, Insert):
            anchored.append(Insert(last_id, op.block))
        else:
            anchored.append(op)

    return anchored


def apply_ops(old: list[Block], ops: list[DiffOp]) -> list[Block]:
    """Apply an edit script to a block list.

    Keeps retain, deletes remove, updates replace in place and inserts go
    right after their anchor, chained after the previous insert when
    inserts are consecutive, or at the head when unanchored.

    Args:
        old: Original blocks with ids.
        ops: Script produced by diff_blocks.

    Returns:
        The resulting block list.
    """
    entries: list[tuple[object, Block]] = [(block.get("id"), block) for block in old]

    def position(key: object) -> int:
        return next(pos for pos, (k, _) in enumerate(entries) if k == key)

    last_inserted: object = None
    previous_was_insert = False

    for op in ops:
        if isinstance(op, Keep):
            previous_was_insert = False
        elif isinstance(op, Update):
            pos = position(op.block_id)
            entries[pos] = (op.block_id, {**op.block, "id": op.block_id})
            previous_was_insert = False
        elif isinstance(op, Delete):
            del entries[position(op.block_id)]
            previous_was_insert = False
        else:
            if previous_was_insert:
                pos = position(last_inserted) + 1
            elif op.after_block_id is not None:
                pos = position(op.after_block_id) + 1
            else:
                pos = 0
            last_inserted = object()
            entries.insert(pos, (last_inserted, op.block))
            previous_was_insert = True

    return [block for _, block in entries]

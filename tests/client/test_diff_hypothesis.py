"""Property-based tests for the block differ and in-place page updates."""

from __future__ import annotations

import asyncio
from typing import Any

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from fakes import RecordingClient
from notionsync.client.sync.diff import Keep, apply_ops, block_content, diff_blocks

PROPERTY_SETTINGS = settings(
    max_examples=300,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)

# Few distinct values so that generated lists share blocks often.
_TEXT = st.sampled_from(["", "a", "b", "c", "note"])
_TEXT_TYPE = st.sampled_from(["paragraph", "heading_1", "bulleted_list_item"])


def _text_block(block_type: str, text: str) -> dict[str, Any]:
    return {
        "object": "block",
        "type": block_type,
        block_type: {"rich_text": [{"type": "text", "text": {"content": text}}]},
    }


_BLOCK = st.one_of(
    st.builds(_text_block, _TEXT_TYPE, _TEXT),
    st.just({"object": "block", "type": "divider", "divider": {}}),
)
_BLOCKS = st.lists(_BLOCK, max_size=8)


def _with_ids(blocks: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [{**block, "id": f"old-{i}"} for i, block in enumerate(blocks)]


def _contents(blocks: list[dict[str, Any]]) -> list[tuple[str, str]]:
    return [block_content(block) for block in blocks]


async def _update(old: list[dict[str, Any]], new: list[dict[str, Any]]) -> RecordingClient:
    client = RecordingClient(old)
    try:
        await client.update_page_content("page", new)
    finally:
        await client.aclose()
    return client


class TestDiffProperties:
    """Laws holding for arbitrary old and new block lists."""

    @PROPERTY_SETTINGS
    @given(old=_BLOCKS, new=_BLOCKS)
    def test_apply_reconstructs_new(
        self, old: list[dict[str, Any]], new: list[dict[str, Any]]
    ) -> None:
        """Applying the script to the old blocks yields the new ones."""
        old = _with_ids(old)

        result = apply_ops(old, diff_blocks(old, new))

        assert _contents(result) == _contents(new)

    @PROPERTY_SETTINGS
    @given(old=_BLOCKS)
    def test_identical_lists_only_keep(self, old: list[dict[str, Any]]) -> None:
        """Diffing a list against itself keeps every block."""
        old = _with_ids(old)

        ops = diff_blocks(old, [dict(block) for block in old])

        assert ops == [Keep(block["id"]) for block in old]

    @PROPERTY_SETTINGS
    @given(old=_BLOCKS, new=st.lists(_BLOCK, min_size=1, max_size=8))
    def test_page_update_reconstructs_new(
        self, old: list[dict[str, Any]], new: list[dict[str, Any]]
    ) -> None:
        """update_page_content leaves the page holding exactly the new blocks."""
        client = asyncio.run(_update(_with_ids(old), new))

        assert _contents(client.blocks) == _contents(new)

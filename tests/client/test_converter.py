"""Tests for Markdown <-> block conversion."""

from __future__ import annotations

from typing import Any

import pytest

from fakes import ROOT_ID, FakeNotion, heading, paragraph
from notionsync.client.converter import (
    MAX_TEXT_LENGTH,
    blocks_to_markdown,
    markdown_to_blocks,
    page_to_markdown,
    parse_inline,
    rich_text_to_markdown,
)


def plain(block: dict[str, Any]) -> str:
    body = block[block["type"]]
    return "".join(item["text"]["content"] for item in body.get("rich_text", []))


def types(blocks: list[dict[str, Any]]) -> list[str]:
    return [block["type"] for block in blocks]


class TestParseInline:
    """Tests for inline Markdown parsing."""

    def test_plain_text(self) -> None:
        """Plain text is a single item without annotations."""
        assert parse_inline("hello") == [{"type": "text", "text": {"content": "hello"}}]

    def test_bold_in_middle(self) -> None:
        """Bold splits the text into three items."""
        items = parse_inline("a **b** c")

        assert [item["text"]["content"] for item in items] == ["a ", "b", " c"]
        assert items[1]["annotations"] == {"bold": True}

    def test_italic_code_strike(self) -> None:
        """Other annotations map to their flags."""
        items = parse_inline("*i* `c` ~~s~~")

        annotated = [item for item in items if "annotations" in item]
        assert [item["annotations"] for item in annotated] == [
            {"italic": True},
            {"code": True},
            {"strikethrough": True},
        ]

    def test_link(self) -> None:
        """Links carry their URL."""
        (item,) = parse_inline("[docs](https://example.com)")

        assert item["text"] == {"content": "docs", "link": {"url": "https://example.com"}}

    def test_snake_case_not_italic(self) -> None:
        """Underscores inside words are literal."""
        assert parse_inline("some_var_name") == [
            {"type": "text", "text": {"content": "some_var_name"}}
        ]

    def test_long_text_split(self) -> None:
        """Text beyond the per-item limit is split."""
        items = parse_inline("x" * (MAX_TEXT_LENGTH + 10))

        assert [len(item["text"]["content"]) for item in items] == [MAX_TEXT_LENGTH, 10]


class TestMarkdownToBlocks:
    """Tests for markdown_to_blocks."""

    def test_empty(self) -> None:
        """Blank input has no blocks."""
        assert markdown_to_blocks("") == []
        assert markdown_to_blocks("\n\n  \n") == []

    def test_headings(self) -> None:
        """Heading levels one to three."""
        blocks = markdown_to_blocks("# One\n## Two\n### Three")

        assert types(blocks) == ["heading_1", "heading_2", "heading_3"]
        assert [plain(b) for b in blocks] == ["One", "Two", "Three"]

    def test_paragraph_lines_joined(self) -> None:
        """Consecutive lines form one paragraph; blank lines separate."""
        blocks = markdown_to_blocks("line one\nline two\n\nnext")

        assert types(blocks) == ["paragraph", "paragraph"]
        assert plain(blocks[0]) == "line one\nline two"
        assert plain(blocks[1]) == "next"

    def test_lists(self) -> None:
        """Bullets, numbers and to-dos."""
        blocks = markdown_to_blocks("- a\n* b\n1. c\n2) d\n- [x] done\n- [ ] open")

        assert types(blocks) == [
            "bulleted_list_item",
            "bulleted_list_item",
            "numbered_list_item",
            "numbered_list_item",
            "to_do",
            "to_do",
        ]
        assert blocks[4]["to_do"]["checked"] is True
        assert blocks[5]["to_do"]["checked"] is False
        assert plain(blocks[4]) == "done"

    def test_quote_and_divider(self) -> None:
        """Quotes and horizontal rules."""
        blocks = markdown_to_blocks("> wise words\n\n---\n\n***")

        assert types(blocks) == ["quote", "divider", "divider"]
        assert plain(blocks[0]) == "wise words"

    def test_code_fence(self) -> None:
        """Fenced code keeps its lines verbatim."""
        blocks = markdown_to_blocks("intro\n```python\ndef f():\n    # not a heading\n```\nafter")

        assert types(blocks) == ["paragraph", "code", "paragraph"]
        assert blocks[1]["code"]["language"] == "python"
        assert plain(blocks[1]) == "def f():\n    # not a heading"

    def test_code_fence_without_language(self) -> None:
        """Unlabeled fences are plain text."""
        (block,) = markdown_to_blocks("```\nx\n```")

        assert block["code"]["language"] == "plain text"

    def test_unclosed_fence_runs_to_end(self) -> None:
        """An unterminated fence swallows the rest of the document."""
        (block,) = markdown_to_blocks("```\na\n# b")

        assert plain(block) == "a\n# b"

    def test_crlf(self) -> None:
        """Windows line endings are accepted."""
        assert types(markdown_to_blocks("# T\r\n\r\nbody\r\n")) == ["heading_1", "paragraph"]


class TestBlocksToMarkdown:
    """Tests for blocks_to_markdown."""

    def test_empty(self) -> None:
        """No blocks render as empty text."""
        assert blocks_to_markdown([]) == ""

    def test_blocks_separated_by_blank_line(self) -> None:
        """Non-list blocks are separated by a blank line."""
        assert blocks_to_markdown([heading("T"), paragraph("body")]) == "# T\n\nbody\n"

    def test_list_items_tight(self) -> None:
        """Consecutive list items stay on adjacent lines."""
        blocks = markdown_to_blocks("- a\n- b\n- [x] c")

        assert blocks_to_markdown(blocks) == "- a\n- b\n- [x] c\n"

    def test_numbering_restarts(self) -> None:
        """Numbered lists restart after another block."""
        blocks = markdown_to_blocks("1. a\n1. b\n\npara\n\n1. c")

        assert blocks_to_markdown(blocks) == "1. a\n2. b\n\npara\n\n1. c\n"

    def test_code(self) -> None:
        """Code renders fenced; plain text has no language tag."""
        blocks = markdown_to_blocks("```\nx = 1\n```\n\n```js\nf()\n```")

        assert blocks_to_markdown(blocks) == "```\nx = 1\n```\n\n```js\nf()\n```\n"

    def test_unsupported_skipped(self) -> None:
        """Unknown block types are left out."""
        blocks = [paragraph("a"), {"type": "child_page", "child_page": {"title": "Sub"}}]

        assert blocks_to_markdown(blocks) == "a\n"

    def test_callout_as_quote(self) -> None:
        """Callouts degrade to quotes."""
        callout = {"type": "callout", "callout": {"rich_text": [{"plain_text": "note"}]}}

        assert blocks_to_markdown([callout]) == "> note\n"

    def test_markdown_survives_conversion(self) -> None:
        """Supported Markdown is reproduced exactly."""
        text = "# Title\n\nSome **bold** and *italic* with `code`.\n\n- one\n- two\n\n> quote\n\n---\n"

        assert blocks_to_markdown(markdown_to_blocks(text)) == text


class TestRichTextToMarkdown:
    """Tests for rich_text_to_markdown."""

    def test_api_response_shape(self) -> None:
        """plain_text and href from API responses are used."""
        rich_text = [
            {"plain_text": "see ", "annotations": {}},
            {"plain_text": "here", "annotations": {"bold": True}, "href": "https://x.test"},
        ]

        assert rich_text_to_markdown(rich_text) == "see [**here**](https://x.test)"

    def test_empty_items_skipped(self) -> None:
        """Empty items produce nothing."""
        assert rich_text_to_markdown([{"plain_text": "", "annotations": {"bold": True}}]) == ""


class TestPageToMarkdown:
    """Tests for page_to_markdown."""

    @pytest.mark.asyncio
    async def test_renders_page(self) -> None:
        """Should fetch the page's blocks and render them."""
        notion = FakeNotion()
        page_id = notion.add_page(ROOT_ID, "Doc", [heading("Doc"), paragraph("text")])

        assert await page_to_markdown(notion, page_id) == "# Doc\n\ntext\n"  # type: ignore[arg-type]
        assert notion.calls["list_blocks"] == 1

"""Markdown <-> Notion block conversion.

This module provides:
- markdown_to_blocks: Parse Markdown text into Notion block payloads
- blocks_to_markdown: Render Notion blocks as Markdown text
- page_to_markdown: Fetch a page's blocks and render them

Supported blocks: headings (1-3), paragraphs, bulleted / numbered / to-do
list items, quotes, fenced code, dividers. Callouts and toggles are
rendered as text on the way down. Inline bold, italic, code,
strikethrough and links map to rich-text annotations.

Only top-level blocks are converted; nested children are not fetched.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from notionsync.client.api import NotionClient

Block = dict[str, Any]

# Notion rejects rich-text items longer than this
MAX_TEXT_LENGTH = 2000

_HEADING_RE = re.compile(r"^(#{1,3})\s+(.*)$")
_TODO_RE = re.compile(r"^[-*+]\s+\[([ xX])\]\s+(.*)$")
_BULLET_RE = re.compile(r"^[-*+]\s+(.*)$")
_NUMBERED_RE = re.compile(r"^\d+[.)]\s+(.*)$")
_QUOTE_RE = re.compile(r"^>\s?(.*)$")
_FENCE_RE = re.compile(r"^```\s*([\w+#-]*)\s*$")
_DIVIDER_RE = re.compile(r"^(-{3,}|\*{3,}|_{3,})$")

_INLINE_RE = re.compile(
    r"\*\*(?P<bold>.+?)\*\*"
    r"|~~(?P<strike>.+?)~~"
    r"|`(?P<code>[^`]+)`"
    r"|\[(?P<link_text>[^\]]+)\]\((?P<link_url>[^)\s]+)\)"
    r"|(?<![\w*])\*(?P<italic>[^*\s][^*]*?)\*(?![\w*])"
    r"|(?<![\w_])_(?P<italic_alt>[^_\s][^_]*?)_(?![\w_])"
)


# =========================================================================
# Markdown -> blocks
# =========================================================================


def _text_item(content: str, link: str | None = None, **annotations: bool) -> Block:
    text: Block = {"content": content}
    if link:
        text["link"] = {"url": link}
    item: Block = {"type": "text", "text": text}
    if annotations:
        item["annotations"] = annotations
    return item


def _split_long(item: Block) -> list[Block]:
    content = item["text"]["content"]
    if len(content) <= MAX_TEXT_LENGTH:
        return [item]
    pieces = []
    for start in range(0, len(content), MAX_TEXT_LENGTH):
        piece = {**item, "text": {**item["text"], "content": content[start : start + MAX_TEXT_LENGTH]}}
        pieces.append(piece)
    return pieces


def parse_inline(text: str) -> list[Block]:
    """Convert inline Markdown to a Notion rich-text array."""
    items: list[Block] = []
    pos = 0
    for match in _INLINE_RE.finditer(text):
        if match.start() > pos:
            items.append(_text_item(text[pos : match.start()]))
        if match.group("bold") is not None:
            items.append(_text_item(match.group("bold"), bold=True))
        elif match.group("strike") is not None:
            items.append(_text_item(match.group("strike"), strikethrough=True))
        elif match.group("code") is not None:
            items.append(_text_item(match.group("code"), code=True))
        elif match.group("link_text") is not None:
            items.append(_text_item(match.group("link_text"), link=match.group("link_url")))
        else:
            italic = match.group("italic") or match.group("italic_alt")
            items.append(_text_item(italic, italic=True))
        pos = match.end()
    if pos < len(text):
        items.append(_text_item(text[pos:]))

    split: list[Block] = []
    for item in items:
        split.extend(_split_long(item))
    return split


def _text_block(block_type: str, text: str, **extra: Any) -> Block:
    return {
        "object": "block",
        "type": block_type,
        block_type: {"rich_text": parse_inline(text), **extra},
    }


def _code_block(language: str, lines: list[str]) -> Block:
    content = "\n".join(lines)
    rich_text: list[Block] = []
    for start in range(0, max(len(content), 1), MAX_TEXT_LENGTH):
        chunk = content[start : start + MAX_TEXT_LENGTH]
        if chunk:
            rich_text.append(_text_item(chunk))
    return {
        "object": "block",
        "type": "code",
        "code": {"rich_text": rich_text, "language": language or "plain text"},
    }


def markdown_to_blocks(text: str) -> list[Block]:
    """Parse Markdown into Notion block payloads.

    Args:
        text: Markdown document.

    Returns:
        Top-level blocks, ready for create/append requests.
    """
    blocks: list[Block] = []
    paragraph: list[str] = []
    lines = text.replace("\r\n", "\n").split("\n")

    def flush_paragraph() -> None:
        if paragraph:
            blocks.append(_text_block("paragraph", "\n".join(paragraph)))
            paragraph.clear()

    i = 0
    while i < len(lines):
        line = lines[i]
        stripped = line.strip()

        fence = _FENCE_RE.match(stripped)
        if fence:
            flush_paragraph()
            code_lines: list[str] = []
            i += 1
            while i < len(lines) and not lines[i].strip().startswith("```"):
                code_lines.append(lines[i])
                i += 1
            blocks.append(_code_block(fence.group(1), code_lines))
            i += 1  # closing fence
            continue

        if not stripped:
            flush_paragraph()
        elif _DIVIDER_RE.match(stripped):
            flush_paragraph()
            blocks.append({"object": "block", "type": "divider", "divider": {}})
        elif match := _HEADING_RE.match(stripped):
            flush_paragraph()
            level = len(match.group(1))
            blocks.append(_text_block(f"heading_{level}", match.group(2).strip()))
        elif match := _TODO_RE.match(stripped):
            flush_paragraph()
            checked = match.group(1).lower() == "x"
            blocks.append(_text_block("to_do", match.group(2), checked=checked))
        elif match := _BULLET_RE.match(stripped):
            flush_paragraph()
            blocks.append(_text_block("bulleted_list_item", match.group(1)))
        elif match := _NUMBERED_RE.match(stripped):
            flush_paragraph()
            blocks.append(_text_block("numbered_list_item", match.group(1)))
        elif match := _QUOTE_RE.match(stripped):
            flush_paragraph()
            blocks.append(_text_block("quote", match.group(1)))
        else:
            paragraph.append(stripped)
        i += 1

    flush_paragraph()
    return blocks


# =========================================================================
# Blocks -> Markdown
# =========================================================================


def rich_text_to_markdown(rich_text: list[Block]) -> str:
    """Convert a Notion rich-text array to inline Markdown."""
    parts = []
    for item in rich_text or []:
        content = item.get("plain_text")
        if content is None:
            content = item.get("text", {}).get("content", "")
        if not content:
            continue

        annotations = item.get("annotations", {})
        if annotations.get("code"):
            content = f"`{content}`"
        if annotations.get("bold"):
            content = f"**{content}**"
        if annotations.get("italic"):
            content = f"*{content}*"
        if annotations.get("strikethrough"):
            content = f"~~{content}~~"

        href = item.get("href") or (item.get("text", {}).get("link") or {}).get("url")
        if href:
            content = f"[{content}]({href})"
        parts.append(content)
    return "".join(parts)


def _body_text(block: Block) -> str:
    body = block.get(block.get("type", ""), {})
    return rich_text_to_markdown(body.get("rich_text", []))


def _render_code(block: Block) -> str:
    body = block.get("code", {})
    language = body.get("language", "")
    if language == "plain text":
        language = ""
    content = "".join(
        item.get("plain_text", item.get("text", {}).get("content", ""))
        for item in body.get("rich_text", [])
    )
    return f"```{language}\n{content}\n```"


def _render_todo(block: Block) -> str:
    mark = "x" if block.get("to_do", {}).get("checked") else " "
    return f"- [{mark}] {_body_text(block)}"


_RENDERERS: dict[str, Callable[[Block], str]] = {
    "paragraph": _body_text,
    "heading_1": lambda block: f"# {_body_text(block)}",
    "heading_2": lambda block: f"## {_body_text(block)}",
    "heading_3": lambda block: f"### {_body_text(block)}",
    "bulleted_list_item": lambda block: f"- {_body_text(block)}",
    "to_do": _render_todo,
    "quote": lambda block: f"> {_body_text(block)}",
    "callout": lambda block: f"> {_body_text(block)}",
    "toggle": _body_text,
    "code": _render_code,
    "divider": lambda block: "---",
}

_LIST_TYPES = frozenset({"bulleted_list_item", "numbered_list_item", "to_do"})


def blocks_to_markdown(blocks: list[Block]) -> str:
    """Render Notion blocks as Markdown.

    Blocks are separated by a blank line, except consecutive list items.
    Unsupported block types are skipped.
    """
    chunks: list[str] = []
    previous_type: str | None = None
    counter = 0

    for block in blocks:
        block_type = block.get("type", "")
        if block_type == "numbered_list_item":
            counter = counter + 1 if previous_type == "numbered_list_item" else 1
            rendered = f"{counter}. {_body_text(block)}"
        elif block_type in _RENDERERS:
            rendered = _RENDERERS[block_type](block)
        else:
            continue

        if chunks:
            tight = previous_type in _LIST_TYPES and block_type in _LIST_TYPES
            chunks.append("\n" if tight else "\n\n")
        chunks.append(rendered)
        previous_type = block_type

    if not chunks:
        return ""
    return "".join(chunks) + "\n"


async def page_to_markdown(client: NotionClient, page_id: str) -> str:
    """Fetch a page's top-level blocks and render them as Markdown."""
    return blocks_to_markdown(await client.list_blocks(page_id))

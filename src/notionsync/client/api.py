"""HTTP client for the Notion API.

This module provides:
- NotionClient: Async client for the page and block endpoints we sync with
- ChildPage: A sub-page listed under a parent page
- update_page_content: Minimal in-place rewrite of a page's blocks

Every request is submitted to a shared RequestQueue and wrapped in the
rate-limit retry, so the whole daemon issues at most one call at a time.
Callers never talk to httpx directly.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx

from notionsync.client.errors import (
    APIError,
    AuthenticationError,
    NotFoundError,
    PageMetadataError,
    RateLimitedError,
)
from notionsync.client.sync.diff import Block, Delete, Insert, Keep, Update, diff_blocks
from notionsync.client.sync.queue import RequestQueue
from notionsync.client.sync.retry import (
    DEFAULT_BASE_DELAY,
    DEFAULT_RETRY_ATTEMPTS,
    retry_rate_limited,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BASE_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
DEFAULT_PAGE_SIZE = 100
MAX_BATCH_SIZE = 100  # Notion accepts at most 100 children per request

# Blocks that are sub-pages, never touched by content updates
CHILD_CONTAINER_TYPES = frozenset({"child_page", "child_database"})

__all__ = [
    "APIError",
    "AuthenticationError",
    "ChildPage",
    "NotFoundError",
    "NotionClient",
    "PageMetadataError",
    "RateLimitedError",
]


@dataclass
class ChildPage:
    """Sub-page listed under a parent page."""

    id: str
    title: str

    @classmethod
    def from_block(cls, block: dict[str, Any]) -> ChildPage:
        """Create from a ``child_page`` block."""
        return cls(
            id=block["id"],
            title=block.get("child_page", {}).get("title", ""),
        )


class NotionClient:
    """Async client for the Notion API."""

    def __init__(
        self,
        api_secret: str,
        queue: RequestQueue,
        base_url: str = DEFAULT_BASE_URL,
        notion_version: str = NOTION_VERSION,
        timeout: float = 30.0,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_batch: int = MAX_BATCH_SIZE,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_base_delay: float = DEFAULT_BASE_DELAY,
    ) -> None:
        """Initialize the Notion client.

        Args:
            api_secret: Integration secret.
            queue: Request queue shared by every remote call of the daemon.
            base_url: API base URL.
            notion_version: Value of the Notion-Version header.
            timeout: Request timeout in seconds.
            page_size: Page size for paginated listings.
            max_batch: Maximum children per create/append request.
            retry_attempts: Attempts per call when rate limited.
            retry_base_delay: Linear backoff step in seconds.
        """
        self._queue = queue
        self._page_size = page_size
        self._max_batch = max_batch
        self._retry_attempts = retry_attempts
        self._retry_base_delay = retry_base_delay
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_secret}",
                "Notion-Version": notion_version,
                "Content-Type": "application/json",
            },
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> NotionClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.aclose()

    @property
    def queue(self) -> RequestQueue:
        """Get the request queue."""
        return self._queue

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code < 400:
            return response

        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get("message") or response.reason_phrase or "Unknown error"
        code = body.get("code")

        if response.status_code == 401:
            raise AuthenticationError(message, 401, code)
        if response.status_code == 404:
            raise NotFoundError(message, 404, code)
        if response.status_code == 429:
            raise RateLimitedError(message, 429, code)
        raise APIError(message, response.status_code, code)

    async def _call(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run one remote call through the queue with rate-limit retry."""
        return await self._queue.enqueue(
            lambda: retry_rate_limited(
                fn,
                attempts=self._retry_attempts,
                base_delay=self._retry_base_delay,
            )
        )

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async def send() -> dict[str, Any]:
            response = await self._client.request(method, path, params=params, json=json)
            self._handle_response(response)
            return dict(response.json())

        return await self._call(send)

    # === Primitive endpoints ===

    async def list_block_children(
        self, block_id: str, start_cursor: str | None = None
    ) -> dict[str, Any]:
        """List one page of a block's children.

        Args:
            block_id: Page or block id.
            start_cursor: Cursor returned by the previous page.

        Returns:
            Raw list response with ``results``, ``has_more``, ``next_cursor``.
        """
        params: dict[str, Any] = {"page_size": self._page_size}
        if start_cursor:
            params["start_cursor"] = start_cursor
        return await self._request("GET", f"/blocks/{block_id}/children", params=params)

    async def append_block_children(
        self,
        block_id: str,
        children: list[Block],
        after: str | None = None,
    ) -> list[dict[str, Any]]:
        """Append blocks under a page or block.

        Args:
            block_id: Parent page or block id.
            children: Blocks to append (at most max_batch).
            after: Sibling block to insert after; appended at the end if None.

        Returns:
            The created blocks, with their new ids.
        """
        body: dict[str, Any] = {"children": children}
        if after:
            body["after"] = after
        data = await self._request("PATCH", f"/blocks/{block_id}/children", json=body)
        return list(data.get("results", []))

    async def delete_block(self, block_id: str) -> None:
        """Archive a block (idempotent on Notion's side)."""
        await self._request("DELETE", f"/blocks/{block_id}")

    async def update_block(self, block_id: str, block: Block) -> None:
        """Replace a block's type-specific payload in place."""
        block_type = block["type"]
        await self._request(
            "PATCH",
            f"/blocks/{block_id}",
            json={block_type: block.get(block_type, {})},
        )

    async def create_page(
        self, parent_id: str, title: str, blocks: list[Block]
    ) -> str:
        """Create a sub-page with content.

        The first max_batch blocks are sent with the page, the rest are
        appended in batches afterwards.

        Returns:
            Id of the new page.
        """
        first, rest = blocks[: self._max_batch], blocks[self._max_batch :]
        data = await self._request(
            "POST",
            "/pages",
            json={
                "parent": {"page_id": parent_id},
                "properties": {
                    "title": {"title": [{"type": "text", "text": {"content": title}}]},
                },
                "children": first,
            },
        )
        page_id = str(data["id"])

        for start in range(0, len(rest), self._max_batch):
            await self.append_block_children(page_id, rest[start : start + self._max_batch])

        return page_id

    async def archive_page(self, page_id: str) -> None:
        """Move a page to the trash."""
        await self._request("PATCH", f"/pages/{page_id}", json={"archived": True})

    async def retrieve_page(self, page_id: str) -> dict[str, Any]:
        """Get a page object."""
        return await self._request("GET", f"/pages/{page_id}")

    # === Composite operations ===

    async def _list_all_children(self, block_id: str) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            data = await self.list_block_children(block_id, start_cursor=cursor)
            results.extend(data.get("results", []))
            cursor = data.get("next_cursor") if data.get("has_more") else None
            if not cursor:
                return results

    async def get_child_pages(self, page_id: str) -> list[ChildPage]:
        """List the direct sub-pages of a page.

        Returns:
            Sub-pages in the order Notion lists them.
        """
        return [
            ChildPage.from_block(block)
            for block in await self._list_all_children(page_id)
            if block.get("type") == "child_page"
        ]

    async def list_blocks(self, page_id: str) -> list[dict[str, Any]]:
        """List all non-archived top-level blocks of a page."""
        return [
            block
            for block in await self._list_all_children(page_id)
            if not block.get("archived") and not block.get("in_trash")
        ]

    async def get_last_edited_time(self, page_id: str) -> str:
        """Get a page's last-edited timestamp.

        Raises:
            PageMetadataError: If the page has no ``last_edited_time``.
        """
        page = await self.retrieve_page(page_id)
        last_edited = page.get("last_edited_time")
        if not last_edited:
            raise PageMetadataError(f"Page {page_id} has no last_edited_time")
        return str(last_edited)

    async def update_page_content(self, page_id: str, blocks: list[Block]) -> None:
        """Rewrite a page's content with the fewest block mutations.

        An empty block list is a no-op: a page is never cleared implicitly.
        Sub-page blocks are left out of the comparison and never deleted.

        Args:
            page_id: Page to update.
            blocks: Desired top-level blocks.
        """
        if not blocks:
            return

        existing = [
            block
            for block in await self.list_blocks(page_id)
            if block.get("type") not in CHILD_CONTAINER_TYPES
        ]
        ops = diff_blocks(existing, blocks)

        # Notion can only append after a sibling, never prepend. New content
        # ahead of every surviving block forces a full rewrite.
        unanchored = any(isinstance(op, Insert) and op.after_block_id is None for op in ops)
        if unanchored and any(isinstance(op, (Keep, Update)) for op in ops):
            logger.info(
                f"Rewriting page {page_id}: content must be inserted before existing blocks"
            )
            await self._replace_all(page_id, existing, blocks)
            return

        counts = {"keep": 0, "insert": 0, "delete": 0, "update": 0}
        last_created: str | None = None
        previous_was_insert = False

        for op in ops:
            if isinstance(op, Delete):
                await self.delete_block(op.block_id)
                counts["delete"] += 1
                previous_was_insert = False
            elif isinstance(op, Keep):
                counts["keep"] += 1
                previous_was_insert = False
            elif isinstance(op, Update):
                await self.update_block(op.block_id, op.block)
                counts["update"] += 1
                previous_was_insert = False
            else:
                after = last_created if previous_was_insert else op.after_block_id
                created = await self.append_block_children(page_id, [op.block], after=after)
                last_created = created[0]["id"] if created else None
                counts["insert"] += 1
                previous_was_insert = True

        logger.debug(
            "Updated page %s: %d kept, %d inserted, %d deleted, %d updated",
            page_id,
            counts["keep"],
            counts["insert"],
            counts["delete"],
            counts["update"],
        )

    async def _replace_all(
        self, page_id: str, existing: list[dict[str, Any]], blocks: list[Block]
    ) -> None:
        for block in existing:
            await self.delete_block(block["id"])

        after: str | None = None
        for block in blocks:
            created = await self.append_block_children(page_id, [block], after=after)
            after = created[0]["id"] if created else None

"""Remote page tree fetching.

This module provides:
- RemoteTreeNode: A page and its sub-pages, keyed by title
- fetch_remote_tree: Recursively list the sub-pages under a page

Sub-pages are keyed by title. When siblings share a title only the last
one listed is kept.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from notionsync.client.api import NotionClient


@dataclass
class RemoteTreeNode:
    """A remote page in the fetched tree."""

    id: str
    children: dict[str, RemoteTreeNode] = field(default_factory=dict)

    @property
    def is_leaf(self) -> bool:
        return not self.children


async def fetch_remote_tree(
    client: NotionClient, page_id: str
) -> dict[str, RemoteTreeNode]:
    """Fetch the sub-page tree under a page.

    Siblings are fetched concurrently; the request queue still serializes
    the underlying calls.

    Args:
        client: Notion client.
        page_id: Page whose descendants to fetch.

    Returns:
        Mapping of child title to node.
    """
    children = await client.get_child_pages(page_id)
    subtrees = await asyncio.gather(
        *(fetch_remote_tree(client, child.id) for child in children)
    )

    tree: dict[str, RemoteTreeNode] = {}
    for child, subtree in zip(children, subtrees):
        tree[child.title] = RemoteTreeNode(id=child.id, children=subtree)
    return tree

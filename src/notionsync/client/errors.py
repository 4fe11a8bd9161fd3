"""Exceptions raised by the Notion client."""

from __future__ import annotations


class APIError(Exception):
    """Base exception for Notion API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class AuthenticationError(APIError):
    """The integration secret was rejected."""


class NotFoundError(APIError):
    """Page or block not found (or not shared with the integration)."""


class RateLimitedError(APIError):
    """The service asked us to slow down (HTTP 429)."""


class PageMetadataError(APIError):
    """A retrieved page lacks a field the sync engine depends on."""

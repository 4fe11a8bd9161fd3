"""FastAPI application receiving Notion webhooks.

This module provides:
- WebhookHandler: Decides what a notification triggers, with deduplication
- create_app: The FastAPI app (``GET /health``, ``POST /``)
- WebhookServer: Runs the app with uvicorn inside the daemon's event loop

Notifications:
- A body carrying ``verification_token`` is the subscription handshake:
  acknowledged, nothing else.
- ``page.content_updated`` is acknowledged, then one pull pass runs in
  the background. Notifications arriving while a pass runs are dropped.
- Anything else is acknowledged and ignored.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import uvicorn
from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse

from notionsync import __version__
from notionsync.server.schemas import (
    AckResponse,
    ErrorResponse,
    HealthResponse,
    WebhookNotification,
)

logger = logging.getLogger(__name__)

CONTENT_UPDATED = "page.content_updated"

OnNotification = Callable[[str | None], Awaitable[Any]]


class WebhookHandler:
    """Turns notifications into pull passes, one at a time."""

    def __init__(self, on_notification: OnNotification) -> None:
        """Initialize the handler.

        Args:
            on_notification: Coroutine function run for a content update,
                called with the updated page id (if any).
        """
        self._on_notification = on_notification
        self._syncing = False
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    def accept(self, notification: WebhookNotification) -> bool:
        """Decide whether a notification starts a pull pass.

        Marks the pass as running when it returns True; the caller must
        then run ``process``.
        """
        if notification.verification_token:
            logger.info("Webhook verification request received")
            return False
        if notification.type != CONTENT_UPDATED:
            logger.debug("Ignoring webhook of type %s", notification.type)
            return False
        if self._syncing:
            logger.debug("Webhook pull already running, dropping notification")
            return False

        self._syncing = True
        self._idle.clear()
        return True

    async def process(self, page_id: str | None) -> None:
        """Run one pull pass for an accepted notification."""
        try:
            await self._on_notification(page_id)
        except Exception:
            logger.exception("Error handling webhook notification")
        finally:
            self._syncing = False
            self._idle.set()

    async def wait_idle(self) -> None:
        """Wait for a running pull pass to finish."""
        await self._idle.wait()


def create_app(handler: WebhookHandler) -> FastAPI:
    """Create the webhook application.

    Args:
        handler: Handler deciding what notifications trigger.

    Returns:
        Configured FastAPI application.
    """
    application = FastAPI(
        title="notionsync webhook",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    application.state.handler = handler

    @application.get("/health", response_model=HealthResponse)
    def health_check() -> HealthResponse:
        """Check daemon health."""
        return HealthResponse(status="ok")

    @application.post("/", response_model=AckResponse)
    async def receive_notification(
        request: Request, background_tasks: BackgroundTasks
    ) -> AckResponse | JSONResponse:
        """Acknowledge a notification and schedule its pull pass."""
        try:
            body = json.loads(await request.body())
        except ValueError:
            return JSONResponse(
                status_code=400, content=ErrorResponse(error="Invalid JSON").model_dump()
            )
        if not isinstance(body, dict):
            return JSONResponse(
                status_code=400, content=ErrorResponse(error="Invalid JSON").model_dump()
            )

        notification = WebhookNotification.from_body(body)
        if handler.accept(notification):
            page_id = notification.entity.id if notification.entity else None
            logger.info(f"Remote content updated (page {page_id}), pulling")
            background_tasks.add_task(handler.process, page_id)

        return AckResponse(ok=True)

    return application


class WebhookServer:
    """uvicorn server for the webhook app, run as a task on the daemon loop."""

    def __init__(self, app: FastAPI, port: int, host: str = "0.0.0.0") -> None:
        """Initialize the server.

        Args:
            app: Webhook application.
            port: Port to listen on.
            host: Interface to bind.
        """
        config = uvicorn.Config(app, host=host, port=port, log_config=None, lifespan="off")
        self._server = uvicorn.Server(config)
        self._port = port

    @property
    def port(self) -> int:
        return self._port

    async def serve(self) -> None:
        """Serve until ``stop`` is called."""
        logger.info(f"Webhook server listening on port {self._port}")
        await self._server.serve()

    def stop(self) -> None:
        """Ask the server to exit."""
        self._server.should_exit = True

"""Long-running sync daemon for one target.

This module provides:
- Daemon: Startup sync, then watcher + poller + webhook until stopped

Lifecycle:
1. Write the pid file.
2. Run the startup sync. A failure aborts: the pid file is removed and
   the error propagates.
3. Start the triggers and wait for SIGINT / SIGTERM (or ``request_stop``).
4. Stop accepting triggers, let running syncs finish, save state, remove
   the pid file.
"""

from __future__ import annotations

import asyncio
import logging
import signal

from notionsync.client.api import NotionClient
from notionsync.client.state import StateStore
from notionsync.client.sync.engine import Reconciler, SyncResult
from notionsync.client.sync.lock import SyncLock
from notionsync.client.sync.poller import Poller
from notionsync.client.sync.queue import RequestQueue
from notionsync.client.sync.watcher import FileWatcher
from notionsync.core.config import SyncConfig
from notionsync.server.app import WebhookHandler, WebhookServer, create_app

logger = logging.getLogger(__name__)

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class Daemon:
    """Runs the sync of one local folder with one Notion page."""

    def __init__(self, config: SyncConfig, webhook: bool = True) -> None:
        """Initialize the daemon.

        Args:
            config: Target configuration.
            webhook: Whether to serve the webhook endpoint.
        """
        self._config = config
        self._webhook = webhook
        self._store = StateStore(config.dir_path, config.root_page_id, config.state_root)
        self._stop_event = asyncio.Event()

    @property
    def store(self) -> StateStore:
        return self._store

    def request_stop(self) -> None:
        """Ask the daemon to shut down."""
        if not self._stop_event.is_set():
            logger.info("Stop requested")
            self._stop_event.set()

    def _create_client(self) -> NotionClient:
        config = self._config
        return NotionClient(
            api_secret=config.api_secret,
            queue=RequestQueue(delay=config.call_delay),
            base_url=config.api_base_url,
            notion_version=config.notion_version,
            timeout=config.timeout,
            page_size=config.page_size,
            max_batch=config.max_batch,
            retry_attempts=config.retry_attempts,
            retry_base_delay=config.retry_base_delay,
        )

    async def run(self) -> SyncResult:
        """Run until stopped.

        Returns:
            Result of the startup sync.

        Raises:
            StateError: If the state file is corrupt.
            APIError: If the startup push fails.
        """
        config = self._config
        loop = asyncio.get_running_loop()
        self._store.write_pid()
        logger.info("=" * 60)
        logger.info("notionsync starting%s", f" ({config.name})" if config.name else "")
        logger.info("  Folder:    %s", config.dir_path)
        logger.info("  Root page: %s", config.root_page_id)
        logger.info("  State:     %s", self._store.state_dir)
        logger.info("=" * 60)

        client = self._create_client()
        lock = SyncLock(suppress_window=config.suppress_window)
        try:
            reconciler = Reconciler(client, self._store, lock)
            result = await reconciler.startup_sync()

            watcher = FileWatcher(reconciler, debounce_delay=config.debounce_delay)
            poller = Poller(reconciler, interval=config.poll_interval)
            handler = WebhookHandler(lambda _page_id: reconciler.sync_from_remote())

            for sig in STOP_SIGNALS:
                loop.add_signal_handler(sig, self.request_stop)

            watcher.start()
            poller.start()
            server: WebhookServer | None = None
            server_task: asyncio.Task[None] | None = None
            if self._webhook:
                server = WebhookServer(create_app(handler), config.port)
                server_task = loop.create_task(server.serve())
                server_task.add_done_callback(lambda _task: self.request_stop())

            try:
                await self._stop_event.wait()
            finally:
                logger.info("Shutting down")
                watcher.stop()
                poller.stop()
                if server is not None and server_task is not None:
                    server.stop()
                    await asyncio.gather(server_task, return_exceptions=True)
                await watcher.drain()
                await poller.drain()
                await handler.wait_idle()
                reconciler.save()
                for sig in STOP_SIGNALS:
                    loop.remove_signal_handler(sig)

            return result
        finally:
            lock.close()
            await client.aclose()
            self._store.clean_pid()
            logger.info("notionsync stopped")

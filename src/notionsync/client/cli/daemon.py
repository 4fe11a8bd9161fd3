"""Daemon commands for the notionsync CLI.

Commands:
- start: Sync a folder with a Notion page and keep watching
- stop: Stop the daemon of a target
- status: Show what is tracked for a target
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import time
from pathlib import Path

import click

from notionsync.client.cli.config import get_state_root, get_store, setup_logging
from notionsync.client.state import StateError
from notionsync.core.config import ConfigError, resolve_config

logger = logging.getLogger(__name__)

STOP_TIMEOUT = 5.0  # seconds


def is_process_alive(pid: int) -> bool:
    """Check if a process exists."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


@click.command()
@click.argument(
    "directory", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.argument("page_id")
@click.option("--api-secret", help="Notion integration secret.")
@click.option("--port", type=int, help="Port for the webhook server.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="JSON config file (default ~/.notion-sync/config.json).",
)
@click.option("--name", help="Name shown in the logs.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option("--no-webhook", is_flag=True, help="Do not serve the webhook endpoint.")
def start(
    directory: Path,
    page_id: str,
    api_secret: str | None,
    port: int | None,
    config_path: Path | None,
    name: str | None,
    verbose: bool,
    no_webhook: bool,
) -> None:
    """Sync DIRECTORY with the Notion page PAGE_ID and keep them in sync.

    Runs in the foreground until interrupted.
    """
    from notionsync.client.daemon import Daemon

    try:
        config = resolve_config(
            directory,
            page_id,
            api_secret=api_secret,
            port=port,
            config_path=config_path,
            name=name,
        )
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    config.state_root = get_state_root()

    store = get_store(config.dir_path, config.root_page_id)
    pid = store.read_pid()
    if pid is not None and pid != os.getpid() and is_process_alive(pid):
        click.echo(f"Error: already running (pid {pid})", err=True)
        sys.exit(1)

    setup_logging(store.log_path, verbose)
    daemon = Daemon(config, webhook=not no_webhook)

    try:
        result = asyncio.run(daemon.run())
    except KeyboardInterrupt:
        click.echo("Interrupted")
        return
    except StateError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        logger.exception("Startup failed")
        click.echo(f"Error: startup failed: {e}", err=True)
        sys.exit(1)
    finally:
        store.clean_pid()

    click.echo(f"Stopped. Startup sync: {result.summary()}")


@click.command()
@click.argument("directory", type=click.Path(file_okay=False, path_type=Path))
@click.argument("page_id")
def stop(directory: Path, page_id: str) -> None:
    """Stop the daemon syncing DIRECTORY with PAGE_ID."""
    store = get_store(directory, page_id)
    pid = store.read_pid()
    if pid is None:
        click.echo("Not running")
        return

    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        click.echo(f"Process {pid} not found, removing stale pid file")
        store.clean_pid()
        return

    deadline = time.monotonic() + STOP_TIMEOUT
    while time.monotonic() < deadline and is_process_alive(pid):
        time.sleep(0.1)

    if is_process_alive(pid):
        click.echo(f"Warning: process {pid} still running after {STOP_TIMEOUT:.0f}s", err=True)
    else:
        click.echo(f"Stopped (pid {pid})")
    store.clean_pid()


@click.command()
@click.argument("directory", type=click.Path(file_okay=False, path_type=Path))
@click.argument("page_id")
def status(directory: Path, page_id: str) -> None:
    """Show the sync status of DIRECTORY with PAGE_ID."""
    store = get_store(directory, page_id)

    try:
        state = store.load()
    except StateError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    pid = store.read_pid()
    running = pid is not None and is_process_alive(pid)

    click.echo(f"Folder:    {store.dir_path}")
    click.echo(f"Root page: {store.root_id}")
    click.echo(f"State:     {store.state_dir}")
    click.echo(f"Daemon:    {f'running (pid {pid})' if running else 'stopped'}")
    if state is None:
        click.echo("Never synced")
        return
    click.echo(f"Tracked files:   {len(state.files)}")
    click.echo(f"Tracked folders: {len(state.dirs)}")

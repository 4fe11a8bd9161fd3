"""Command-line interface for notionsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- start: Sync a folder with a Notion page and keep watching
- stop: Stop a running daemon
- status: Show what is tracked for a folder / page pair
"""

from __future__ import annotations

import click

from notionsync.client.cli.config import get_state_root, get_store, setup_logging
from notionsync.client.cli.daemon import start, status, stop


@click.group()
@click.version_option(package_name="notionsync")
def cli() -> None:
    """notionsync - Two-way sync between a Markdown folder and Notion."""


# Daemon commands
cli.add_command(start)
cli.add_command(stop)
cli.add_command(status)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "get_state_root",
    "get_store",
    "main",
    "setup_logging",
]

"""Configuration utilities for the notionsync CLI.

This module provides shared helpers used across CLI commands.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from notionsync.client.state import StateStore
from notionsync.core.config import DEFAULT_STATE_ROOT

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_path: Path | None = None, verbose: bool = False) -> None:
    """Configure logging to output to stdout and, optionally, a file.

    Args:
        log_path: Path to the log file (None: stdout only).
        verbose: Log at DEBUG instead of INFO.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    # Root logger for notionsync
    root_logger = logging.getLogger("notionsync")
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    # Stdout handler
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    if log_path is None:
        return

    # File handler
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Also capture uvicorn logs to file
    for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(uvicorn_name).addHandler(file_handler)


def get_state_root() -> Path:
    """Get the directory holding the state of every target.

    Returns:
        Path to ~/.notion-sync.
    """
    return DEFAULT_STATE_ROOT


def get_store(directory: Path, page_id: str) -> StateStore:
    """Get the state store of a (folder, page) target."""
    return StateStore(directory, page_id, get_state_root())

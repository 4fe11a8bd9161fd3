"""Shared configuration for notionsync.

This module provides:
- SyncConfig: Settings for one sync target (local folder <-> Notion root page)
- resolve_config: Merge CLI flags, the JSON config file and the environment
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_PORT = 4648
DEFAULT_STATE_ROOT = Path.home() / ".notion-sync"
DEFAULT_CONFIG_PATH = DEFAULT_STATE_ROOT / "config.json"

API_SECRET_ENV = "NOTION_SYNC_API_SECRET"
PORT_ENV = "NOTION_SYNC_PORT"


class ConfigError(ValueError):
    """Configuration is missing or invalid."""


@dataclass
class SyncConfig:
    """Configuration for a single sync target.

    Attributes:
        api_secret: Notion integration secret.
        dir_path: Absolute path of the local folder.
        root_page_id: Notion page the folder is mirrored under.
        port: Port for the webhook server.
        name: Optional human-readable name for the target.
        call_delay: Pause between two remote calls, in seconds.
        retry_attempts: Attempts per remote call when rate limited.
        retry_base_delay: Linear backoff step for rate-limit retries.
        debounce_delay: Quiet window before a local change is pushed.
        suppress_window: How long a pull-written path is ignored by the watcher.
        poll_interval: Seconds between two remote catch-up passes.
    """

    api_secret: str
    dir_path: Path
    root_page_id: str
    port: int = DEFAULT_PORT
    name: str | None = None
    call_delay: float = 0.334
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    debounce_delay: float = 1.0
    suppress_window: float = 2.0
    poll_interval: float = 30.0
    page_size: int = 100
    max_batch: int = 100
    api_base_url: str = "https://api.notion.com/v1"
    notion_version: str = "2022-06-28"
    timeout: float = 30.0
    state_root: Path = field(default_factory=lambda: DEFAULT_STATE_ROOT)

    def __post_init__(self) -> None:
        """Normalize paths and the API base URL."""
        self.dir_path = Path(self.dir_path).expanduser().resolve()
        self.state_root = Path(self.state_root).expanduser()
        self.api_base_url = self.api_base_url.rstrip("/")


def load_config_file(config_path: Path) -> dict[str, Any]:
    """Load the JSON config file.

    A missing file is treated as an empty configuration.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    try:
        raw = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid config file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config file {config_path}: expected an object")
    return data


def _parse_port(value: Any, source: str) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid port from {source}: {value!r}") from e
    if not 0 <= port <= 65535:
        raise ConfigError(f"Port out of range from {source}: {port}")
    return port


def resolve_config(
    dir_path: str | Path,
    root_page_id: str,
    api_secret: str | None = None,
    port: int | None = None,
    config_path: Path | None = None,
    name: str | None = None,
    env: dict[str, str] | None = None,
) -> SyncConfig:
    """Build a SyncConfig from flags, config file and environment.

    Precedence for the API secret and port: flag, then config file,
    then environment, then the default.

    Raises:
        ConfigError: If no API secret is available or a value is invalid.
    """
    environ = os.environ if env is None else env
    file_config = load_config_file(config_path or DEFAULT_CONFIG_PATH)

    secret = api_secret
    if secret is None:
        secret = file_config.get("apiSecret")
    if secret is None:
        secret = environ.get(API_SECRET_ENV) or None
    if not secret:
        raise ConfigError(
            "apiSecret is required: pass --api-secret, "
            f"set {API_SECRET_ENV}, or add it to the config file"
        )

    resolved_port = DEFAULT_PORT
    if port is not None:
        resolved_port = _parse_port(port, "--port")
    elif file_config.get("port") is not None:
        resolved_port = _parse_port(file_config["port"], "config file")
    elif environ.get(PORT_ENV):
        resolved_port = _parse_port(environ[PORT_ENV], PORT_ENV)

    if not root_page_id:
        raise ConfigError("A root page id is required")

    return SyncConfig(
        api_secret=secret,
        dir_path=Path(dir_path),
        root_page_id=root_page_id,
        port=resolved_port,
        name=name,
    )

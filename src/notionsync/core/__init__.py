"""Core module - Shared configuration and hashing."""

from notionsync.core.config import (
    DEFAULT_PORT,
    ConfigError,
    SyncConfig,
    load_config_file,
    resolve_config,
)
from notionsync.core.hashing import hash_content, state_key

__all__ = [
    # Config
    "DEFAULT_PORT",
    "ConfigError",
    "SyncConfig",
    "load_config_file",
    "resolve_config",
    # Hashing
    "hash_content",
    "state_key",
]

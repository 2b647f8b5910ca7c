"""Configuration utilities for the CodeSync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from codesync.core.config import (
    DEFAULT_LOCAL_CHECK_INTERVAL,
    DEFAULT_SYNC_INTERVAL,
    DEFAULT_TIMEOUT,
    ServerConfig,
    SyncConfig,
)

CONFIG_DIR_ENV = "CODESYNC_CONFIG_DIR"


def get_config_dir() -> Path:
    """Get the configuration directory for CodeSync.

    Returns:
        Path from CODESYNC_CONFIG_DIR, or ~/.codesync.
    """
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".codesync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_state_db() -> Path:
    """Get the path to the session state database."""
    return get_config_dir() / "state.db"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_sync_folder() -> Path:
    """Get the sync folder path.

    Returns:
        Path to the sync folder (configured or default ~/CodeSync).
    """
    config = load_config()
    if config.get("sync_folder"):
        return Path(config["sync_folder"]).expanduser().resolve()
    return Path.home() / "CodeSync"


def build_server_config(config: dict[str, Any]) -> ServerConfig:
    """Build the remote store connection settings from the config file.

    Raises:
        ValueError: If no server URL is configured.
    """
    server_url = config.get("server_url")
    if not server_url:
        raise ValueError("No server configured. Run 'codesync init' first.")
    return ServerConfig(
        server_url=server_url,
        token=config.get("token"),
        timeout=float(config.get("timeout", DEFAULT_TIMEOUT)),
        verify_ssl=bool(config.get("verify_ssl", True)),
    )


def build_sync_config(config: dict[str, Any]) -> SyncConfig:
    """Build the sync cadence and policy from the config file."""
    return SyncConfig(
        sync_interval=float(config.get("sync_interval", DEFAULT_SYNC_INTERVAL)),
        local_check_interval=float(
            config.get("local_check_interval", DEFAULT_LOCAL_CHECK_INTERVAL)
        ),
        notifications=bool(config.get("notifications", True)),
        mirror_remote_deletions=bool(config.get("mirror_remote_deletions", False)),
        ignore_patterns=list(config.get("ignore_patterns", [])),
    )

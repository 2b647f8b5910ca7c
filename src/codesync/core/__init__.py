"""Core module - Shared configuration and types."""

from codesync.core.config import ServerConfig, SyncConfig
from codesync.core.types import SyncError, SyncState

__all__ = [
    # Config
    "ServerConfig",
    "SyncConfig",
    # Types
    "SyncError",
    "SyncState",
]

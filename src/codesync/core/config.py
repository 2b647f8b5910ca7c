"""Shared configuration classes for codesync.

This module defines configuration classes used by both client and server components.
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_SYNC_INTERVAL = 5.0
DEFAULT_LOCAL_CHECK_INTERVAL = 1.0
DEFAULT_TIMEOUT = 10.0


@dataclass
class ServerConfig:
    """Configuration for connecting to a remote document store.

    Attributes:
        server_url: Base URL of the store (e.g., "http://localhost:8000").
        token: Optional bearer token sent with every request.
        timeout: Request timeout in seconds. Exceeding it counts as unreachable.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    token: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS.

        Returns:
            True if server uses HTTPS.
        """
        return self.server_url.startswith("https://")


@dataclass
class SyncConfig:
    """Process-wide sync cadence and policy.

    Attributes:
        sync_interval: Seconds between full reconciliation passes.
        local_check_interval: Seconds between checks of the local change queue.
            A pass is triggered early when local changes are pending.
        notifications: Whether to show desktop notifications.
        mirror_remote_deletions: Delete local files that disappeared remotely
            instead of re-creating them on the remote side.
        ignore_patterns: Extra gitignore-style patterns to exclude.
    """

    sync_interval: float = DEFAULT_SYNC_INTERVAL
    local_check_interval: float = DEFAULT_LOCAL_CHECK_INTERVAL
    notifications: bool = True
    mirror_remote_deletions: bool = False
    ignore_patterns: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Validate intervals."""
        if self.sync_interval <= 0:
            raise ValueError(f"sync_interval must be positive, got {self.sync_interval}")
        if self.local_check_interval <= 0:
            raise ValueError(
                f"local_check_interval must be positive, got {self.local_check_interval}"
            )

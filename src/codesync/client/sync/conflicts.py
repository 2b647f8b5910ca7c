"""Conflict bookkeeping for one sync session.

This module provides:
- ConflictResolutionTracker: Live conflicts and the choices made for them

A resolution is remembered together with the two contents it settled. The
engine re-applies it while the divergence is the same one and treats any
other divergence on that name as new.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

from codesync.client.sync.types import Conflict, Resolution

logger = logging.getLogger(__name__)


class ConflictResolutionTracker:
    """Records conflicts surfaced to a human and the answers given.

    Thread-safe: passes run on the scheduler thread while resolutions
    arrive from the presentation layer.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._live: dict[str, Conflict] = {}
        self._resolutions: dict[str, Resolution] = {}

    def register(self, conflicts: Iterable[Conflict]) -> None:
        """Replace the live conflict set with the one found by a pass."""
        with self._lock:
            self._live = {c.name: c for c in conflicts}
            if self._live:
                logger.info("Conflicts awaiting resolution: %s", ", ".join(self._live))

    def resolve(self, name: str, keep_local: bool) -> str | None:
        """Record a human choice for a live conflict.

        Args:
            name: Conflicting file name.
            keep_local: True to keep the local content, False for the remote.

        Returns:
            Content the losing side will receive, or None when name has no
            live conflict (the resolution is stale and ignored).
        """
        with self._lock:
            conflict = self._live.pop(name, None)
            if conflict is None:
                logger.info("Ignoring stale resolution for %s", name)
                return None

            resolution = Resolution(
                name=name,
                keep_local=keep_local,
                local_content=conflict.local_content,
                remote_content=conflict.remote_content,
            )
            self._resolutions[name] = resolution
            logger.info(
                "Resolved %s: keeping %s", name, "local" if keep_local else "remote"
            )
            return resolution.winning_content

    def is_resolved(self, name: str) -> bool:
        """Check if a resolution is remembered for name."""
        with self._lock:
            return name in self._resolutions

    def resolution_for(self, name: str) -> Resolution | None:
        """Remembered resolution for name, if any."""
        with self._lock:
            return self._resolutions.get(name)

    def forget(self, name: str) -> None:
        """Drop the remembered resolution for name."""
        with self._lock:
            self._resolutions.pop(name, None)

    def resolved(self) -> dict[str, Resolution]:
        """Snapshot of every remembered resolution."""
        with self._lock:
            return dict(self._resolutions)

    def live(self) -> list[Conflict]:
        """Snapshot of the conflicts still waiting for a choice."""
        with self._lock:
            return list(self._live.values())

    @property
    def has_live_conflicts(self) -> bool:
        """True while any registered conflict is unresolved."""
        with self._lock:
            return bool(self._live)

    def reset(self) -> None:
        """Forget all conflicts and resolutions."""
        with self._lock:
            self._live.clear()
            self._resolutions.clear()
        logger.debug("Conflict tracker reset")

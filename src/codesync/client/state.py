"""Persisted session state for the sync client.

This module provides:
- MappingStatus: Sync status of one file
- FileMapping: Ties a remote document identity to its local path
- SyncSessionState: Directory, mappings and flags that survive restarts
- SyncStateStore: SQLite-backed key/value store holding the session record

The whole session is one JSON record under a fixed key, rewritten after
every mutation. Readers always get copies.
"""

from __future__ import annotations

import copy
import json
import logging
import sqlite3
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

STORAGE_KEY = "codesync-state"


class MappingStatus(str, Enum):
    """Sync status of a mapped file."""

    SYNCED = "synced"
    SYNCING = "syncing"
    CONFLICT = "conflict"
    ERROR = "error"


@dataclass
class FileMapping:
    """Record tying a remote document to its local path.

    Attributes:
        remote_identity: Identity of the remote document, empty for a
            local file whose upload failed.
        local_path: Path relative to the sync folder.
        status: Outcome of the last pass for this file.
        last_sync_at: Unix timestamp of the pass that produced the record.
        error_message: Why the file is in ERROR status.
    """

    remote_identity: str
    local_path: str
    status: MappingStatus = MappingStatus.SYNCED
    last_sync_at: float | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted layout."""
        return {
            "remoteIdentity": self.remote_identity,
            "localPath": self.local_path,
            "status": self.status.value,
            "lastSyncAt": self.last_sync_at,
            "errorMessage": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileMapping:
        """Create from the persisted layout."""
        return cls(
            remote_identity=data["remoteIdentity"],
            local_path=data["localPath"],
            status=MappingStatus(data.get("status", MappingStatus.SYNCED.value)),
            last_sync_at=data.get("lastSyncAt"),
            error_message=data.get("errorMessage"),
        )


@dataclass
class SyncSessionState:
    """Everything about the sync session that is kept across restarts.

    Attributes:
        directory: Local sync folder, or None before one is chosen.
        mappings: One record per remote document, plus failed local-only
            files, ordered by local path.
        last_sync_timestamp: Unix timestamp of the last completed pass.
        has_completed_initial_resolution: True once a human resolved the
            first set of conflicts. From then on local content wins.
    """

    directory: str | None = None
    mappings: list[FileMapping] = field(default_factory=list)
    last_sync_timestamp: float | None = None
    has_completed_initial_resolution: bool = False

    def mapping_for(self, local_path: str) -> FileMapping | None:
        """Find the mapping of a local path."""
        for mapping in self.mappings:
            if mapping.local_path == local_path:
                return mapping
        return None

    def copy(self) -> SyncSessionState:
        """Deep copy, safe to hand to readers."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted layout."""
        return {
            "directory": self.directory,
            "mappings": [m.to_dict() for m in self.mappings],
            "lastSyncTimestamp": self.last_sync_timestamp,
            "hasCompletedInitialResolution": self.has_completed_initial_resolution,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncSessionState:
        """Create from the persisted layout."""
        return cls(
            directory=data.get("directory"),
            mappings=[FileMapping.from_dict(m) for m in data.get("mappings", [])],
            last_sync_timestamp=data.get("lastSyncTimestamp"),
            has_completed_initial_resolution=bool(
                data.get("hasCompletedInitialResolution", False)
            ),
        )


def validate_mappings(mappings: list[FileMapping]) -> None:
    """Check that no two mappings share a remote identity.

    Mappings with an empty identity (local files that never reached the
    remote store) are not checked.

    Raises:
        ValueError: On a duplicate identity.
    """
    seen: set[str] = set()
    for mapping in mappings:
        if not mapping.remote_identity:
            continue
        if mapping.remote_identity in seen:
            raise ValueError(f"Duplicate mapping for remote identity {mapping.remote_identity}")
        seen.add(mapping.remote_identity)


class SyncStateStore:
    """SQLite-backed store for the session record.

    The record lives in a key/value table under STORAGE_KEY and is read at
    startup and rewritten after every change.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Open (or create) the state database.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS session_data (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        """)

        self._state = self._read()

    @property
    def db_path(self) -> Path:
        """Location of the state database."""
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def _read(self) -> SyncSessionState:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM session_data WHERE key = ?",
                (STORAGE_KEY,),
            ).fetchone()
        if row is None or not row["value"]:
            return SyncSessionState()
        try:
            return SyncSessionState.from_dict(json.loads(row["value"]))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding unreadable session state: %s", e)
            return SyncSessionState()

    def _write(self, state: SyncSessionState) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO session_data (key, value) VALUES (?, ?)",
                (STORAGE_KEY, json.dumps(state.to_dict())),
            )

    def load(self) -> SyncSessionState:
        """Return a copy of the current session state."""
        with self._lock:
            return self._state.copy()

    def save(self, state: SyncSessionState) -> None:
        """Replace and persist the whole session state.

        Raises:
            ValueError: If two mappings share a remote identity.
        """
        validate_mappings(state.mappings)
        with self._lock:
            self._state = state.copy()
            self._write(self._state)
        logger.debug(
            "Saved session state: %d mappings, directory=%s",
            len(state.mappings),
            state.directory,
        )

    def update(self, **changes: Any) -> SyncSessionState:
        """Change some fields, persist, and return the new state.

        Args:
            **changes: SyncSessionState field values.
        """
        with self._lock:
            state = replace(self._state.copy(), **changes)
            self.save(state)
            return state.copy()

    def clear(self) -> None:
        """Forget the session entirely."""
        with self._lock:
            self._state = SyncSessionState()
            self._conn.execute("DELETE FROM session_data WHERE key = ?", (STORAGE_KEY,))
        logger.info("Session state cleared")

"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError, LocalIOError: Exception classes
- ChangeKind, LocalChange: Local change events produced by the watcher
- FileWrite, MaterializeResult, LocalListing: Local directory I/O results
- Conflict, Resolution: Divergent files and the choice made for them
- SyncSuccess, ConflictsPending: Outcomes of one reconciliation pass
- Type aliases for callbacks
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from codesync.core.types import SyncError

if TYPE_CHECKING:
    from codesync.client.state import FileMapping


class LocalIOError(SyncError):
    """Failed to read or write a file in the local directory."""

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(f"{name}: {message}")


# =============================================================================
# Local change events
# =============================================================================


class ChangeKind(str, Enum):
    """Kind of local file change."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class LocalChange:
    """A file-level change observed in the local directory.

    Attributes:
        kind: What happened to the file.
        path: Path relative to the watched root, forward slashes.
        content: Text content read when the event was observed (None for REMOVED).
        observed_at: Unix timestamp of the observation.
    """

    kind: ChangeKind
    path: str
    content: str | None = None
    observed_at: float = field(default_factory=time.time)


# =============================================================================
# Local directory I/O
# =============================================================================


@dataclass(frozen=True)
class FileWrite:
    """A file to write into the local directory."""

    name: str
    content: str


@dataclass
class MaterializeResult:
    """Result of applying writes and deletions to the local directory."""

    written: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


@dataclass
class LocalListing:
    """Readable text files of the local directory, keyed by relative name."""

    files: dict[str, str] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)


# =============================================================================
# Conflicts
# =============================================================================


@dataclass(frozen=True)
class Conflict:
    """A file whose content differs between local and remote.

    Attributes:
        remote_identity: Identity of the remote document.
        name: Shared file name.
        local_content: Content in the local directory.
        remote_content: Content in the remote store.
    """

    remote_identity: str
    name: str
    local_content: str
    remote_content: str


@dataclass(frozen=True)
class Resolution:
    """A human choice for one conflict, remembered for the session."""

    name: str
    keep_local: bool
    local_content: str
    remote_content: str

    @property
    def winning_content(self) -> str:
        """Content that the losing side receives."""
        return self.local_content if self.keep_local else self.remote_content

    def matches(self, local_content: str, remote_content: str) -> bool:
        """Check whether a divergence is the one this resolution settled."""
        return (
            self.local_content == local_content
            and self.remote_content == remote_content
        )


# =============================================================================
# Pass outcomes
# =============================================================================


@dataclass
class PassReport:
    """Files touched by one reconciliation pass.

    Attributes:
        uploaded: Names pushed to the remote store.
        downloaded: Names written into the local directory.
        deleted: Names deleted from the local directory.
        auto_resolved: Conflicts resolved without a prompt (local kept).
        resolved: Conflicts settled by a remembered human resolution.
        errors: Per-file failures, name -> message.
    """

    uploaded: list[str] = field(default_factory=list)
    downloaded: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    auto_resolved: list[str] = field(default_factory=list)
    resolved: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def total_changes(self) -> int:
        """Number of files written or deleted on either side."""
        return len(self.uploaded) + len(self.downloaded) + len(self.deleted)


@dataclass
class SyncSuccess:
    """Pass finished without unresolved conflicts."""

    report: PassReport
    mappings: list[FileMapping] = field(default_factory=list)
    finished_at: float = field(default_factory=time.time)


@dataclass
class ConflictsPending:
    """Pass found divergent files that need a human decision.

    Non-conflicting files were still propagated; see report.
    """

    conflicts: list[Conflict]
    report: PassReport
    mappings: list[FileMapping] = field(default_factory=list)
    finished_at: float = field(default_factory=time.time)

    @property
    def names(self) -> list[str]:
        """Names of the conflicting files."""
        return [c.name for c in self.conflicts]


PassResult = SyncSuccess | ConflictsPending

# Type aliases for scheduler callbacks
CompletionCallback = Callable[[SyncSuccess], None]
ConflictsCallback = Callable[[list[Conflict]], None]
ErrorCallback = Callable[[str], None]

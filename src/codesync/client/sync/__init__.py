"""Bidirectional sync between the remote document store and a local folder.

Architecture:
    LocalChangeWatcher ─┐
    RemoteSnapshotter ──┼─> ReconciliationEngine ─> DirectoryMaterializer / DocumentClient
    DirectoryMaterializer (scan) ─┘         │
                                            └─> ConflictResolutionTracker

    SyncScheduler runs the pass on an interval and persists the outcome.

Components:
- **LocalChangeWatcher**: Queues file-level changes, drained once per pass
- **RemoteSnapshotter**: Complete remote listing or an exception
- **DirectoryMaterializer**: Per-file local writes, deletions and listing
- **ReconciliationEngine**: Three-way classification and propagation
- **ConflictResolutionTracker**: Human choices remembered for the session
- **SyncScheduler**: Non-overlapping polling loop and state machine
"""

from codesync.client.sync.conflicts import ConflictResolutionTracker
from codesync.client.sync.engine import (
    PassInput,
    ReconciliationEngine,
    SyncPlan,
    build_mappings,
    classify,
)
from codesync.client.sync.ignore import IgnorePatterns
from codesync.client.sync.materializer import DirectoryMaterializer
from codesync.client.sync.scheduler import SyncScheduler, SyncSession
from codesync.client.sync.snapshot import RemoteSnapshotter
from codesync.client.sync.types import (
    ChangeKind,
    Conflict,
    ConflictsPending,
    FileWrite,
    LocalChange,
    LocalIOError,
    LocalListing,
    MaterializeResult,
    PassReport,
    PassResult,
    Resolution,
    SyncError,
    SyncSuccess,
)
from codesync.client.sync.watcher import LocalChangeWatcher

__all__ = [
    # Components
    "ConflictResolutionTracker",
    "DirectoryMaterializer",
    "IgnorePatterns",
    "LocalChangeWatcher",
    "ReconciliationEngine",
    "RemoteSnapshotter",
    "SyncScheduler",
    "SyncSession",
    # Engine
    "PassInput",
    "SyncPlan",
    "build_mappings",
    "classify",
    # Types
    "ChangeKind",
    "Conflict",
    "ConflictsPending",
    "FileWrite",
    "LocalChange",
    "LocalIOError",
    "LocalListing",
    "MaterializeResult",
    "PassReport",
    "PassResult",
    "Resolution",
    "SyncError",
    "SyncSuccess",
]

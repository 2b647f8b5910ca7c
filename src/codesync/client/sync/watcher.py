"""Local directory watcher feeding the reconciliation passes.

This module provides:
- ChangeCollector: watchdog handler that turns file events into LocalChange
- LocalChangeWatcher: Observes a directory and hands out disjoint batches

Every event is read and queued as it arrives. Nothing is coalesced: two
writes to the same file produce two MODIFIED entries, and drain() hands the
whole batch over in one swap so a pass never sees half of it.
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from codesync.client.sync.ignore import IGNORE_FILE_NAME, IgnorePatterns
from codesync.client.sync.materializer import read_text
from codesync.client.sync.types import ChangeKind, LocalChange

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)


def _decode_path(raw: str | bytes) -> Path:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return Path(raw)


class ChangeCollector(FileSystemEventHandler):
    """Event handler that appends LocalChange entries to a queue."""

    def __init__(self, base_path: Path, ignore_patterns: IgnorePatterns) -> None:
        """Initialize the collector.

        Args:
            base_path: Resolved root of the watched directory.
            ignore_patterns: Rules for paths that are never reported.
        """
        super().__init__()
        self._base_path = base_path
        self._ignore = ignore_patterns
        self._queue: list[LocalChange] = []
        self._lock = threading.Lock()

    def _relative(self, path: Path) -> str | None:
        try:
            rel_path = path.relative_to(self._base_path)
        except ValueError:
            logger.warning("Path %s is not relative to %s", path, self._base_path)
            return None
        return str(rel_path).replace("\\", "/")

    def _read(self, kind: ChangeKind, path: Path, rel_path: str) -> LocalChange:
        """Build a change carrying the file content.

        A file that vanished or is not text by the time it is read is
        reported as removed.
        """
        try:
            content = read_text(path)
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Could not read %s (%s), reporting as removed", rel_path, e)
            return LocalChange(kind=ChangeKind.REMOVED, path=rel_path)
        return LocalChange(kind=kind, path=rel_path, content=content)

    def _record(self, kind: ChangeKind, path: Path) -> None:
        if self._ignore.should_ignore(path, self._base_path):
            return
        rel_path = self._relative(path)
        if rel_path is None:
            return

        if kind is ChangeKind.REMOVED:
            change = LocalChange(kind=kind, path=rel_path)
        else:
            change = self._read(kind, path, rel_path)

        with self._lock:
            self._queue.append(change)
        logger.debug("Queued local change: %s %s", change.kind.value, change.path)

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle created event."""
        if isinstance(event, FileCreatedEvent):
            self._record(ChangeKind.ADDED, _decode_path(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle modified event."""
        if isinstance(event, FileModifiedEvent):
            self._record(ChangeKind.MODIFIED, _decode_path(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle deleted event."""
        if isinstance(event, FileDeletedEvent):
            self._record(ChangeKind.REMOVED, _decode_path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle moved event as a removal followed by an addition."""
        if isinstance(event, FileMovedEvent):
            self._record(ChangeKind.REMOVED, _decode_path(event.src_path))
            self._record(ChangeKind.ADDED, _decode_path(event.dest_path))

    def drain(self) -> list[LocalChange]:
        """Swap the queue out and return everything it held."""
        with self._lock:
            batch, self._queue = self._queue, []
        return batch

    def pending(self) -> int:
        """Number of queued changes."""
        with self._lock:
            return len(self._queue)


class LocalChangeWatcher:
    """Watches a directory subtree and queues file-level changes.

    The observer runs in watchdog's own thread and only ever appends;
    consumers call drain() once per pass.
    """

    def __init__(self, ignore_patterns: list[str] | None = None) -> None:
        """Initialize the watcher.

        Args:
            ignore_patterns: Extra patterns on top of the defaults and
                the directory's ignore file.
        """
        self._extra_patterns = ignore_patterns
        self._directory: Path | None = None
        self._collector: ChangeCollector | None = None
        self._observer: BaseObserver | None = None
        self._started_at: float | None = None
        self._drains = 0

    @property
    def directory(self) -> Path | None:
        """Watched directory, or None when stopped."""
        return self._directory

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._observer is not None

    @property
    def has_history(self) -> bool:
        """True once a batch has been drained since the watcher started.

        Until then the queue says nothing about changes made before start.
        """
        return self.is_running and self._drains > 0

    @property
    def started_at(self) -> float | None:
        """Unix timestamp of the last start()."""
        return self._started_at

    def start(self, directory: Path | str) -> None:
        """Begin observing a directory.

        Restarting on another directory drops whatever was queued for the
        previous one.

        Raises:
            ValueError: If the path is not a directory.
        """
        path = Path(directory).resolve()
        if not path.is_dir():
            raise ValueError(f"Watch path must be a directory: {directory}")

        if self.is_running:
            if path == self._directory:
                return
            self.stop()

        ignore = IgnorePatterns(self._extra_patterns)
        ignore.load_from_file(path / IGNORE_FILE_NAME)

        self._collector = ChangeCollector(path, ignore)
        observer = Observer()
        observer.schedule(self._collector, str(path), recursive=True)
        observer.start()

        self._observer = observer
        self._directory = path
        self._started_at = time.time()
        self._drains = 0
        logger.info("Watching %s", path)

    def drain(self) -> list[LocalChange]:
        """Return changes observed since the previous drain, in order.

        Each call returns a disjoint batch; the queue is cleared atomically.
        """
        if self._collector is None:
            return []
        self._drains += 1
        return self._collector.drain()

    def pending(self) -> int:
        """Number of changes waiting for the next drain."""
        if self._collector is None:
            return 0
        return self._collector.pending()

    def stop(self) -> None:
        """Stop observing and release the observer thread."""
        if self._observer is None:
            return

        self._observer.stop()
        self._observer.join(timeout=5.0)
        logger.info("Stopped watching %s", self._directory)
        self._observer = None
        self._collector = None
        self._directory = None

    def __enter__(self) -> LocalChangeWatcher:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.stop()

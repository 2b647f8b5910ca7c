"""Shared fakes for client sync tests."""

from __future__ import annotations

import itertools
import threading
from pathlib import Path

import pytest

from codesync.client.api import NotFoundError, RemoteError, RemoteFile, RemoteUnavailable
from codesync.client.state import SyncStateStore
from codesync.client.sync.types import ChangeKind, LocalChange


class FakeDocumentStore:
    """In-memory stand-in for DocumentClient."""

    def __init__(self) -> None:
        self.documents: dict[str, RemoteFile] = {}
        self.writes: list[tuple[str, str]] = []
        self.deletes: list[str] = []
        self.list_calls = 0
        self.unavailable = False
        self.rejected: set[str] = set()
        # Set to make list_files() block until released
        self.gate: threading.Event | None = None
        self.entered = threading.Event()
        self._ids = itertools.count(1)

    def seed(self, name: str, content: str) -> RemoteFile:
        """Put a document in place without recording a write."""
        existing = self.documents.get(name)
        identity = existing.identity if existing else f"doc-{next(self._ids)}"
        remote = RemoteFile(identity=identity, name=name, content=content)
        self.documents[name] = remote
        return remote

    def content(self, name: str) -> str | None:
        remote = self.documents.get(name)
        return remote.content if remote else None

    def list_files(self) -> list[RemoteFile]:
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.unavailable:
            raise RemoteUnavailable("Cannot reach http://test")
        self.list_calls += 1
        return list(self.documents.values())

    def create_or_update(self, name: str, content: str) -> RemoteFile:
        if self.unavailable:
            raise RemoteUnavailable("Cannot reach http://test")
        if name in self.rejected:
            raise RemoteError("Rejected by store", 422)
        self.writes.append((name, content))
        return self.seed(name, content)

    def delete(self, name: str) -> None:
        if name not in self.documents:
            raise NotFoundError("Document not found", 404)
        del self.documents[name]
        self.deletes.append(name)


class FakeWatcher:
    """LocalChangeWatcher stand-in with a hand-fed queue."""

    def __init__(self) -> None:
        self.queue: list[LocalChange] = []
        self.directory: Path | None = None
        self.drains = 0
        self.starts = 0

    @property
    def is_running(self) -> bool:
        return self.directory is not None

    @property
    def has_history(self) -> bool:
        return self.is_running and self.drains > 0

    def start(self, directory: Path | str) -> None:
        self.directory = Path(directory)
        self.drains = 0
        self.starts += 1

    def stop(self) -> None:
        self.directory = None

    def push(self, kind: ChangeKind, path: str, content: str | None = None) -> None:
        self.queue.append(LocalChange(kind=kind, path=path, content=content))

    def drain(self) -> list[LocalChange]:
        self.drains += 1
        batch, self.queue = self.queue, []
        return batch

    def pending(self) -> int:
        return len(self.queue)


@pytest.fixture
def remote_store() -> FakeDocumentStore:
    """Create an empty fake remote store."""
    return FakeDocumentStore()


@pytest.fixture
def fake_watcher() -> FakeWatcher:
    """Create a fake watcher."""
    return FakeWatcher()


@pytest.fixture
def sync_folder(tmp_path: Path) -> Path:
    """Create an empty sync folder."""
    folder = tmp_path / "project"
    folder.mkdir()
    return folder


@pytest.fixture
def state_store(tmp_path: Path) -> SyncStateStore:
    """Create a session state store."""
    store = SyncStateStore(tmp_path / "state.db")
    yield store
    store.close()

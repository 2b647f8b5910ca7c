"""Pytest fixtures for integration tests.

This module provides fixtures for end-to-end testing against the real
document store app, served in-process through FastAPI's TestClient.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from dataclasses import dataclass
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from codesync.client.api import DocumentClient
from codesync.client.state import SyncStateStore
from codesync.client.sync import SyncScheduler
from codesync.core.config import ServerConfig, SyncConfig
from codesync.server.app import create_app
from codesync.server.database import Database


@dataclass
class SyncTestClient:
    """Container for a simulated sync client."""

    name: str
    sync_folder: Path
    store: SyncStateStore
    api_client: DocumentClient
    scheduler: SyncScheduler

    def create_file(self, relative_path: str, content: str) -> Path:
        """Create a file in the sync folder."""
        path = self.sync_folder / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def read_file(self, relative_path: str) -> str | None:
        """Read a file from the sync folder, None if missing."""
        path = self.sync_folder / relative_path
        return path.read_text(encoding="utf-8") if path.exists() else None

    def close(self) -> None:
        """Stop syncing and release resources."""
        self.scheduler.stop()
        self.store.close()
        self.api_client.close()


@pytest.fixture
def server_db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create the document store database."""
    db = Database(tmp_path / "server.db")
    yield db
    db.close()


@pytest.fixture
def server_app(server_db: Database) -> FastAPI:
    """Create the document store app."""
    return create_app(server_db)


@pytest.fixture
def make_client(
    tmp_path: Path, server_app: FastAPI
) -> Generator[Callable[[str], SyncTestClient], None, None]:
    """Factory for sync clients sharing one document store."""
    clients: list[SyncTestClient] = []

    def factory(name: str) -> SyncTestClient:
        base = tmp_path / name
        sync_folder = base / "sync"
        sync_folder.mkdir(parents=True, exist_ok=True)

        api_client = DocumentClient(
            ServerConfig(server_url="http://testserver"),
            http_client=TestClient(server_app),
        )
        store = SyncStateStore(base / "state.db")
        scheduler = SyncScheduler(
            api_client,
            store,
            SyncConfig(sync_interval=3600, local_check_interval=3600, notifications=False),
        )
        client = SyncTestClient(
            name=name,
            sync_folder=sync_folder,
            store=store,
            api_client=api_client,
            scheduler=scheduler,
        )
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.close()


@pytest.fixture
def client_a(make_client: Callable[[str], SyncTestClient]) -> SyncTestClient:
    """First sync client."""
    return make_client("client_a")


@pytest.fixture
def client_b(make_client: Callable[[str], SyncTestClient]) -> SyncTestClient:
    """Second sync client."""
    return make_client("client_b")

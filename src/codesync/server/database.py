"""Document store database using SQLAlchemy with SQLite.

This module provides:
- Document listing, lookup, upsert and deletion
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from codesync.server.models import Base, Document

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class Database:
    """SQLAlchemy database holding the documents.

    Uses SQLite with WAL mode for better concurrency with multiple readers.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # check_same_thread=False for multi-threaded access
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False},
            echo=False,
        )

        with self._engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")

        Base.metadata.create_all(self._engine)

    @property
    def db_path(self) -> Path:
        """Location of the database file."""
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine)

    # === Document operations ===

    def list_documents(self) -> list[Document]:
        """List every document, ordered by name."""
        with self._session() as session:
            stmt = select(Document).order_by(Document.name)
            documents = list(session.execute(stmt).scalars().all())
            for document in documents:
                session.expunge(document)
            return documents

    def count_documents(self) -> int:
        """Number of stored documents."""
        with self._session() as session:
            return int(session.execute(select(func.count(Document.id))).scalar_one())

    def get_document(self, name: str) -> Document | None:
        """Get a document by name.

        Returns:
            Document if found, None otherwise.
        """
        with self._session() as session:
            stmt = select(Document).where(Document.name == name)
            document = session.execute(stmt).scalar_one_or_none()
            if document:
                session.expunge(document)
            return document

    def upsert_document(self, name: str, content: str) -> tuple[Document, bool]:
        """Create a document or replace its content.

        The identity of an existing document is kept.

        Returns:
            Tuple of (document, created).
        """
        with self._session() as session:
            stmt = select(Document).where(Document.name == name)
            document = session.execute(stmt).scalar_one_or_none()
            created = document is None
            if document is None:
                document = Document(name=name, content=content)
                session.add(document)
            else:
                document.content = content
                document.updated_at = datetime.now(UTC)
            session.commit()
            session.refresh(document)
            session.expunge(document)

        logger.info("%s document %s", "Created" if created else "Updated", name)
        return document, created

    def delete_document(self, name: str) -> bool:
        """Delete a document.

        Returns:
            True if a document was deleted, False if none had that name.
        """
        with self._session() as session:
            stmt = select(Document).where(Document.name == name)
            document = session.execute(stmt).scalar_one_or_none()
            if document is None:
                return False
            session.delete(document)
            session.commit()

        logger.info("Deleted document %s", name)
        return True

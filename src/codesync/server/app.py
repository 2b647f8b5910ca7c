"""FastAPI application for the CodeSync document store.

This module creates and configures the FastAPI application serving the
document API the sync client talks to.

Usage:
    uvicorn codesync.server.app:app_factory --factory --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from codesync import __version__
from codesync.server.api.router import router as api_router
from codesync.server.database import Database

# Configuration from environment variables with defaults
DB_PATH = Path(os.environ.get("CODESYNC_DB_PATH", "codesync.db"))
LOG_PATH = Path(os.environ.get("CODESYNC_LOG_PATH", "codesync-server.log"))
TOKEN = os.environ.get("CODESYNC_TOKEN")

logger = logging.getLogger(__name__)


def setup_logging(log_path: Path) -> None:
    """Configure logging to output to both file and stdout.

    Args:
        log_path: Path to the log file.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    root_logger = logging.getLogger("codesync")
    root_logger.setLevel(logging.INFO)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Also capture uvicorn logs to file
    for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(uvicorn_name)
        uvicorn_logger.addHandler(file_handler)


def create_app(db: Database, token: str | None = None) -> FastAPI:
    """Create FastAPI application with a given database.

    Args:
        db: Database instance.
        token: Bearer token required on /api routes; None disables auth.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        logger.info("=" * 60)
        logger.info("CodeSync Document Store Starting")
        logger.info("=" * 60)
        logger.info("  Database: %s", db.db_path)
        logger.info("  Auth:     %s", "bearer token" if token else "disabled")
        logger.info("=" * 60)

        yield

        logger.info("CodeSync Document Store shutting down")

    application = FastAPI(
        title="CodeSync Document Store",
        description="Named text documents kept in sync with local folders",
        version=__version__,
        lifespan=lifespan,
    )

    application.state.db = db
    application.state.token = token

    application.include_router(api_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    setup_logging(LOG_PATH)
    return create_app(db=Database(DB_PATH), token=TOKEN)

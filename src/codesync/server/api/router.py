"""Main API router that includes all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from codesync.server.api import documents, health

router = APIRouter()

# Include all API routers
router.include_router(health.router)
router.include_router(documents.router)

"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from pydantic import BaseModel

from codesync.server.models import Document

# === Document schemas ===


class DocumentWriteRequest(BaseModel):
    """Request body for creating or replacing a document."""

    content: str


class DocumentResponse(BaseModel):
    """Document in responses."""

    id: str
    name: str
    content: str
    created_at: str
    updated_at: str


# === Health schema ===


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


# === Converters ===


def document_to_response(document: Document) -> DocumentResponse:
    """Convert Document to response model."""
    return DocumentResponse(
        id=document.id,
        name=document.name,
        content=document.content,
        created_at=document.created_at.isoformat(),
        updated_at=document.updated_at.isoformat(),
    )

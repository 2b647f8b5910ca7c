"""Document API routes.

The listing is always complete: X-Total-Count carries the number of
documents so clients can detect a truncated response.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from codesync.server.api.deps import get_db, require_token
from codesync.server.database import Database
from codesync.server.schemas import (
    DocumentResponse,
    DocumentWriteRequest,
    document_to_response,
)

TOTAL_COUNT_HEADER = "X-Total-Count"

router = APIRouter(prefix="/api", tags=["documents"], dependencies=[Depends(require_token)])


@router.get("/files", response_model=list[DocumentResponse])
def list_documents(
    response: Response,
    db: Database = Depends(get_db),
) -> list[DocumentResponse]:
    """List every document with its content."""
    documents = db.list_documents()
    response.headers[TOTAL_COUNT_HEADER] = str(len(documents))
    return [document_to_response(d) for d in documents]


@router.get("/files/{name:path}", response_model=DocumentResponse)
def get_document(
    name: str,
    db: Database = Depends(get_db),
) -> DocumentResponse:
    """Get one document by name."""
    document = db.get_document(name)
    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document not found: {name}",
        )
    return document_to_response(document)


@router.put("/files/{name:path}", response_model=DocumentResponse)
def put_document(
    name: str,
    request: DocumentWriteRequest,
    response: Response,
    db: Database = Depends(get_db),
) -> DocumentResponse:
    """Create a document or replace its content.

    Answers 201 when the document was created and 200 when it was updated.
    """
    if not name or name.startswith("/") or ".." in name.split("/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid document name: {name}",
        )
    document, created = db.upsert_document(name, request.content)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return document_to_response(document)


@router.delete("/files/{name:path}")
def delete_document(
    name: str,
    db: Database = Depends(get_db),
) -> Response:
    """Delete a document."""
    if not db.delete_document(name):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document not found: {name}",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)

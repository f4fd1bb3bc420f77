# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import FileResponse

from leave_ledger.api.deps import AuthDep, validate_org_scope
from leave_ledger.db import SessionDep
from leave_ledger.exceptions import AppError, NotFoundError
from leave_ledger.schemas.document import DocumentResponse
from leave_ledger.services import documents as document_service

documents_router = APIRouter(
    prefix="/orgs/{org_id}/documents",
    tags=["documents"],
    dependencies=[Depends(validate_org_scope)],
)

_CHUNK_SIZE = 64 * 1024


async def _iter_upload(upload: UploadFile) -> AsyncIterator[bytes]:
    while chunk := await upload.read(_CHUNK_SIZE):
        yield chunk


@documents_router.post("", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    session: SessionDep,
    auth: AuthDep,
    employee_id: str = Form(min_length=1, max_length=255),
    file: UploadFile = File(),
) -> DocumentResponse:
    """Upload a supporting document for an employee."""
    return await document_service.upload_document(
        session,
        auth,
        employee_id,
        file.filename or "document",
        file.content_type or "application/octet-stream",
        _iter_upload(file),
    )


@documents_router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> DocumentResponse:
    """Get a document's metadata."""
    return await document_service.get_document_metadata(session, auth.org_id, document_id)


@documents_router.get("/{document_id}/content")
async def download_document(
    document_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> FileResponse:
    """Stream a document's bytes. Employees can only read their own documents."""
    document = await document_service.get_document(session, auth.org_id, document_id)
    if not auth.is_admin and document.employee_id != auth.user_id:
        raise AppError("Cannot read another employee's document", status_code=status.HTTP_403_FORBIDDEN)
    path = document_service.document_path(document)
    if not path.is_file():
        raise NotFoundError("Document content not found")
    return FileResponse(path, media_type=document.content_type, filename=document.filename)

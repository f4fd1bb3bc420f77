# ruff: noqa: TC003
"""Supporting documents: metadata rows plus content-addressed blob storage.

Bytes are streamed to disk in chunks and stored under their SHA-256 digest,
so identical uploads share one blob.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import tempfile
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import select
from sqlmodel import col

from leave_ledger.config import get_settings
from leave_ledger.exceptions import AppError, NotFoundError
from leave_ledger.models.document import LeaveDocument
from leave_ledger.models.enums import AuditAction, AuditEntityType
from leave_ledger.schemas.document import DocumentResponse
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.auth import AuthContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredBlob:
    digest: str
    size_bytes: int


class DocumentTooLargeError(AppError):
    """An upload exceeded the configured size limit."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"Document exceeds the maximum size of {limit} bytes", status_code=413)


class DocumentStore(Protocol):
    """Blob storage keyed by content digest."""

    async def save(self, chunks: AsyncIterator[bytes], max_bytes: int) -> StoredBlob: ...

    def path_for(self, digest: str) -> Path: ...


class FilesystemDocumentStore:
    """Stores blobs as ``<root>/<digest[:2]>/<digest>``."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def path_for(self, digest: str) -> Path:
        return self._root / digest[:2] / digest

    async def save(self, chunks: AsyncIterator[bytes], max_bytes: int) -> StoredBlob:
        await asyncio.to_thread(self._root.mkdir, parents=True, exist_ok=True)
        hasher = hashlib.sha256()
        size = 0
        fd, tmp_name = await asyncio.to_thread(tempfile.mkstemp, dir=self._root, prefix=".upload-")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as fh:
                async for chunk in chunks:
                    size += len(chunk)
                    if size > max_bytes:
                        raise DocumentTooLargeError(max_bytes)
                    hasher.update(chunk)
                    await asyncio.to_thread(fh.write, chunk)
            digest = hasher.hexdigest()
            target = self.path_for(digest)
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(os.replace, tmp_path, target)
        finally:
            await asyncio.to_thread(tmp_path.unlink, missing_ok=True)
        return StoredBlob(digest=digest, size_bytes=size)


_document_store: DocumentStore | None = None


def get_document_store() -> DocumentStore:
    """Return the configured document store."""
    global _document_store
    if _document_store is None:
        _document_store = FilesystemDocumentStore(get_settings().document_storage_dir)
    return _document_store


def set_document_store(store: DocumentStore | None) -> None:
    """Override the store (for testing), or None to fall back to the configured directory."""
    global _document_store
    _document_store = store


def _build_document_response(document: LeaveDocument) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        org_id=document.org_id,
        employee_id=document.employee_id,
        filename=document.filename,
        content_type=document.content_type,
        size_bytes=document.size_bytes,
        digest=document.digest,
        created_at=document.created_at,
    )


async def upload_document(
    session: AsyncSession,
    auth: AuthContext,
    employee_id: str,
    filename: str,
    content_type: str,
    chunks: AsyncIterator[bytes],
) -> DocumentResponse:
    """Store an uploaded document for an employee."""
    if not auth.is_admin and employee_id != auth.user_id:
        raise AppError("Cannot upload documents for another employee", status_code=403)

    settings = get_settings()
    blob = await get_document_store().save(chunks, settings.max_document_bytes)
    if blob.size_bytes == 0:
        raise AppError("Document is empty", status_code=400)

    document = LeaveDocument(
        org_id=auth.org_id,
        employee_id=employee_id,
        filename=filename,
        content_type=content_type,
        size_bytes=blob.size_bytes,
        digest=blob.digest,
    )
    session.add(document)
    await session.flush()

    await write_audit_log(
        session,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.DOCUMENT,
        entity_id=document.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(document),
    )

    await session.commit()
    await session.refresh(document)
    logger.info("Stored document %s (%s bytes) for employee=%s", document.id, blob.size_bytes, employee_id)
    return _build_document_response(document)


async def get_document(session: AsyncSession, org_id: int, document_id: uuid.UUID) -> LeaveDocument:
    """Fetch document metadata. Raises NotFoundError if missing."""
    result = await session.execute(
        select(LeaveDocument).where(
            col(LeaveDocument.id) == document_id,
            col(LeaveDocument.org_id) == org_id,
        )
    )
    document = result.scalar_one_or_none()
    if document is None:
        raise NotFoundError("Document not found")
    return document


async def get_document_metadata(session: AsyncSession, org_id: int, document_id: uuid.UUID) -> DocumentResponse:
    return _build_document_response(await get_document(session, org_id, document_id))


def document_path(document: LeaveDocument) -> Path:
    """Filesystem path of a document's blob."""
    return get_document_store().path_for(document.digest)


async def verify_documents(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    document_ids: Sequence[uuid.UUID],
) -> list[str]:
    """Check every id names a document owned by the employee. Returns the ids as strings."""
    unique_ids = list(dict.fromkeys(document_ids))
    if not unique_ids:
        return []
    result = await session.execute(
        select(LeaveDocument.id).where(
            col(LeaveDocument.org_id) == org_id,
            col(LeaveDocument.employee_id) == employee_id,
            col(LeaveDocument.id).in_(unique_ids),
        )
    )
    found = set(result.scalars().all())
    missing = [doc_id for doc_id in unique_ids if doc_id not in found]
    if missing:
        raise NotFoundError(f"Document not found: {missing[0]}")
    return [str(doc_id) for doc_id in unique_ids]

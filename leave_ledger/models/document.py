from __future__ import annotations

from sqlmodel import Field

from leave_ledger.models.base import OrgScoped, TimestampMixin, UUIDBase


class LeaveDocument(UUIDBase, OrgScoped, TimestampMixin, table=True):
    """Metadata for a supporting document; the bytes live in blob storage under ``digest``."""

    __tablename__ = "leave_document"

    employee_id: str = Field(max_length=255, index=True)
    filename: str = Field(max_length=255)
    content_type: str = Field(max_length=255)
    size_bytes: int
    digest: str = Field(max_length=64, index=True)

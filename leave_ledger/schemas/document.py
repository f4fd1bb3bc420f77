# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel


class DocumentResponse(BaseModel):
    """Metadata of an uploaded supporting document."""

    id: uuid.UUID
    org_id: int
    employee_id: str
    filename: str
    content_type: str
    size_bytes: int
    digest: str
    created_at: datetime

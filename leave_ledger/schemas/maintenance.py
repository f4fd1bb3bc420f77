# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from leave_ledger.models.enums import RecalculationMode

# ---------------------------------------------------------------------------
# Recalculation / carry-forward
# ---------------------------------------------------------------------------


class RecalculateRequest(BaseModel):
    """Request body for the bulk balance recalculation."""

    mode: RecalculationMode = RecalculationMode.AUTO
    as_of: date | None = None


class RecalculateResponse(BaseModel):
    """Summary of a bulk recalculation run."""

    org_id: int
    mode: RecalculationMode
    year: int
    processed: int
    succeeded: int
    skipped: int
    failed: int
    reconciled: int
    accrued: int
    errors: list[dict[str, Any]]


class CarryForwardRequest(BaseModel):
    """Request body for year-end carry-forward."""

    from_year: int = Field(ge=1900, le=9998)


class CarryForwardResponse(BaseModel):
    """Summary of a carry-forward run."""

    org_id: int
    from_year: int
    processed: int
    carried: int
    skipped: int
    failed: int


# ---------------------------------------------------------------------------
# Leave-type mappings and opening-balance import
# ---------------------------------------------------------------------------


class CreateLeaveTypeMappingRequest(BaseModel):
    """Request body for mapping an external leave-type label to a leave type."""

    source_name: str = Field(min_length=1, max_length=255)
    leave_type_id: uuid.UUID


class LeaveTypeMappingResponse(BaseModel):
    """Response schema for a leave-type mapping."""

    id: uuid.UUID
    org_id: int
    source_name: str
    leave_type_id: uuid.UUID
    created_at: datetime


class LeaveTypeMappingListResponse(BaseModel):
    """List of leave-type mappings."""

    items: list[LeaveTypeMappingResponse]
    total: int


class OpeningBalanceRow(BaseModel):
    """One employee's opening balance for one leave type."""

    employee_id: str = Field(min_length=1, max_length=255)
    leave_type: str = Field(min_length=1, max_length=255)
    opening_balance: Decimal = Field(ge=0)
    availed: Decimal = Field(default=Decimal("0"), ge=0)


class OpeningBalanceImportRequest(BaseModel):
    """Request body for importing opening balances."""

    year: int = Field(ge=1900, le=9999)
    rows: list[OpeningBalanceRow] = Field(min_length=1)


class OpeningBalanceImportResponse(BaseModel):
    """Summary of an opening-balance import."""

    year: int
    imported: int
    skipped: int

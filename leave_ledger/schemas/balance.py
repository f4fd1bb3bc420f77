# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from leave_ledger.models.enums import LedgerEntryKind

# ---------------------------------------------------------------------------
# Balance response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    """Balance of one employee for one policy and year."""

    employee_id: str
    policy_id: uuid.UUID
    policy_key: str
    policy_name: str
    year: int
    total_entitlement: Decimal | None  # None for untracked policies
    current_balance: Decimal | None
    used_balance: Decimal
    carry_forward: Decimal
    opening_balance: Decimal | None
    earned_to_date: Decimal | None  # available by the reference date, None for untracked policies
    is_tracked: bool
    updated_at: datetime | None


class BalanceListResponse(BaseModel):
    """All policy balances for an employee."""

    items: list[BalanceResponse]
    total: int


# ---------------------------------------------------------------------------
# Ledger response schemas
# ---------------------------------------------------------------------------


class LedgerEntryResponse(BaseModel):
    """A single ledger entry."""

    id: uuid.UUID
    employee_id: str
    policy_id: uuid.UUID
    year: int
    kind: LedgerEntryKind
    amount: Decimal
    resulting_balance: Decimal
    description: str
    request_id: uuid.UUID | None
    created_by: str
    metadata_json: dict[str, Any] | None
    created_at: datetime


class LedgerListResponse(BaseModel):
    """Paginated ledger entries."""

    items: list[LedgerEntryResponse]
    total: int


# ---------------------------------------------------------------------------
# Write payloads
# ---------------------------------------------------------------------------


class SeedBalanceRequest(BaseModel):
    """Request body for seeding a balance on first login."""

    as_of: date | None = None


class CreateAdjustmentRequest(BaseModel):
    """Request body for creating an admin balance adjustment."""

    employee_id: str = Field(min_length=1, max_length=255)
    policy_id: uuid.UUID
    year: int | None = Field(default=None, ge=1900, le=9999)
    amount: Decimal = Field(
        description="Signed days: positive to add, negative to deduct",
        decimal_places=2,
    )
    reason: str = Field(min_length=1, max_length=1000)

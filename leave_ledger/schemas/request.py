# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Self

from pydantic import BaseModel, Field, model_validator

from leave_ledger.models.enums import RequestStatus

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class SubmitRequestPayload(BaseModel):
    """Request body for submitting a new leave request."""

    employee_id: str = Field(min_length=1, max_length=255)
    policy_id: uuid.UUID
    start_date: date
    end_date: date
    start_half_day: bool = False  # take only the second half of start_date
    end_half_day: bool = False  # take only the first half of end_date
    reason: str | None = Field(default=None, max_length=2000)
    document_ids: list[uuid.UUID] = []

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must be on or after start_date"
            raise ValueError(msg)
        return self


class DecisionPayload(BaseModel):
    """Request body for approving a workflow step."""

    note: str | None = Field(default=None, max_length=1000)


class RejectPayload(BaseModel):
    """Request body for rejecting a request or its withdrawal."""

    reason: str = Field(min_length=1, max_length=1000)


class WithdrawPayload(BaseModel):
    """Request body for withdrawing a request."""

    reason: str | None = Field(default=None, max_length=1000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class RequestResponse(BaseModel):
    """Response schema for a single leave request."""

    id: uuid.UUID
    org_id: int
    employee_id: str
    policy_id: uuid.UUID
    start_date: date
    end_date: date
    start_half_day: bool
    end_half_day: bool
    working_days: Decimal
    balance_year: int
    reason: str | None
    status: RequestStatus
    workflow_id: uuid.UUID | None
    current_step: int
    approval_history: list[dict[str, Any]]
    document_ids: list[str]
    submitted_at: datetime | None
    decided_at: datetime | None
    decided_by: str | None
    decision_note: str | None
    withdrawal_reason: str | None
    created_at: datetime


class RequestListResponse(BaseModel):
    """Paginated list of leave requests."""

    items: list[RequestResponse]
    total: int


class ValidationPreviewResponse(BaseModel):
    """Outcome of a dry-run validation of a candidate request."""

    working_days: Decimal
    available_days: Decimal | None
    violations: list[str]
    is_valid: bool

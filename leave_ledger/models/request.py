# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import DAYS_TYPE, OrgScoped, TimestampMixin, UUIDBase
from leave_ledger.models.enums import RequestStatus


class LeaveRequest(UUIDBase, OrgScoped, TimestampMixin, table=True):
    """An employee's leave request with approval workflow state."""

    __tablename__ = "leave_request"
    __table_args__ = (sa.Index("ix_request_org_status", "org_id", "status"),)

    employee_id: str = Field(max_length=255, index=True)
    policy_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("leave_policy.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    start_date: date
    end_date: date
    start_half_day: bool = Field(default=False, sa_column_kwargs={"server_default": sa.false()})
    end_half_day: bool = Field(default=False, sa_column_kwargs={"server_default": sa.false()})
    working_days: Decimal = Field(sa_type=DAYS_TYPE)
    balance_year: int
    reason: str | None = None
    status: str = Field(
        default=RequestStatus.PENDING, max_length=50, index=True, sa_column_kwargs={"server_default": "PENDING"}
    )
    workflow_id: uuid.UUID | None = Field(default=None, sa_type=sa.Uuid)
    current_step: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    approval_history: list[dict[str, Any]] = Field(default_factory=list, sa_type=sa.JSON)
    document_ids: list[str] = Field(default_factory=list, sa_type=sa.JSON)
    submitted_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    decided_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    decided_by: str | None = Field(default=None, max_length=255)
    decision_note: str | None = None
    withdrawal_reason: str | None = None

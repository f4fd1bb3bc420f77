# ruff: noqa: TC003
from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import DAYS_TYPE, OrgScoped, TimestampMixin, UUIDBase


class LeaveLedgerEntry(UUIDBase, OrgScoped, TimestampMixin, table=True):
    """Append-only ledger entry that records every balance-affecting event.

    ``description`` doubles as a correlation key: entries tied to a request
    always contain ``#<request id>``.
    """

    __tablename__ = "leave_ledger_entry"
    __table_args__ = (sa.Index("ix_ledger_employee_policy_year", "employee_id", "policy_id", "year"),)

    employee_id: str = Field(max_length=255, index=True)
    policy_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("leave_policy.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    year: int
    kind: str = Field(max_length=50)
    amount: Decimal = Field(sa_type=DAYS_TYPE)
    resulting_balance: Decimal = Field(sa_type=DAYS_TYPE)
    description: str = Field(sa_type=sa.Text)
    request_id: uuid.UUID | None = Field(default=None, sa_type=sa.Uuid, index=True)
    created_by: str = Field(max_length=255)
    metadata_json: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)

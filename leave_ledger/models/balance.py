# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from leave_ledger.models.base import DAYS_TYPE, now_utc


class LeaveBalanceSnapshot(SQLModel, table=True):
    """Per-year balance cache, updated in the same transaction as every ledger write.

    ``current_balance`` always equals the sum of the ledger entries for the key.
    """

    __tablename__ = "leave_balance_snapshot"
    __table_args__ = (sa.PrimaryKeyConstraint("org_id", "employee_id", "policy_id", "year"),)

    org_id: int = Field(sa_type=sa.BigInteger)
    employee_id: str = Field(max_length=255, index=True)
    policy_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_policy.id", ondelete="CASCADE")),
    )
    year: int
    total_entitlement: Decimal = Field(
        default=Decimal("0"), sa_type=DAYS_TYPE, sa_column_kwargs={"server_default": "0"}
    )
    current_balance: Decimal = Field(
        default=Decimal("0"), sa_type=DAYS_TYPE, sa_column_kwargs={"server_default": "0"}
    )
    used_balance: Decimal = Field(default=Decimal("0"), sa_type=DAYS_TYPE, sa_column_kwargs={"server_default": "0"})
    carry_forward: Decimal = Field(
        default=Decimal("0"), sa_type=DAYS_TYPE, sa_column_kwargs={"server_default": "0"}
    )
    updated_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=now_utc,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.func.now()},
    )
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})

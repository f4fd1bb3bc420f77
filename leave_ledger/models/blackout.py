from __future__ import annotations

import datetime

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import OrgScoped, TimestampMixin, UUIDBase


class BlackoutPeriod(UUIDBase, OrgScoped, TimestampMixin, table=True):
    """A date range during which leave is restricted for the listed employees."""

    __tablename__ = "blackout_period"

    title: str = Field(max_length=255)
    start_date: datetime.date
    end_date: datetime.date
    reason: str | None = None
    allow_leaves: bool = Field(default=False, sa_column_kwargs={"server_default": sa.false()})
    assigned_employee_ids: list[str] = Field(default_factory=list, sa_type=sa.JSON)

from __future__ import annotations

import datetime

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import OrgScoped, UUIDBase


class OrgHoliday(UUIDBase, OrgScoped, table=True):
    """An organization holiday; recurring holidays repeat on the same month and day every year."""

    __tablename__ = "org_holiday"
    __table_args__ = (sa.UniqueConstraint("org_id", "date", name="uq_holiday_org_date"),)

    date: datetime.date
    name: str = Field(max_length=255)
    is_recurring: bool = Field(default=False, sa_column_kwargs={"server_default": sa.false()})

# ruff: noqa: TC003
from __future__ import annotations

import uuid
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import DAYS_TYPE, OrgScoped, TimestampMixin, UUIDBase


class LeaveType(UUIDBase, OrgScoped, TimestampMixin, table=True):
    """A category of leave (e.g. Casual Leave) that policies belong to."""

    __tablename__ = "leave_type"
    __table_args__ = (sa.UniqueConstraint("org_id", "name", name="uq_leave_type_org_name"),)

    name: str = Field(max_length=255)
    description: str | None = None
    negative_balance_limit: Decimal = Field(
        default=Decimal("0"),
        sa_type=DAYS_TYPE,
        sa_column_kwargs={"server_default": "0"},
    )
    is_active: bool = Field(default=True, sa_column_kwargs={"server_default": sa.true()})


class LeaveTypeMapping(UUIDBase, OrgScoped, TimestampMixin, table=True):
    """Admin-curated mapping from an external leave-type label to a leave type.

    Used by the opening-balance import. ``source_key`` is the normalized label.
    """

    __tablename__ = "leave_type_mapping"
    __table_args__ = (sa.UniqueConstraint("org_id", "source_key", name="uq_leave_type_mapping_source"),)

    source_name: str = Field(max_length=255)
    source_key: str = Field(max_length=255)
    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id", ondelete="CASCADE"), nullable=False),
    )

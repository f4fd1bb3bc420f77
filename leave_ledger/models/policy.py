# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import OrgScoped, TimestampMixin, UUIDBase


class LeavePolicy(UUIDBase, OrgScoped, TimestampMixin, table=True):
    """Entitlement ruleset ("variant") for a leave type.

    The rules live in ``settings_json`` and are parsed with ``PolicySettings``.
    """

    __tablename__ = "leave_policy"
    __table_args__ = (sa.UniqueConstraint("org_id", "key", name="uq_policy_org_key"),)

    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("leave_type.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    key: str = Field(max_length=255)
    name: str = Field(max_length=255)
    settings_json: dict[str, Any] = Field(default_factory=dict, sa_type=sa.JSON)
    is_active: bool = Field(default=True, sa_column_kwargs={"server_default": sa.true()})

# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import OrgScoped, TimestampMixin, UUIDBase


class ApprovalWorkflow(UUIDBase, OrgScoped, TimestampMixin, table=True):
    """Ordered review steps for applying for or withdrawing leave.

    A workflow bound to a policy wins over an organization-wide one
    (``policy_id`` unset).
    """

    __tablename__ = "approval_workflow"
    __table_args__ = (sa.Index("ix_workflow_org_process", "org_id", "process"),)

    name: str = Field(max_length=255)
    process: str = Field(max_length=50)
    policy_id: uuid.UUID | None = Field(
        default=None,
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_policy.id", ondelete="CASCADE"), nullable=True),
    )
    steps: list[dict[str, Any]] = Field(default_factory=list, sa_type=sa.JSON)
    is_active: bool = Field(default=True, sa_column_kwargs={"server_default": sa.true()})
    created_by: str = Field(max_length=255)

# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import OrgScoped, TimestampMixin, UUIDBase


class LeavePolicyAssignment(UUIDBase, OrgScoped, TimestampMixin, table=True):
    """Links an employee to a policy with effective dating."""

    __tablename__ = "leave_policy_assignment"
    __table_args__ = (
        sa.UniqueConstraint(
            "org_id",
            "employee_id",
            "policy_id",
            "effective_from",
            name="uq_assignment_employee_policy_from",
        ),
    )

    employee_id: str = Field(max_length=255, index=True)
    policy_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("leave_policy.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    effective_from: date
    effective_to: date | None = None
    created_by: str = Field(max_length=255)

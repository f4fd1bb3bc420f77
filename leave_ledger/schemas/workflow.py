# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from leave_ledger.models.enums import WorkflowProcess


class WorkflowStep(BaseModel):
    """One review step. ``approver_role`` unset means admins only."""

    title: str = Field(min_length=1, max_length=255)
    approver_role: str | None = Field(default=None, max_length=50)
    auto_approve: bool = False


class CreateWorkflowRequest(BaseModel):
    """Request body for creating an approval workflow."""

    name: str = Field(min_length=1, max_length=255)
    process: WorkflowProcess = WorkflowProcess.APPLY_LEAVE
    policy_id: uuid.UUID | None = None
    steps: list[WorkflowStep] = Field(min_length=1)


class WorkflowResponse(BaseModel):
    """Response schema for an approval workflow."""

    id: uuid.UUID
    org_id: int
    name: str
    process: WorkflowProcess
    policy_id: uuid.UUID | None
    steps: list[WorkflowStep]
    is_active: bool
    created_by: str
    created_at: datetime


class WorkflowListResponse(BaseModel):
    """List of approval workflows."""

    items: list[WorkflowResponse]
    total: int

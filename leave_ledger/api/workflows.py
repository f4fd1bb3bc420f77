# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from leave_ledger.api.deps import AdminDep, AuthDep, validate_org_scope
from leave_ledger.db import SessionDep
from leave_ledger.models.enums import WorkflowProcess
from leave_ledger.schemas.workflow import CreateWorkflowRequest, WorkflowListResponse, WorkflowResponse
from leave_ledger.services import workflow as workflow_service

workflows_router = APIRouter(
    prefix="/orgs/{org_id}/workflows",
    tags=["workflows"],
    dependencies=[Depends(validate_org_scope)],
)


@workflows_router.post("", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    payload: CreateWorkflowRequest,
    session: SessionDep,
    auth: AdminDep,
) -> WorkflowResponse:
    """Create an approval workflow (admin only)."""
    return await workflow_service.create_workflow(session, auth, payload)


@workflows_router.get("", response_model=WorkflowListResponse)
async def list_workflows(
    session: SessionDep,
    auth: AuthDep,
    process: WorkflowProcess | None = Query(default=None),
) -> WorkflowListResponse:
    """List approval workflows."""
    return await workflow_service.list_workflows(session, auth.org_id, process)


@workflows_router.delete("/{workflow_id}", response_model=WorkflowResponse)
async def deactivate_workflow(
    workflow_id: uuid.UUID,
    session: SessionDep,
    auth: AdminDep,
) -> WorkflowResponse:
    """Deactivate an approval workflow (admin only)."""
    return await workflow_service.deactivate_workflow(session, auth, workflow_id)

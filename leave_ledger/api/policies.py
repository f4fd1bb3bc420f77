# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from leave_ledger.api.deps import AdminDep, AuthDep, validate_org_scope
from leave_ledger.db import SessionDep
from leave_ledger.schemas.policy import (
    CreateLeaveTypeRequest,
    CreatePolicyRequest,
    LeaveTypeListResponse,
    LeaveTypeResponse,
    PolicyListResponse,
    PolicyResponse,
    UpdatePolicyRequest,
)
from leave_ledger.services import policy as policy_service

leave_types_router = APIRouter(
    prefix="/orgs/{org_id}/leave-types",
    tags=["policies"],
    dependencies=[Depends(validate_org_scope)],
)

router = APIRouter(
    prefix="/orgs/{org_id}/policies",
    tags=["policies"],
    dependencies=[Depends(validate_org_scope)],
)


@leave_types_router.post("", response_model=LeaveTypeResponse, status_code=status.HTTP_201_CREATED)
async def create_leave_type(
    payload: CreateLeaveTypeRequest,
    session: SessionDep,
    auth: AdminDep,
) -> LeaveTypeResponse:
    """Create a leave type."""
    return await policy_service.create_leave_type(session, auth, payload)


@leave_types_router.get("", response_model=LeaveTypeListResponse)
async def list_leave_types(
    session: SessionDep,
    auth: AuthDep,
) -> LeaveTypeListResponse:
    """List the organization's leave types."""
    return await policy_service.list_leave_types(session, auth.org_id)


@router.post("", response_model=PolicyResponse, status_code=status.HTTP_201_CREATED)
async def create_policy(
    payload: CreatePolicyRequest,
    session: SessionDep,
    auth: AdminDep,
) -> PolicyResponse:
    """Create a leave policy under a leave type."""
    return await policy_service.create_policy(session, auth, payload)


@router.get("", response_model=PolicyListResponse)
async def list_policies(
    session: SessionDep,
    auth: AuthDep,
    leave_type_id: uuid.UUID | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> PolicyListResponse:
    """List policies, optionally for one leave type."""
    return await policy_service.list_policies(session, auth.org_id, leave_type_id, offset, limit)


@router.get("/{policy_id}", response_model=PolicyResponse)
async def get_policy(
    policy_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> PolicyResponse:
    """Get a single policy."""
    return await policy_service.get_policy(session, auth.org_id, policy_id)


@router.put("/{policy_id}", response_model=PolicyResponse)
async def update_policy(
    policy_id: uuid.UUID,
    payload: UpdatePolicyRequest,
    session: SessionDep,
    auth: AdminDep,
) -> PolicyResponse:
    """Update a policy's name, settings or active flag."""
    return await policy_service.update_policy(session, auth, policy_id, payload)

# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from leave_ledger.api.deps import AuthDep, validate_org_scope
from leave_ledger.db import SessionDep
from leave_ledger.models.enums import RequestStatus
from leave_ledger.schemas.request import (
    DecisionPayload,
    RejectPayload,
    RequestListResponse,
    RequestResponse,
    SubmitRequestPayload,
    ValidationPreviewResponse,
    WithdrawPayload,
)
from leave_ledger.services import request as request_service

requests_router = APIRouter(
    prefix="/orgs/{org_id}/requests",
    tags=["requests"],
    dependencies=[Depends(validate_org_scope)],
)


@requests_router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_request(
    payload: SubmitRequestPayload,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    """Submit a new leave request."""
    return await request_service.submit_request(session, auth, payload)


@requests_router.post("/validate", response_model=ValidationPreviewResponse)
async def validate_request(
    payload: SubmitRequestPayload,
    session: SessionDep,
    auth: AuthDep,
) -> ValidationPreviewResponse:
    """Dry-run the validation rules for a candidate request."""
    return await request_service.preview_request(session, auth, payload)


@requests_router.get("", response_model=RequestListResponse)
async def list_requests(
    session: SessionDep,
    auth: AuthDep,
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    employee_id: str | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> RequestListResponse:
    """List leave requests with optional filters."""
    return await request_service.list_requests(session, auth.org_id, employee_id, status_filter, offset, limit)


@requests_router.get("/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    """Get a single leave request."""
    return await request_service.get_request(session, auth.org_id, request_id)


@requests_router.post("/{request_id}/approve", response_model=RequestResponse)
async def approve_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    payload: DecisionPayload | None = None,
) -> RequestResponse:
    """Approve the current workflow step (admins or the step's approver role)."""
    return await request_service.approve_request(session, auth, request_id, payload or DecisionPayload())


@requests_router.post("/{request_id}/reject", response_model=RequestResponse)
async def reject_request(
    request_id: uuid.UUID,
    payload: RejectPayload,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    """Reject a pending request or a pending withdrawal."""
    return await request_service.reject_request(session, auth, request_id, payload)


@requests_router.post("/{request_id}/withdraw", response_model=RequestResponse)
async def withdraw_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    payload: WithdrawPayload | None = None,
) -> RequestResponse:
    """Withdraw a pending or approved request."""
    return await request_service.withdraw_request(session, auth, request_id, payload or WithdrawPayload())


@requests_router.post("/{request_id}/cancel", response_model=RequestResponse)
async def cancel_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    """Cancel a pending request."""
    return await request_service.cancel_request(session, auth, request_id)

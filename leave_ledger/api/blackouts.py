# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from leave_ledger.api.deps import AdminDep, AuthDep, validate_org_scope
from leave_ledger.db import SessionDep
from leave_ledger.schemas.blackout import (
    BlackoutPeriodListResponse,
    BlackoutPeriodResponse,
    CreateBlackoutPeriodRequest,
)
from leave_ledger.services import blackout as blackout_service

blackouts_router = APIRouter(
    prefix="/orgs/{org_id}/blackout-periods",
    tags=["blackout-periods"],
    dependencies=[Depends(validate_org_scope)],
)


@blackouts_router.post("", response_model=BlackoutPeriodResponse, status_code=status.HTTP_201_CREATED)
async def create_blackout_period(
    payload: CreateBlackoutPeriodRequest,
    session: SessionDep,
    auth: AdminDep,
) -> BlackoutPeriodResponse:
    """Create a blackout period for a set of employees (admin only)."""
    return await blackout_service.create_blackout_period(session, auth, payload)


@blackouts_router.get("", response_model=BlackoutPeriodListResponse)
async def list_blackout_periods(
    session: SessionDep,
    auth: AuthDep,
    year: int | None = Query(default=None),
) -> BlackoutPeriodListResponse:
    """List blackout periods."""
    return await blackout_service.list_blackout_periods(session, auth.org_id, year)


@blackouts_router.delete("/{period_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_blackout_period(
    period_id: uuid.UUID,
    session: SessionDep,
    auth: AdminDep,
) -> None:
    """Delete a blackout period (admin only)."""
    await blackout_service.delete_blackout_period(session, auth, period_id)

# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, status

from leave_ledger.api.deps import AdminDep, AuthDep, validate_org_scope
from leave_ledger.db import SessionDep
from leave_ledger.schemas.balance import (
    BalanceListResponse,
    BalanceResponse,
    CreateAdjustmentRequest,
    LedgerEntryResponse,
    LedgerListResponse,
    SeedBalanceRequest,
)
from leave_ledger.services import balance as balance_service

employee_balance_router = APIRouter(
    prefix="/orgs/{org_id}/employees/{employee_id}/balances",
    tags=["balances"],
    dependencies=[Depends(validate_org_scope)],
)

employee_ledger_router = APIRouter(
    prefix="/orgs/{org_id}/employees/{employee_id}/ledger",
    tags=["balances"],
    dependencies=[Depends(validate_org_scope)],
)

adjustment_router = APIRouter(
    prefix="/orgs/{org_id}/adjustments",
    tags=["balances"],
    dependencies=[Depends(validate_org_scope)],
)


@employee_balance_router.get("", response_model=BalanceListResponse)
async def get_employee_balances(
    employee_id: str,
    session: SessionDep,
    auth: AuthDep,
    year: int | None = Query(default=None, ge=1900, le=9999),
) -> BalanceListResponse:
    """Get the balances of every policy the employee is assigned to."""
    return await balance_service.get_employee_balances(session, auth.org_id, employee_id, year)


@employee_balance_router.get("/{policy_id}", response_model=BalanceResponse)
async def get_balance(
    employee_id: str,
    policy_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    year: int = Query(ge=1900, le=9999),
    as_of: date | None = Query(default=None),
) -> BalanceResponse:
    """Get one balance snapshot."""
    return await balance_service.get_balance(session, auth.org_id, employee_id, policy_id, year, as_of)


@employee_balance_router.post("/{policy_id}/seed", response_model=BalanceResponse)
async def seed_balance(
    employee_id: str,
    policy_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    payload: SeedBalanceRequest | None = None,
) -> BalanceResponse:
    """Seed the employee's balance for the year (first login). Idempotent."""
    as_of = payload.as_of if payload is not None else None
    return await balance_service.initialize_balance(session, auth, employee_id, policy_id, as_of)


@employee_ledger_router.get("", response_model=LedgerListResponse)
async def get_employee_ledger(
    employee_id: str,
    session: SessionDep,
    auth: AuthDep,
    policy_id: uuid.UUID | None = Query(default=None),
    year: int | None = Query(default=None, ge=1900, le=9999),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> LedgerListResponse:
    """Get paginated ledger entries for an employee."""
    return await balance_service.get_ledger(session, auth.org_id, employee_id, policy_id, year, offset, limit)


@adjustment_router.post("", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def create_adjustment(
    payload: CreateAdjustmentRequest,
    session: SessionDep,
    auth: AdminDep,
) -> LedgerEntryResponse:
    """Credit or deduct days as an administrator."""
    return await balance_service.create_adjustment(session, auth, payload)

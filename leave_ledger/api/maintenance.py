# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status

from leave_ledger.api.deps import AdminDep, validate_org_scope
from leave_ledger.db import SessionDep
from leave_ledger.schemas.maintenance import (
    CarryForwardRequest,
    CarryForwardResponse,
    CreateLeaveTypeMappingRequest,
    LeaveTypeMappingListResponse,
    LeaveTypeMappingResponse,
    OpeningBalanceImportRequest,
    OpeningBalanceImportResponse,
    RecalculateRequest,
    RecalculateResponse,
)
from leave_ledger.services import opening_balance as opening_balance_service
from leave_ledger.services import recalculation as recalculation_service

maintenance_router = APIRouter(
    prefix="/orgs/{org_id}/balances",
    tags=["maintenance"],
    dependencies=[Depends(validate_org_scope)],
)

mappings_router = APIRouter(
    prefix="/orgs/{org_id}/leave-type-mappings",
    tags=["maintenance"],
    dependencies=[Depends(validate_org_scope)],
)


@maintenance_router.post("/recalculate", response_model=RecalculateResponse)
async def recalculate_balances(
    session: SessionDep,
    auth: AdminDep,
    payload: RecalculateRequest | None = None,
) -> RecalculateResponse:
    """Recalculate every active assignment's balance (admin only)."""
    payload = payload or RecalculateRequest()
    result = await recalculation_service.recalculate_all(
        session, auth.org_id, payload.mode, payload.as_of, actor_id=auth.user_id
    )
    return RecalculateResponse(
        org_id=result.org_id,
        mode=result.mode,
        year=result.year,
        processed=result.processed,
        succeeded=result.succeeded,
        skipped=result.skipped,
        failed=result.failed,
        reconciled=result.reconciled,
        accrued=result.accrued,
        errors=result.errors,
    )


@maintenance_router.post("/carry-forward", response_model=CarryForwardResponse)
async def carry_forward(
    payload: CarryForwardRequest,
    session: SessionDep,
    auth: AdminDep,
) -> CarryForwardResponse:
    """Carry closing balances of a year into the next one (admin only)."""
    result = await recalculation_service.carry_forward_balances(
        session, auth.org_id, payload.from_year, actor_id=auth.user_id
    )
    return CarryForwardResponse(
        org_id=result.org_id,
        from_year=result.from_year,
        processed=result.processed,
        carried=result.carried,
        skipped=result.skipped,
        failed=result.failed,
    )


@maintenance_router.post("/import", response_model=OpeningBalanceImportResponse)
async def import_opening_balances(
    payload: OpeningBalanceImportRequest,
    session: SessionDep,
    auth: AdminDep,
) -> OpeningBalanceImportResponse:
    """Import opening balances through the leave-type mapping table (admin only)."""
    return await opening_balance_service.import_opening_balances(session, auth, payload)


@mappings_router.post("", response_model=LeaveTypeMappingResponse, status_code=status.HTTP_201_CREATED)
async def create_mapping(
    payload: CreateLeaveTypeMappingRequest,
    session: SessionDep,
    auth: AdminDep,
) -> LeaveTypeMappingResponse:
    """Map an external leave-type label to a leave type (admin only)."""
    return await opening_balance_service.create_mapping(session, auth, payload)


@mappings_router.get("", response_model=LeaveTypeMappingListResponse)
async def list_mappings(
    session: SessionDep,
    auth: AdminDep,
) -> LeaveTypeMappingListResponse:
    """List leave-type mappings (admin only)."""
    return await opening_balance_service.list_mappings(session, auth.org_id)


@mappings_router.delete("/{mapping_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_mapping(
    mapping_id: uuid.UUID,
    session: SessionDep,
    auth: AdminDep,
) -> None:
    """Delete a leave-type mapping (admin only)."""
    await opening_balance_service.delete_mapping(session, auth, mapping_id)

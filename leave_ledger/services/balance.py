# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlmodel import col

from leave_ledger.exceptions import AppError, ConfigurationError, NotFoundError
from leave_ledger.models.assignment import LeavePolicyAssignment
from leave_ledger.models.enums import AuditAction, AuditEntityType, LedgerEntryKind, RequestStatus
from leave_ledger.models.ledger import LeaveLedgerEntry
from leave_ledger.models.policy import LeavePolicy
from leave_ledger.models.request import LeaveRequest
from leave_ledger.schemas.balance import (
    BalanceListResponse,
    BalanceResponse,
    LedgerEntryResponse,
    LedgerListResponse,
)
from leave_ledger.services.assignment import active_on, verify_active_assignment
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log
from leave_ledger.services.directory import lookup_joining_date
from leave_ledger.services.entitlement import compute_earned_to_date, format_days, quantize_days
from leave_ledger.services.ledger import (
    append_entry,
    ensure_snapshot_for_update,
    find_opening_balance_entries,
    get_snapshot,
    seed_balance,
    sum_entries,
    with_conflict_retry,
)
from leave_ledger.services.policy import get_leave_type_or_404, get_policy_or_404, parse_settings

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.models.balance import LeaveBalanceSnapshot
    from leave_ledger.schemas.auth import AuthContext
    from leave_ledger.schemas.balance import CreateAdjustmentRequest


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def build_ledger_entry_response(entry: LeaveLedgerEntry) -> LedgerEntryResponse:
    """Map a ledger entry model to its response schema."""
    return LedgerEntryResponse(
        id=entry.id,
        employee_id=entry.employee_id,
        policy_id=entry.policy_id,
        year=entry.year,
        kind=LedgerEntryKind(entry.kind),
        amount=entry.amount,
        resulting_balance=entry.resulting_balance,
        description=entry.description,
        request_id=entry.request_id,
        created_by=entry.created_by,
        metadata_json=entry.metadata_json,
        created_at=entry.created_at,
    )


async def _approved_days(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    policy_id: uuid.UUID,
    year: int,
) -> Decimal:
    """Days taken under an untracked policy: approved requests starting in the year."""
    result = await session.execute(
        select(func.coalesce(func.sum(col(LeaveRequest.working_days)), 0)).where(
            col(LeaveRequest.org_id) == org_id,
            col(LeaveRequest.employee_id) == employee_id,
            col(LeaveRequest.policy_id) == policy_id,
            col(LeaveRequest.balance_year) == year,
            col(LeaveRequest.status) == RequestStatus.APPROVED.value,
        )
    )
    return quantize_days(Decimal(result.scalar_one()))


async def _build_balance_response(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    policy: LeavePolicy,
    year: int,
    snapshot: LeaveBalanceSnapshot | None,
    as_of: date | None = None,
) -> BalanceResponse:
    settings = parse_settings(policy)
    if not settings.is_balance_tracked:
        return BalanceResponse(
            employee_id=employee_id,
            policy_id=policy.id,
            policy_key=policy.key,
            policy_name=policy.name,
            year=year,
            total_entitlement=None,
            current_balance=None,
            used_balance=await _approved_days(session, org_id, employee_id, policy.id, year),
            carry_forward=Decimal("0.00"),
            opening_balance=None,
            earned_to_date=None,
            is_tracked=False,
            updated_at=None,
        )

    joining_date = await lookup_joining_date(org_id, employee_id)
    earned = compute_earned_to_date(settings.grant, joining_date, as_of or date.today(), year)
    opening_entries, _ =await find_opening_balance_entries(session, org_id, employee_id, policy, year)
    zero = Decimal("0.00")
    return BalanceResponse(
        employee_id=employee_id,
        policy_id=policy.id,
        policy_key=policy.key,
        policy_name=policy.name,
        year=year,
        total_entitlement=snapshot.total_entitlement if snapshot else zero,
        current_balance=snapshot.current_balance if snapshot else zero,
        used_balance=snapshot.used_balance if snapshot else zero,
        carry_forward=snapshot.carry_forward if snapshot else zero,
        opening_balance=sum_entries(opening_entries) if opening_entries else None,
        earned_to_date=earned.starting_balance,
        is_tracked=True,
        updated_at=snapshot.updated_at if snapshot else None,
    )


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


async def get_balance(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    policy_id: uuid.UUID,
    year: int,
    as_of: date | None = None,
) -> BalanceResponse:
    """Get the balance snapshot for one employee, policy and year.

    ``earned_to_date`` is computed as of ``as_of`` (default today).
    """
    policy = await get_policy_or_404(session, org_id, policy_id)
    snapshot = await get_snapshot(session, org_id, employee_id, policy_id, year)
    if snapshot is None and parse_settings(policy).is_balance_tracked:
        raise NotFoundError("Balance not found for this employee, policy and year")
    return await _build_balance_response(session, org_id, employee_id, policy, year, snapshot, as_of=as_of)


async def get_employee_balances(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    year: int | None = None,
) -> BalanceListResponse:
    """Get all policy balances for an employee based on active assignments."""
    today = date.today()
    year = year or today.year

    result = await session.execute(
        select(LeavePolicy)
        .join(LeavePolicyAssignment, col(LeavePolicyAssignment.policy_id) == col(LeavePolicy.id))
        .where(
            col(LeavePolicyAssignment.org_id) == org_id,
            col(LeavePolicyAssignment.employee_id) == employee_id,
            *active_on(today),
        )
        .order_by(col(LeavePolicy.name))
        .distinct()
    )
    policies = list(result.scalars().all())

    items: list[BalanceResponse] = []
    for policy in policies:
        snapshot = await get_snapshot(session, org_id, employee_id, policy.id, year)
        items.append(await _build_balance_response(session, org_id, employee_id, policy, year, snapshot))

    return BalanceListResponse(items=items, total=len(items))


async def get_ledger(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    policy_id: uuid.UUID | None = None,
    year: int | None = None,
    offset: int = 0,
    limit: int = 50,
) -> LedgerListResponse:
    """Get paginated ledger entries for an employee, optionally for one policy and year."""
    base_filter = [
        col(LeaveLedgerEntry.org_id) == org_id,
        col(LeaveLedgerEntry.employee_id) == employee_id,
    ]
    if policy_id is not None:
        base_filter.append(col(LeaveLedgerEntry.policy_id) == policy_id)
    if year is not None:
        base_filter.append(col(LeaveLedgerEntry.year) == year)

    count_result = await session.execute(select(func.count()).select_from(LeaveLedgerEntry).where(*base_filter))
    total = count_result.scalar_one()

    entries_result = await session.execute(
        select(LeaveLedgerEntry)
        .where(*base_filter)
        .order_by(col(LeaveLedgerEntry.created_at).desc())
        .offset(offset)
        .limit(limit)
    )
    entries = list(entries_result.scalars().all())

    return LedgerListResponse(
        items=[build_ledger_entry_response(e) for e in entries],
        total=total,
    )


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------


async def initialize_balance(
    session: AsyncSession,
    auth: AuthContext,
    employee_id: str,
    policy_id: uuid.UUID,
    as_of: date | None = None,
) -> BalanceResponse:
    """Seed the balance for the year of ``as_of`` (first login). Returns the existing one if already seeded."""
    if not auth.is_admin and employee_id != auth.user_id:
        raise AppError("Cannot seed balances for another employee", status_code=403)
    as_of = as_of or date.today()
    policy = await get_policy_or_404(session, auth.org_id, policy_id)
    await verify_active_assignment(session, auth.org_id, employee_id, policy_id, as_of)
    if not parse_settings(policy).is_balance_tracked:
        raise ConfigurationError(f"Policy {policy.name} does not track a balance")
    joining_date = await lookup_joining_date(auth.org_id, employee_id)

    async def _seed() -> tuple[LeavePolicy, LeaveBalanceSnapshot]:
        policy = await get_policy_or_404(session, auth.org_id, policy_id)
        snapshot = await seed_balance(
            session,
            org_id=auth.org_id,
            employee_id=employee_id,
            policy=policy,
            year=as_of.year,
            joining_date=joining_date,
            as_of=as_of,
            actor_id=auth.user_id,
        )
        if snapshot is None:
            raise ConfigurationError(f"Policy {policy.name} does not track a balance")
        await session.commit()
        return policy, snapshot

    policy, snapshot = await with_conflict_retry(session, _seed)
    return await _build_balance_response(session, auth.org_id, employee_id, policy, as_of.year, snapshot, as_of=as_of)


async def create_adjustment(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateAdjustmentRequest,
) -> LedgerEntryResponse:
    """Create an admin balance adjustment.

    Positive amounts append a credit, negative amounts a deduction. Deductions
    are held to the leave type's negative-balance allowance.
    """
    if payload.amount == 0:
        raise AppError("Adjustment amount must not be zero", status_code=400)
    today = date.today()
    year = payload.year or today.year

    await verify_active_assignment(session, auth.org_id, payload.employee_id, payload.policy_id, today)
    policy = await get_policy_or_404(session, auth.org_id, payload.policy_id)
    if not parse_settings(policy).is_balance_tracked:
        raise ConfigurationError(f"Policy {policy.name} does not track a balance")

    async def _adjust() -> LeaveLedgerEntry:
        policy = await get_policy_or_404(session, auth.org_id, payload.policy_id)
        leave_type = await get_leave_type_or_404(session, auth.org_id, policy.leave_type_id)
        snapshot = await ensure_snapshot_for_update(
            session,
            org_id=auth.org_id,
            employee_id=payload.employee_id,
            policy=policy,
            year=year,
            actor_id=auth.user_id,
        )

        if payload.amount < 0:
            new_balance = snapshot.current_balance + payload.amount
            limit = abs(leave_type.negative_balance_limit)
            if new_balance < -limit:
                if limit == 0:
                    raise AppError("Insufficient balance for this adjustment", status_code=400)
                raise AppError(
                    f"Adjustment would exceed negative balance limit of {format_days(limit)} days",
                    status_code=400,
                )

        kind = LedgerEntryKind.CREDIT if payload.amount > 0 else LedgerEntryKind.DEDUCTION
        verb = "credited" if payload.amount > 0 else "deducted"
        entry = await append_entry(
            session,
            snapshot,
            kind=kind,
            amount=payload.amount,
            description=(
                f"Balance {verb} by administrator ({format_days(abs(payload.amount))} days) - Reason: {payload.reason}"
            ),
            created_by=auth.user_id,
            metadata={"reason": payload.reason, "adjusted_by": auth.user_id},
        )

        await write_audit_log(
            session,
            org_id=auth.org_id,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.ADJUSTMENT,
            entity_id=entry.id,
            action=AuditAction.CREATE,
            after_json=model_to_audit_dict(entry),
        )

        await session.commit()
        await session.refresh(entry)
        return entry

    entry = await with_conflict_retry(session, _adjust)
    return build_ledger_entry_response(entry)

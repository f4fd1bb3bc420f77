# ruff: noqa: TC003
"""Bulk balance recalculation and year-end carry-forward.

Both batches work key by key: every (employee, policy) pair is committed on
its own, a failing key is rolled back, logged and counted, and the batch
moves on to the next one.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from leave_ledger.models.assignment import LeavePolicyAssignment
from leave_ledger.models.balance import LeaveBalanceSnapshot
from leave_ledger.models.enums import AuditAction, AuditEntityType, GrantMethod, LedgerEntryKind, RecalculationMode
from leave_ledger.models.ledger import LeaveLedgerEntry
from leave_ledger.services.assignment import active_on
from leave_ledger.services.audit import SYSTEM_ACTOR, model_to_audit_dict, write_audit_log
from leave_ledger.services.directory import lookup_joining_date
from leave_ledger.services.entitlement import compute_entitlement, format_days, quantize_days
from leave_ledger.services.ledger import (
    CARRY_FORWARD_PREFIX,
    append_entry,
    ensure_snapshot_for_update,
    find_opening_balance_entries,
    lock_snapshot,
    seed_balance,
    sum_grants,
)
from leave_ledger.services.policy import get_policy_or_404, parse_settings

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@dataclass
class RecalculationResult:
    """Counts from a bulk recalculation run."""

    org_id: int
    mode: RecalculationMode
    year: int
    processed: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    reconciled: int = 0
    accrued: int = 0
    errors: list[dict[str, object]] = field(default_factory=list)


@dataclass
class CarryForwardResult:
    """Counts from a carry-forward run."""

    org_id: int
    from_year: int
    processed: int = 0
    carried: int = 0
    skipped: int = 0
    failed: int = 0


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


async def list_org_ids_with_assignments(session: AsyncSession, on: date) -> list[int]:
    """Organizations with at least one assignment active on ``on``."""
    result = await session.execute(
        select(LeavePolicyAssignment.org_id).where(*active_on(on)).distinct()  # ty: ignore[no-matching-overload]
    )
    return sorted(result.scalars().all())


async def _active_keys(session: AsyncSession, org_id: int, on: date) -> list[tuple[str, uuid.UUID]]:
    result = await session.execute(
        select(  # ty: ignore[no-matching-overload]
            LeavePolicyAssignment.employee_id,
            LeavePolicyAssignment.policy_id,
        )
        .where(col(LeavePolicyAssignment.org_id) == org_id, *active_on(on))
        .distinct()
        .order_by(col(LeavePolicyAssignment.employee_id))
    )
    return [(row.employee_id, row.policy_id) for row in result.all()]


# ---------------------------------------------------------------------------
# Recalculation
# ---------------------------------------------------------------------------


async def _recalculate_key(
    session: AsyncSession,
    *,
    org_id: int,
    employee_id: str,
    policy_id: uuid.UUID,
    year: int,
    mode: RecalculationMode,
    as_of: date,
    actor_id: str,
) -> str:
    """Recalculate one key. Returns "seeded", "skipped", "accrued", "unchanged" or "reconciled"."""
    policy = await get_policy_or_404(session, org_id, policy_id)
    settings = parse_settings(policy)
    if not settings.is_balance_tracked:
        return "skipped"

    joining_date = await lookup_joining_date(org_id, employee_id)
    snapshot = await lock_snapshot(session, org_id, employee_id, policy.id, year)
    if snapshot is None:
        await seed_balance(
            session,
            org_id=org_id,
            employee_id=employee_id,
            policy=policy,
            year=year,
            joining_date=joining_date,
            as_of=as_of,
            actor_id=actor_id,
        )
        return "seeded"

    opening_entries, _ = await find_opening_balance_entries(session, org_id, employee_id, policy, year)
    if opening_entries:
        return "skipped"

    entitlement = compute_entitlement(settings.grant, joining_date, as_of, year)
    granted = await sum_grants(session, org_id, employee_id, policy.id, year)
    delta = quantize_days(entitlement.starting_balance - granted)

    if mode == RecalculationMode.AUTO:
        # AUTO only tops up what after-earning policies earned since the last grant.
        if settings.grant.method != GrantMethod.AFTER_EARNING or delta <= 0:
            return "skipped"
        entry = await append_entry(
            session,
            snapshot,
            kind=LedgerEntryKind.GRANT,
            amount=delta,
            description=(
                f"Leave accrued under {policy.name} for {year} "
                f"(+{format_days(delta)} days, earned {format_days(entitlement.starting_balance)} days to date)"
            ),
            created_by=actor_id,
            metadata={"previous_grants": str(granted), "as_of": as_of.isoformat()},
        )
        await write_audit_log(
            session,
            org_id=org_id,
            actor_id=actor_id,
            entity_type=AuditEntityType.BALANCE,
            entity_id=entry.id,
            action=AuditAction.RECALCULATE,
            after_json=model_to_audit_dict(entry),
        )
        return "accrued"

    snapshot.total_entitlement = entitlement.total_entitlement
    if delta == 0:
        await session.flush()
        return "unchanged"

    sign = "+" if delta > 0 else "-"
    entry = await append_entry(
        session,
        snapshot,
        kind=LedgerEntryKind.GRANT,
        amount=delta,
        description=(
            f"Leave recalculated under {policy.name} for {year} "
            f"({sign}{format_days(abs(delta))} days, entitlement {format_days(entitlement.starting_balance)} days)"
        ),
        created_by=actor_id,
        metadata={"previous_grants": str(granted), "as_of": as_of.isoformat()},
    )
    await write_audit_log(
        session,
        org_id=org_id,
        actor_id=actor_id,
        entity_type=AuditEntityType.BALANCE,
        entity_id=entry.id,
        action=AuditAction.RECALCULATE,
        after_json=model_to_audit_dict(entry),
    )
    return "reconciled"


async def recalculate_all(
    session: AsyncSession,
    org_id: int,
    mode: RecalculationMode = RecalculationMode.AUTO,
    as_of: date | None = None,
    *,
    actor_id: str = SYSTEM_ACTOR,
) -> RecalculationResult:
    """Recalculate balances for every active assignment of an organization.

    AUTO seeds keys that have no snapshot for the year and tops up
    after-earning keys with the days earned since their last grant; it never
    rewrites existing entries, so running it twice for the same date changes
    nothing. FORCE also recomputes the entitlement of existing keys and
    appends a reconciling grant for any difference; keys with imported
    opening balances are left untouched.
    """
    if as_of is None:
        as_of = date.today()
    result = RecalculationResult(org_id=org_id, mode=mode, year=as_of.year)

    for employee_id, policy_id in await _active_keys(session, org_id, as_of):
        result.processed += 1
        try:
            outcome = await _recalculate_key(
                session,
                org_id=org_id,
                employee_id=employee_id,
                policy_id=policy_id,
                year=as_of.year,
                mode=mode,
                as_of=as_of,
                actor_id=actor_id,
            )
            await session.commit()
        except Exception as exc:
            await session.rollback()
            logger.exception("Recalculation failed for employee=%s policy=%s", employee_id, policy_id)
            result.failed += 1
            result.errors.append({"employee_id": employee_id, "policy_id": str(policy_id), "error": str(exc)})
            continue

        if outcome == "skipped":
            result.skipped += 1
            continue
        result.succeeded += 1
        if outcome == "reconciled":
            result.reconciled += 1
        elif outcome == "accrued":
            result.accrued += 1

    logger.info(
        "Recalculation for org=%s mode=%s year=%s: processed=%d succeeded=%d skipped=%d failed=%d "
        "reconciled=%d accrued=%d",
        org_id,
        mode,
        result.year,
        result.processed,
        result.succeeded,
        result.skipped,
        result.failed,
        result.reconciled,
        result.accrued,
    )
    return result


# ---------------------------------------------------------------------------
# Carry-forward
# ---------------------------------------------------------------------------


def carry_forward_description(from_year: int, amount: Decimal) -> str:
    return f"{CARRY_FORWARD_PREFIX} {from_year} ({format_days(amount)} days)"


async def _already_carried(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    policy_id: uuid.UUID,
    from_year: int,
) -> bool:
    result = await session.execute(
        select(LeaveLedgerEntry.id).where(
            col(LeaveLedgerEntry.org_id) == org_id,
            col(LeaveLedgerEntry.employee_id) == employee_id,
            col(LeaveLedgerEntry.policy_id) == policy_id,
            col(LeaveLedgerEntry.year) == from_year + 1,
            col(LeaveLedgerEntry.kind) == LedgerEntryKind.CREDIT.value,
            col(LeaveLedgerEntry.description).startswith(f"{CARRY_FORWARD_PREFIX} {from_year} "),
        )
    )
    return result.first() is not None


async def _carry_forward_key(
    session: AsyncSession,
    *,
    org_id: int,
    employee_id: str,
    policy_id: uuid.UUID,
    from_year: int,
    actor_id: str,
) -> bool:
    """Carry one key into the next year. Returns False when there is nothing to carry."""
    policy = await get_policy_or_404(session, org_id, policy_id)
    settings = parse_settings(policy)
    cap = settings.carry_forward_limit
    if not settings.is_balance_tracked or not cap:
        return False

    closing = await lock_snapshot(session, org_id, employee_id, policy_id, from_year)
    if closing is None or closing.current_balance <= 0:
        return False

    target = await ensure_snapshot_for_update(
        session,
        org_id=org_id,
        employee_id=employee_id,
        policy=policy,
        year=from_year + 1,
        actor_id=actor_id,
    )
    if await _already_carried(session, org_id, employee_id, policy_id, from_year):
        return False

    amount = quantize_days(min(closing.current_balance, cap))
    entry = await append_entry(
        session,
        target,
        kind=LedgerEntryKind.CREDIT,
        amount=amount,
        description=carry_forward_description(from_year, amount),
        created_by=actor_id,
        metadata={"closing_balance": str(closing.current_balance), "cap": str(cap)},
    )
    target.carry_forward = amount
    await write_audit_log(
        session,
        org_id=org_id,
        actor_id=actor_id,
        entity_type=AuditEntityType.BALANCE,
        entity_id=entry.id,
        action=AuditAction.CARRY_FORWARD,
        after_json=model_to_audit_dict(entry),
    )
    await session.flush()
    return True


async def carry_forward_balances(
    session: AsyncSession,
    org_id: int,
    from_year: int,
    *,
    actor_id: str = SYSTEM_ACTOR,
) -> CarryForwardResult:
    """Carry ``min(balance, cap)`` of every closed-year snapshot into the following year.

    Policies without a carry-forward cap carry nothing. Keys already carried
    are skipped, so the run can be repeated safely.
    """
    result = CarryForwardResult(org_id=org_id, from_year=from_year)
    keys = await session.execute(
        select(  # ty: ignore[no-matching-overload]
            LeaveBalanceSnapshot.employee_id,
            LeaveBalanceSnapshot.policy_id,
        )
        .where(
            col(LeaveBalanceSnapshot.org_id) == org_id,
            col(LeaveBalanceSnapshot.year) == from_year,
        )
        .order_by(col(LeaveBalanceSnapshot.employee_id))
    )

    for employee_id, policy_id in [(row.employee_id, row.policy_id) for row in keys.all()]:
        result.processed += 1
        try:
            carried = await _carry_forward_key(
                session,
                org_id=org_id,
                employee_id=employee_id,
                policy_id=policy_id,
                from_year=from_year,
                actor_id=actor_id,
            )
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("Carry-forward failed for employee=%s policy=%s", employee_id, policy_id)
            result.failed += 1
            continue

        if carried:
            result.carried += 1
        else:
            result.skipped += 1

    logger.info(
        "Carry-forward for org=%s from %s: processed=%d carried=%d skipped=%d failed=%d",
        org_id,
        from_year,
        result.processed,
        result.carried,
        result.skipped,
        result.failed,
    )
    return result

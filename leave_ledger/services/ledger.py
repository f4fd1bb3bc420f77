# ruff: noqa: TC003
"""Balance ledger: append-only entries plus the per-year snapshot cache.

Every write goes through ``append_entry`` on a snapshot the caller has locked
with ``lock_snapshot``/``ensure_snapshot_for_update``, so the entry insert and
the snapshot update land in the same transaction. Nothing here commits;
callers own the transaction and wrap it in ``with_conflict_retry``.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import case, func, or_, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlmodel import col

from leave_ledger.config import get_settings
from leave_ledger.exceptions import ConcurrencyConflict, ConfigurationError
from leave_ledger.models.balance import LeaveBalanceSnapshot
from leave_ledger.models.base import now_utc
from leave_ledger.models.enums import AuditAction, AuditEntityType, LedgerEntryKind
from leave_ledger.models.leave_type import LeaveType
from leave_ledger.models.ledger import LeaveLedgerEntry
from leave_ledger.models.policy import LeavePolicy
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log
from leave_ledger.services.directory import lookup_joining_date
from leave_ledger.services.entitlement import compute_entitlement, format_days, quantize_days
from leave_ledger.services.policy import parse_settings

if TYPE_CHECKING:
    from sqlalchemy import Select
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEDUCTION_KINDS = (LedgerEntryKind.DEDUCTION.value, LedgerEntryKind.PENDING_DEDUCTION.value)
OPENING_BALANCE_MARKER = "Opening balance imported"
CARRY_FORWARD_PREFIX = "Carry forward from"

# Serialization failure and deadlock.
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})

_ZERO = Decimal("0")


def request_reference(request_id: uuid.UUID) -> str:
    """The token every request-linked description contains."""
    return f"#{request_id}"


# ---------------------------------------------------------------------------
# Snapshot locking
# ---------------------------------------------------------------------------


async def _sum_ledger(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    policy_id: uuid.UUID,
    year: int,
) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    """Recompute (total granted, balance, used, carried forward) from ledger entries."""
    amount = col(LeaveLedgerEntry.amount)
    kind = col(LeaveLedgerEntry.kind)
    query = select(
        func.coalesce(func.sum(case((kind == LedgerEntryKind.GRANT.value, amount), else_=0)), 0).label("granted"),
        func.coalesce(func.sum(amount), 0).label("balance"),
        func.coalesce(
            func.sum(
                case(
                    (kind.in_(DEDUCTION_KINDS), func.abs(amount)),
                    (
                        (kind == LedgerEntryKind.CREDIT.value) & col(LeaveLedgerEntry.request_id).is_not(None),
                        -func.abs(amount),
                    ),
                    else_=0,
                )
            ),
            0,
        ).label("used"),
        func.coalesce(
            func.sum(
                case(
                    (col(LeaveLedgerEntry.description).startswith(CARRY_FORWARD_PREFIX), amount),
                    else_=0,
                )
            ),
            0,
        ).label("carried"),
    ).where(
        col(LeaveLedgerEntry.org_id) == org_id,
        col(LeaveLedgerEntry.employee_id) == employee_id,
        col(LeaveLedgerEntry.policy_id) == policy_id,
        col(LeaveLedgerEntry.year) == year,
    )
    row = (await session.execute(query)).one()
    return (
        quantize_days(Decimal(row.granted)),
        quantize_days(Decimal(row.balance)),
        quantize_days(Decimal(row.used)),
        quantize_days(Decimal(row.carried)),
    )


async def get_snapshot(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    policy_id: uuid.UUID,
    year: int,
) -> LeaveBalanceSnapshot | None:
    """Read a snapshot without locking it."""
    result = await session.execute(
        select(LeaveBalanceSnapshot).where(
            col(LeaveBalanceSnapshot.org_id) == org_id,
            col(LeaveBalanceSnapshot.employee_id) == employee_id,
            col(LeaveBalanceSnapshot.policy_id) == policy_id,
            col(LeaveBalanceSnapshot.year) == year,
        )
    )
    return result.scalar_one_or_none()


async def lock_snapshot(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    policy_id: uuid.UUID,
    year: int,
) -> LeaveBalanceSnapshot | None:
    """Fetch the snapshot with a FOR UPDATE lock. Returns None if it does not exist yet."""
    result = await session.execute(
        select(LeaveBalanceSnapshot)
        .where(
            col(LeaveBalanceSnapshot.org_id) == org_id,
            col(LeaveBalanceSnapshot.employee_id) == employee_id,
            col(LeaveBalanceSnapshot.policy_id) == policy_id,
            col(LeaveBalanceSnapshot.year) == year,
        )
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def _create_snapshot(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    policy_id: uuid.UUID,
    year: int,
) -> LeaveBalanceSnapshot:
    """Insert a snapshot rebuilt from whatever entries already exist for the key."""
    granted, balance, used, carried = await _sum_ledger(session, org_id, employee_id, policy_id, year)
    snapshot = LeaveBalanceSnapshot(
        org_id=org_id,
        employee_id=employee_id,
        policy_id=policy_id,
        year=year,
        total_entitlement=granted,
        current_balance=balance,
        used_balance=used,
        carry_forward=carried,
        version=1,
    )
    session.add(snapshot)
    try:
        await session.flush()
    except IntegrityError as exc:
        # Another transaction created the same key first.
        raise ConcurrencyConflict() from exc
    return snapshot


async def get_or_create_snapshot_for_update(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    policy_id: uuid.UUID,
    year: int,
) -> LeaveBalanceSnapshot:
    """Lock the snapshot, creating it from the ledger sum when absent."""
    snapshot = await lock_snapshot(session, org_id, employee_id, policy_id, year)
    if snapshot is None:
        snapshot = await _create_snapshot(session, org_id, employee_id, policy_id, year)
    return snapshot


# ---------------------------------------------------------------------------
# Appending
# ---------------------------------------------------------------------------


async def append_entry(
    session: AsyncSession,
    snapshot: LeaveBalanceSnapshot,
    *,
    kind: LedgerEntryKind,
    amount: Decimal,
    description: str,
    created_by: str,
    request_id: uuid.UUID | None = None,
    metadata: dict[str, Any] | None = None,
) -> LeaveLedgerEntry:
    """Append a signed entry and move the locked snapshot with it.

    ``amount`` is negative for deductions. Credits linked to a request give
    back used days; unlinked credits (adjustments, carry-forward) do not.
    """
    amount = quantize_days(amount)
    resulting = quantize_days(snapshot.current_balance + amount)
    entry = LeaveLedgerEntry(
        org_id=snapshot.org_id,
        employee_id=snapshot.employee_id,
        policy_id=snapshot.policy_id,
        year=snapshot.year,
        kind=kind.value,
        amount=amount,
        resulting_balance=resulting,
        description=description,
        request_id=request_id,
        created_by=created_by,
        metadata_json=metadata,
    )
    session.add(entry)

    snapshot.current_balance = resulting
    if kind.value in DEDUCTION_KINDS:
        snapshot.used_balance = quantize_days(snapshot.used_balance + abs(amount))
    elif kind == LedgerEntryKind.CREDIT and request_id is not None:
        snapshot.used_balance = quantize_days(snapshot.used_balance - abs(amount))
    snapshot.updated_at = now_utc()
    snapshot.version += 1

    await session.flush()
    return entry


async def has_deduction_for_request(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    policy_id: uuid.UUID,
    request_id: uuid.UUID,
) -> bool:
    """True if a deduction-family entry already references the request in its description."""
    result = await session.execute(
        select(func.count())
        .select_from(LeaveLedgerEntry)
        .where(
            col(LeaveLedgerEntry.org_id) == org_id,
            col(LeaveLedgerEntry.employee_id) == employee_id,
            col(LeaveLedgerEntry.policy_id) == policy_id,
            col(LeaveLedgerEntry.kind).in_(DEDUCTION_KINDS),
            col(LeaveLedgerEntry.description).contains(request_reference(request_id)),
        )
    )
    return result.scalar_one() > 0


async def request_net_amount(
    session: AsyncSession,
    org_id: int,
    request_id: uuid.UUID,
) -> Decimal:
    """Net signed amount of all entries linked to the request (negative while days are held)."""
    result = await session.execute(
        select(func.coalesce(func.sum(col(LeaveLedgerEntry.amount)), 0)).where(
            col(LeaveLedgerEntry.org_id) == org_id,
            col(LeaveLedgerEntry.request_id) == request_id,
        )
    )
    return quantize_days(Decimal(result.scalar_one()))


async def sum_grants(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    policy_id: uuid.UUID,
    year: int,
) -> Decimal:
    """Total of the grant entries for a key."""
    result = await session.execute(
        select(func.coalesce(func.sum(col(LeaveLedgerEntry.amount)), 0)).where(
            col(LeaveLedgerEntry.org_id) == org_id,
            col(LeaveLedgerEntry.employee_id) == employee_id,
            col(LeaveLedgerEntry.policy_id) == policy_id,
            col(LeaveLedgerEntry.year) == year,
            col(LeaveLedgerEntry.kind) == LedgerEntryKind.GRANT.value,
        )
    )
    return quantize_days(Decimal(result.scalar_one()))


# ---------------------------------------------------------------------------
# Opening balances
# ---------------------------------------------------------------------------


def _opening_entries_query(org_id: int, employee_id: str, year: int) -> Select[tuple[LeaveLedgerEntry]]:
    return select(LeaveLedgerEntry).where(
        col(LeaveLedgerEntry.org_id) == org_id,
        col(LeaveLedgerEntry.employee_id) == employee_id,
        col(LeaveLedgerEntry.year) == year,
        col(LeaveLedgerEntry.kind) == LedgerEntryKind.GRANT.value,
        col(LeaveLedgerEntry.description).contains(OPENING_BALANCE_MARKER),
    )


async def find_opening_balance_entries(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    policy: LeavePolicy,
    year: int,
) -> tuple[list[LeaveLedgerEntry], bool]:
    """Find imported opening-balance grants for the employee and policy.

    Looks under the exact policy first. When there are none, falls back to
    other policies of the organization that share the leave type id or the
    leave type name. The flag is True when the entries came from that fallback.
    """
    exact = await session.execute(
        _opening_entries_query(org_id, employee_id, year)
        .where(col(LeaveLedgerEntry.policy_id) == policy.id)
        .order_by(col(LeaveLedgerEntry.created_at))
    )
    entries = list(exact.scalars().all())
    if entries:
        return entries, False

    type_name = (
        select(LeaveType.name).where(col(LeaveType.id) == policy.leave_type_id).scalar_subquery()
    )
    sibling_ids = (
        select(LeavePolicy.id)
        .join(LeaveType, col(LeaveType.id) == col(LeavePolicy.leave_type_id))
        .where(
            col(LeavePolicy.org_id) == org_id,
            col(LeavePolicy.id) != policy.id,
            or_(
                col(LeavePolicy.leave_type_id) == policy.leave_type_id,
                col(LeaveType.name) == type_name,
            ),
        )
    )
    fallback = await session.execute(
        _opening_entries_query(org_id, employee_id, year)
        .where(col(LeaveLedgerEntry.policy_id).in_(sibling_ids))
        .order_by(col(LeaveLedgerEntry.created_at))
    )
    return list(fallback.scalars().all()), True


def sum_entries(entries: list[LeaveLedgerEntry]) -> Decimal:
    return quantize_days(sum((e.amount for e in entries), _ZERO))


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


async def seed_balance(
    session: AsyncSession,
    *,
    org_id: int,
    employee_id: str,
    policy: LeavePolicy,
    year: int,
    joining_date: date | None,
    as_of: date,
    actor_id: str,
) -> LeaveBalanceSnapshot | None:
    """Create the snapshot for a key and its initial grant. Idempotent.

    Returns the existing snapshot untouched when one is already there, and
    None for policies that do not track a balance. Imported opening balances
    take the place of the computed entitlement.
    """
    settings = parse_settings(policy)
    if not settings.is_balance_tracked:
        return None

    snapshot = await lock_snapshot(session, org_id, employee_id, policy.id, year)
    if snapshot is not None:
        return snapshot

    snapshot = await _create_snapshot(session, org_id, employee_id, policy.id, year)
    opening_entries, from_other_policy = await find_opening_balance_entries(
        session, org_id, employee_id, policy, year
    )

    if opening_entries and not from_other_policy:
        snapshot.total_entitlement = sum_entries(opening_entries)
        await session.flush()
        return snapshot

    if opening_entries:
        opening = sum_entries(opening_entries)
        entry = await append_entry(
            session,
            snapshot,
            kind=LedgerEntryKind.GRANT,
            amount=opening,
            description=f"{OPENING_BALANCE_MARKER} ({format_days(opening)} days) - reconciled for {policy.name}",
            created_by=actor_id,
            metadata={"source_entry_ids": [str(e.id) for e in opening_entries]},
        )
        snapshot.total_entitlement = opening
    else:
        entitlement = compute_entitlement(settings.grant, joining_date, as_of, year)
        entry = await append_entry(
            session,
            snapshot,
            kind=LedgerEntryKind.GRANT,
            amount=entitlement.starting_balance,
            description=(
                f"Leave granted under {policy.name} for {year} "
                f"({format_days(entitlement.starting_balance)} days)"
            ),
            created_by=actor_id,
            metadata={
                "joining_date": joining_date.isoformat() if joining_date else None,
                "as_of": as_of.isoformat(),
            },
        )
        snapshot.total_entitlement = entitlement.total_entitlement

    await write_audit_log(
        session,
        org_id=org_id,
        actor_id=actor_id,
        entity_type=AuditEntityType.BALANCE,
        entity_id=entry.id,
        action=AuditAction.SEED,
        after_json=model_to_audit_dict(entry),
    )
    await session.flush()
    logger.info(
        "Seeded balance org=%s employee=%s policy=%s year=%s balance=%s",
        org_id,
        employee_id,
        policy.id,
        year,
        snapshot.current_balance,
    )
    return snapshot


async def ensure_snapshot_for_update(
    session: AsyncSession,
    *,
    org_id: int,
    employee_id: str,
    policy: LeavePolicy,
    year: int,
    actor_id: str,
) -> LeaveBalanceSnapshot:
    """Lock the snapshot for a tracked policy, seeding it lazily if it is missing."""
    snapshot = await lock_snapshot(session, org_id, employee_id, policy.id, year)
    if snapshot is not None:
        return snapshot

    joining_date = await lookup_joining_date(org_id, employee_id)
    seeded = await seed_balance(
        session,
        org_id=org_id,
        employee_id=employee_id,
        policy=policy,
        year=year,
        joining_date=joining_date,
        as_of=date.today(),
        actor_id=actor_id,
    )
    if seeded is None:
        raise ConfigurationError(f"Policy {policy.name} does not track a balance")
    return seeded


# ---------------------------------------------------------------------------
# Conflict retry
# ---------------------------------------------------------------------------


def _is_retryable(exc: DBAPIError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return sqlstate in _RETRYABLE_SQLSTATES


async def with_conflict_retry(session: AsyncSession, operation: Callable[[], Awaitable[T]]) -> T:
    """Run a ledger operation, rolling back and re-running it on concurrency conflicts.

    The operation must own its whole transaction (including the commit) so a
    retry starts from a clean session.
    """
    attempts = max(get_settings().ledger_conflict_retries, 1)
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except ConcurrencyConflict:
            await session.rollback()
            if attempt == attempts:
                raise
        except DBAPIError as exc:
            await session.rollback()
            if not _is_retryable(exc):
                raise
            if attempt == attempts:
                raise ConcurrencyConflict() from exc
        logger.warning("Ledger conflict, retrying (attempt %s of %s)", attempt + 1, attempts)
    raise ConcurrencyConflict()

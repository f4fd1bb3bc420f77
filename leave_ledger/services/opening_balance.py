# ruff: noqa: TC003
"""Leave-type mappings and the opening-balance import.

Imported rows name leave types by an external label. Labels are resolved
only through the admin-curated mapping table (exact match after trimming and
case folding); anything unresolved rejects the whole import.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.exceptions import AppError, NotFoundError, ValidationError
from leave_ledger.models.assignment import LeavePolicyAssignment
from leave_ledger.models.enums import AuditAction, AuditEntityType, LedgerEntryKind
from leave_ledger.models.leave_type import LeaveTypeMapping
from leave_ledger.models.policy import LeavePolicy
from leave_ledger.schemas.maintenance import (
    LeaveTypeMappingListResponse,
    LeaveTypeMappingResponse,
    OpeningBalanceImportResponse,
)
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log
from leave_ledger.services.entitlement import format_days, quantize_days
from leave_ledger.services.ledger import (
    OPENING_BALANCE_MARKER,
    append_entry,
    find_opening_balance_entries,
    get_or_create_snapshot_for_update,
    sum_grants,
    with_conflict_retry,
)
from leave_ledger.services.policy import get_leave_type_or_404, get_policy_or_404, parse_settings

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.auth import AuthContext
    from leave_ledger.schemas.maintenance import (
        CreateLeaveTypeMappingRequest,
        OpeningBalanceImportRequest,
        OpeningBalanceRow,
    )

logger = logging.getLogger(__name__)


def normalize_source_name(name: str) -> str:
    return name.strip().casefold()


def _build_mapping_response(mapping: LeaveTypeMapping) -> LeaveTypeMappingResponse:
    return LeaveTypeMappingResponse(
        id=mapping.id,
        org_id=mapping.org_id,
        source_name=mapping.source_name,
        leave_type_id=mapping.leave_type_id,
        created_at=mapping.created_at,
    )


# ---------------------------------------------------------------------------
# Mappings
# ---------------------------------------------------------------------------


async def create_mapping(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateLeaveTypeMappingRequest,
) -> LeaveTypeMappingResponse:
    """Map an external leave-type label to one of the organization's leave types."""
    await get_leave_type_or_404(session, auth.org_id, payload.leave_type_id)

    mapping = LeaveTypeMapping(
        org_id=auth.org_id,
        source_name=payload.source_name.strip(),
        source_key=normalize_source_name(payload.source_name),
        leave_type_id=payload.leave_type_id,
    )
    session.add(mapping)

    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise AppError(f'A mapping for "{payload.source_name}" already exists', status_code=409) from None

    await write_audit_log(
        session,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.LEAVE_TYPE_MAPPING,
        entity_id=mapping.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(mapping),
    )

    await session.commit()
    await session.refresh(mapping)
    return _build_mapping_response(mapping)


async def list_mappings(session: AsyncSession, org_id: int) -> LeaveTypeMappingListResponse:
    result = await session.execute(
        select(LeaveTypeMapping)
        .where(col(LeaveTypeMapping.org_id) == org_id)
        .order_by(col(LeaveTypeMapping.source_key))
    )
    mappings = list(result.scalars().all())
    return LeaveTypeMappingListResponse(items=[_build_mapping_response(m) for m in mappings], total=len(mappings))


async def delete_mapping(
    session: AsyncSession,
    auth: AuthContext,
    mapping_id: uuid.UUID,
) -> None:
    """Delete a mapping. Balances already imported through it are kept."""
    result = await session.execute(
        select(LeaveTypeMapping).where(
            col(LeaveTypeMapping.id) == mapping_id,
            col(LeaveTypeMapping.org_id) == auth.org_id,
        )
    )
    mapping = result.scalar_one_or_none()
    if mapping is None:
        raise NotFoundError("Leave type mapping not found")

    await write_audit_log(
        session,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.LEAVE_TYPE_MAPPING,
        entity_id=mapping.id,
        action=AuditAction.DELETE,
        before_json=model_to_audit_dict(mapping),
    )

    await session.delete(mapping)
    await session.commit()


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _ResolvedRow:
    row: OpeningBalanceRow
    policy_id: uuid.UUID


async def _find_assigned_policy(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    leave_type_id: uuid.UUID,
    year: int,
) -> LeavePolicy | None:
    """The policy of the leave type the employee is assigned to at some point in ``year``."""
    result = await session.execute(
        select(LeavePolicy)
        .join(LeavePolicyAssignment, col(LeavePolicyAssignment.policy_id) == col(LeavePolicy.id))
        .where(
            col(LeavePolicyAssignment.org_id) == org_id,
            col(LeavePolicyAssignment.employee_id) == employee_id,
            col(LeavePolicy.leave_type_id) == leave_type_id,
            col(LeavePolicyAssignment.effective_from) <= date(year, 12, 31),
            or_(
                col(LeavePolicyAssignment.effective_to).is_(None),
                col(LeavePolicyAssignment.effective_to) > date(year, 1, 1),
            ),
        )
        .order_by(col(LeavePolicyAssignment.effective_from).desc())
    )
    return result.scalars().first()


async def _resolve_rows(
    session: AsyncSession,
    org_id: int,
    payload: OpeningBalanceImportRequest,
) -> list[_ResolvedRow]:
    """Resolve every row to a policy, or raise ValidationError listing every unresolved row."""
    mapping_result = await session.execute(
        select(LeaveTypeMapping).where(col(LeaveTypeMapping.org_id) == org_id)
    )
    mapped = {m.source_key: m.leave_type_id for m in mapping_result.scalars().all()}

    resolved: list[_ResolvedRow] = []
    violations: list[str] = []
    for index, row in enumerate(payload.rows, start=1):
        leave_type_id = mapped.get(normalize_source_name(row.leave_type))
        if leave_type_id is None:
            violations.append(f'Row {index}: no mapping for leave type "{row.leave_type}"')
            continue
        policy = await _find_assigned_policy(session, org_id, row.employee_id, leave_type_id, payload.year)
        if policy is None:
            violations.append(
                f'Row {index}: employee {row.employee_id} has no active assignment for "{row.leave_type}"'
            )
            continue
        if not parse_settings(policy).is_balance_tracked:
            violations.append(f"Row {index}: policy {policy.name} does not track a balance")
            continue
        resolved.append(_ResolvedRow(row=row, policy_id=policy.id))

    if violations:
        raise ValidationError(violations)
    return resolved


async def _import_row(
    session: AsyncSession,
    auth: AuthContext,
    item: _ResolvedRow,
    year: int,
) -> bool:
    """Write one row's opening balance. Returns False if the key already has one."""
    row = item.row
    policy = await get_policy_or_404(session, auth.org_id, item.policy_id)
    existing, from_other_policy = await find_opening_balance_entries(
        session, auth.org_id, row.employee_id, policy, year
    )
    if existing and not from_other_policy:
        return False

    snapshot = await get_or_create_snapshot_for_update(session, auth.org_id, row.employee_id, policy.id, year)

    computed = await sum_grants(session, auth.org_id, row.employee_id, policy.id, year)
    if computed != 0:
        await append_entry(
            session,
            snapshot,
            kind=LedgerEntryKind.GRANT,
            amount=-computed,
            description=f"Computed entitlement superseded by imported opening balance ({format_days(computed)} days)",
            created_by=auth.user_id,
        )

    opening = quantize_days(row.opening_balance)
    entry = await append_entry(
        session,
        snapshot,
        kind=LedgerEntryKind.GRANT,
        amount=opening,
        description=f"{OPENING_BALANCE_MARKER} ({format_days(opening)} days)",
        created_by=auth.user_id,
        metadata={"source_name": row.leave_type, "availed": str(row.availed)},
    )
    if row.availed > 0:
        availed = quantize_days(row.availed)
        await append_entry(
            session,
            snapshot,
            kind=LedgerEntryKind.DEDUCTION,
            amount=-availed,
            description=f"Leave availed before import ({format_days(availed)} days)",
            created_by=auth.user_id,
        )
    snapshot.total_entitlement = opening

    await write_audit_log(
        session,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.BALANCE,
        entity_id=entry.id,
        action=AuditAction.IMPORT,
        after_json=model_to_audit_dict(entry),
    )
    await session.flush()
    return True


async def import_opening_balances(
    session: AsyncSession,
    auth: AuthContext,
    payload: OpeningBalanceImportRequest,
) -> OpeningBalanceImportResponse:
    """Import opening balances for a year.

    All rows are resolved first and the import is rejected as a whole if any
    row cannot be. Imported balances replace computed grants; keys that
    already carry an opening balance are skipped. Everything commits together.
    """
    resolved = await _resolve_rows(session, auth.org_id, payload)

    async def _import() -> tuple[int, int]:
        imported = skipped = 0
        for item in resolved:
            if await _import_row(session, auth, item, payload.year):
                imported += 1
            else:
                skipped += 1
        await session.commit()
        return imported, skipped

    imported, skipped = await with_conflict_retry(session, _import)
    logger.info(
        "Opening balances imported for org=%s year=%s: imported=%d skipped=%d",
        auth.org_id,
        payload.year,
        imported,
        skipped,
    )
    return OpeningBalanceImportResponse(year=payload.year, imported=imported, skipped=skipped)

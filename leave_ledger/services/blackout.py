from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from leave_ledger.exceptions import NotFoundError
from leave_ledger.models.blackout import BlackoutPeriod
from leave_ledger.models.enums import AuditAction, AuditEntityType
from leave_ledger.schemas.blackout import BlackoutPeriodListResponse, BlackoutPeriodResponse
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log
from leave_ledger.services.validation import BlackoutWindow

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.auth import AuthContext
    from leave_ledger.schemas.blackout import CreateBlackoutPeriodRequest


def _build_blackout_response(period: BlackoutPeriod) -> BlackoutPeriodResponse:
    return BlackoutPeriodResponse(
        id=period.id,
        org_id=period.org_id,
        title=period.title,
        start_date=period.start_date,
        end_date=period.end_date,
        reason=period.reason,
        allow_leaves=period.allow_leaves,
        assigned_employee_ids=list(period.assigned_employee_ids or []),
        created_at=period.created_at,
    )


async def create_blackout_period(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateBlackoutPeriodRequest,
) -> BlackoutPeriodResponse:
    """Create a blackout period for the listed employees."""
    period = BlackoutPeriod(
        org_id=auth.org_id,
        title=payload.title,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        allow_leaves=payload.allow_leaves,
        assigned_employee_ids=list(dict.fromkeys(payload.assigned_employee_ids)),
    )
    session.add(period)
    await session.flush()

    await write_audit_log(
        session,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.BLACKOUT_PERIOD,
        entity_id=period.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(period),
    )

    await session.commit()
    await session.refresh(period)
    return _build_blackout_response(period)


async def list_blackout_periods(
    session: AsyncSession,
    org_id: int,
    year: int | None = None,
) -> BlackoutPeriodListResponse:
    """List blackout periods, optionally those touching a year."""
    query = select(BlackoutPeriod).where(col(BlackoutPeriod.org_id) == org_id)
    if year is not None:
        query = query.where(
            col(BlackoutPeriod.start_date) <= date(year, 12, 31),
            col(BlackoutPeriod.end_date) >= date(year, 1, 1),
        )
    result = await session.execute(query.order_by(col(BlackoutPeriod.start_date)))
    periods = list(result.scalars().all())
    return BlackoutPeriodListResponse(items=[_build_blackout_response(p) for p in periods], total=len(periods))


async def delete_blackout_period(
    session: AsyncSession,
    auth: AuthContext,
    period_id: uuid.UUID,
) -> None:
    """Delete a blackout period."""
    result = await session.execute(
        select(BlackoutPeriod).where(
            col(BlackoutPeriod.id) == period_id,
            col(BlackoutPeriod.org_id) == auth.org_id,
        )
    )
    period = result.scalar_one_or_none()
    if period is None:
        raise NotFoundError("Blackout period not found")

    await write_audit_log(
        session,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.BLACKOUT_PERIOD,
        entity_id=period.id,
        action=AuditAction.DELETE,
        before_json=model_to_audit_dict(period),
    )

    await session.delete(period)
    await session.commit()


async def load_blackout_windows(
    session: AsyncSession,
    org_id: int,
    start: date,
    end: date,
) -> list[BlackoutWindow]:
    """Blackout periods intersecting ``[start, end]``, as validation inputs."""
    result = await session.execute(
        select(BlackoutPeriod).where(
            col(BlackoutPeriod.org_id) == org_id,
            col(BlackoutPeriod.start_date) <= end,
            col(BlackoutPeriod.end_date) >= start,
        )
    )
    return [
        BlackoutWindow(
            title=period.title,
            start_date=period.start_date,
            end_date=period.end_date,
            allow_leaves=period.allow_leaves,
            employee_ids=frozenset(period.assigned_employee_ids or []),
        )
        for period in result.scalars().all()
    ]

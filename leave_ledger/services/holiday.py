from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.exceptions import AppError, NotFoundError
from leave_ledger.models.enums import AuditAction, AuditEntityType
from leave_ledger.models.holiday import OrgHoliday
from leave_ledger.schemas.holiday import HolidayListResponse, HolidayResponse
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.auth import AuthContext
    from leave_ledger.schemas.holiday import CreateHolidayRequest


def _build_holiday_response(holiday: OrgHoliday) -> HolidayResponse:
    return HolidayResponse(
        id=holiday.id,
        org_id=holiday.org_id,
        date=holiday.date,
        name=holiday.name,
        is_recurring=holiday.is_recurring,
    )


async def create_holiday(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateHolidayRequest,
) -> HolidayResponse:
    """Create an organization holiday."""
    holiday = OrgHoliday(
        org_id=auth.org_id,
        date=payload.date,
        name=payload.name,
        is_recurring=payload.is_recurring,
    )
    session.add(holiday)

    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise AppError("Holiday already exists for this date", status_code=409) from None

    await write_audit_log(
        session,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.HOLIDAY,
        entity_id=holiday.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(holiday),
    )

    await session.commit()
    await session.refresh(holiday)
    return _build_holiday_response(holiday)


async def list_holidays(
    session: AsyncSession,
    org_id: int,
    year: int | None = None,
    offset: int = 0,
    limit: int = 50,
) -> HolidayListResponse:
    """List organization holidays. With a year, recurring holidays from other years are included."""
    base_filter = [col(OrgHoliday.org_id) == org_id]

    if year is not None:
        base_filter.append(
            or_(
                col(OrgHoliday.is_recurring).is_(True),
                (col(OrgHoliday.date) >= date(year, 1, 1)) & (col(OrgHoliday.date) <= date(year, 12, 31)),
            )
        )

    count_result = await session.execute(select(func.count()).select_from(OrgHoliday).where(*base_filter))
    total = count_result.scalar_one()

    result = await session.execute(
        select(OrgHoliday).where(*base_filter).order_by(col(OrgHoliday.date)).offset(offset).limit(limit)
    )
    holidays = list(result.scalars().all())

    return HolidayListResponse(
        items=[_build_holiday_response(h) for h in holidays],
        total=total,
    )


async def get_holiday(
    session: AsyncSession,
    org_id: int,
    holiday_id: uuid.UUID,
) -> OrgHoliday:
    """Get a single holiday or raise 404."""
    result = await session.execute(
        select(OrgHoliday).where(
            col(OrgHoliday.id) == holiday_id,
            col(OrgHoliday.org_id) == org_id,
        )
    )
    holiday = result.scalar_one_or_none()
    if holiday is None:
        raise NotFoundError("Holiday not found")
    return holiday


async def delete_holiday(
    session: AsyncSession,
    auth: AuthContext,
    holiday_id: uuid.UUID,
) -> None:
    """Delete an organization holiday."""
    holiday = await get_holiday(session, auth.org_id, holiday_id)

    await write_audit_log(
        session,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.HOLIDAY,
        entity_id=holiday.id,
        action=AuditAction.DELETE,
        before_json=model_to_audit_dict(holiday),
    )

    await session.delete(holiday)
    await session.commit()

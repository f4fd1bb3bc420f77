# ruff: noqa: TC003
"""Work calendar: working-day and holiday predicates for a date range.

Validation consumes a ``WorkCalendar`` value loaded up front so the engine
itself stays pure. The default source is the organization holiday table; an
external ``CalendarService`` can be installed with ``set_calendar_service``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy import or_, select
from sqlmodel import col

from leave_ledger.config import get_settings
from leave_ledger.exceptions import ExternalServiceError
from leave_ledger.models.holiday import OrgHoliday

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_SATURDAY = 5
_SUNDAY = 6


@dataclass(frozen=True)
class WorkCalendar:
    """Working-day predicates over a loaded window of dates.

    ``degraded`` means holidays could not be loaded; only weekends are known.
    """

    weekend_days: frozenset[int] = frozenset({_SATURDAY, _SUNDAY})
    holidays: Mapping[date, str] = field(default_factory=dict)
    degraded: bool = False

    def is_holiday(self, day: date) -> bool:
        return day in self.holidays

    def holiday_name(self, day: date) -> str | None:
        return self.holidays.get(day)

    def is_working_day(self, day: date) -> bool:
        return day.weekday() not in self.weekend_days and not self.is_holiday(day)

    def count_working_days(self, start: date, end: date) -> int:
        """Count working days in the inclusive range."""
        count = 0
        day = start
        while day <= end:
            if self.is_working_day(day):
                count += 1
            day += timedelta(days=1)
        return count


@runtime_checkable
class CalendarService(Protocol):
    """Interface for an external work-calendar service."""

    async def get_holidays(self, org_id: int, start: date, end: date) -> dict[date, str]:
        """Return holiday names keyed by date within the inclusive range."""
        ...


_calendar_service: CalendarService | None = None


def get_calendar_service() -> CalendarService | None:
    """Return the installed external calendar service, if any."""
    return _calendar_service


def set_calendar_service(service: CalendarService | None) -> None:
    """Install an external calendar service, or None to use organization holidays."""
    global _calendar_service
    _calendar_service = service


async def _fetch_org_holidays(
    session: AsyncSession,
    org_id: int,
    start: date,
    end: date,
) -> dict[date, str]:
    """Fetch organization holidays in the range, expanding recurring ones onto each year."""
    result = await session.execute(
        select(OrgHoliday).where(
            col(OrgHoliday.org_id) == org_id,
            or_(
                col(OrgHoliday.is_recurring).is_(True),
                (col(OrgHoliday.date) >= start) & (col(OrgHoliday.date) <= end),
            ),
        )
    )
    holidays: dict[date, str] = {}
    for holiday in result.scalars().all():
        if not holiday.is_recurring:
            holidays[holiday.date] = holiday.name
            continue
        for year in range(start.year, end.year + 1):
            try:
                occurrence = holiday.date.replace(year=year)
            except ValueError:
                # 29 February in a non-leap year
                continue
            if start <= occurrence <= end:
                holidays.setdefault(occurrence, holiday.name)
    return holidays


async def load_work_calendar(
    session: AsyncSession,
    org_id: int,
    start: date,
    end: date,
) -> WorkCalendar:
    """Load the calendar for ``[start, end]``.

    An unreachable or slow external calendar degrades to weekends only.
    """
    settings = get_settings()
    weekend_days = frozenset(settings.weekend_days)
    service = get_calendar_service()

    if service is None:
        holidays = await _fetch_org_holidays(session, org_id, start, end)
        return WorkCalendar(weekend_days=weekend_days, holidays=holidays)

    try:
        holidays = await asyncio.wait_for(
            service.get_holidays(org_id, start, end),
            timeout=settings.calendar_timeout_seconds,
        )
    except (TimeoutError, ExternalServiceError) as exc:
        logger.warning(
            "Calendar unavailable for org=%s %s..%s, holiday checks skipped: %s",
            org_id,
            start,
            end,
            str(exc) or "timed out",
        )
        return WorkCalendar(weekend_days=weekend_days, degraded=True)
    return WorkCalendar(weekend_days=weekend_days, holidays=holidays)

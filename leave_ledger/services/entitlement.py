"""Entitlement calculator: pure functions turning a grant rule and reference dates into days.

Each (grant method, frequency) combination is one function in ``_STRATEGIES``.
"""

from __future__ import annotations

from calendar import monthrange
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from leave_ledger.exceptions import ConfigurationError
from leave_ledger.models.enums import GrantFrequency, GrantMethod

if TYPE_CHECKING:
    from leave_ledger.schemas.policy import GrantSettings

_CENT = Decimal("0.01")
_MONTHS_PER_YEAR = 12


@dataclass(frozen=True)
class Entitlement:
    """Result of an entitlement computation, in days."""

    total_entitlement: Decimal
    starting_balance: Decimal


def quantize_days(value: Decimal) -> Decimal:
    """Round a day amount half-up to two decimal places."""
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def add_months(start: date, months: int) -> date:
    """Shift a date by whole months, clamping the day to the target month's length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // _MONTHS_PER_YEAR
    month = month_index % _MONTHS_PER_YEAR + 1
    day = min(start.day, monthrange(year, month)[1])
    return date(year, month, day)


def completed_months(start: date, reference: date) -> int:
    """Count month boundaries fully elapsed between ``start`` and ``reference``.

    A month counts once ``start + n months <= reference``; the partial current
    month never counts. Joining on the 15th makes the 15th of each later month
    the boundary.
    """
    if reference <= start:
        return 0
    months = (reference.year - start.year) * _MONTHS_PER_YEAR + (reference.month - start.month)
    if add_months(start, months) > reference:
        months -= 1
    return max(months, 0)


def calendar_months_inclusive(start: date, end: date) -> int:
    """Number of calendar months touched from ``start``'s month to ``end``'s month."""
    if end < start:
        return 0
    return (end.year - start.year) * _MONTHS_PER_YEAR + (end.month - start.month) + 1


# ---------------------------------------------------------------------------
# Window helpers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Window:
    """Dates bounding an entitlement computation within one leave year."""

    effective_start: date
    year_start: date
    year_end: date
    reference: date


def _window(joining_date: date | None, reference_date: date, year: int) -> _Window:
    year_start = date(year, 1, 1)
    year_end = date(year, 12, 31)
    effective_start = year_start if joining_date is None else max(joining_date, year_start)
    # Past year end nothing more accrues; the first of January closes the last month.
    reference = min(reference_date, date(year + 1, 1, 1))
    return _Window(effective_start=effective_start, year_start=year_start, year_end=year_end, reference=reference)


def _monthly_rate(allotment: Decimal) -> Decimal:
    return allotment / _MONTHS_PER_YEAR


# ---------------------------------------------------------------------------
# Strategies: one pure function per (method, frequency)
# ---------------------------------------------------------------------------

_Strategy = Callable[[Decimal, _Window], Decimal]


def _after_earning_per_month(allotment: Decimal, window: _Window) -> Decimal:
    return _monthly_rate(allotment) * completed_months(window.effective_start, window.reference)


def _after_earning_per_year(allotment: Decimal, window: _Window) -> Decimal:
    if window.reference > window.year_end:
        return allotment
    return Decimal("0")


def _in_advance_per_year(allotment: Decimal, window: _Window) -> Decimal:
    return allotment


def _in_advance_per_month_up_front(allotment: Decimal, window: _Window) -> Decimal:
    return _monthly_rate(allotment) * calendar_months_inclusive(window.effective_start, window.year_end)


def _in_advance_per_month_to_date(allotment: Decimal, window: _Window) -> Decimal:
    reference = min(window.reference, window.year_end)
    return _monthly_rate(allotment) * calendar_months_inclusive(window.effective_start, reference)


_STRATEGIES: dict[tuple[GrantMethod, GrantFrequency], _Strategy] = {
    (GrantMethod.AFTER_EARNING, GrantFrequency.PER_MONTH): _after_earning_per_month,
    (GrantMethod.AFTER_EARNING, GrantFrequency.PER_YEAR): _after_earning_per_year,
    (GrantMethod.IN_ADVANCE, GrantFrequency.PER_YEAR): _in_advance_per_year,
    (GrantMethod.IN_ADVANCE, GrantFrequency.PER_MONTH): _in_advance_per_month_up_front,
}

# Earned-to-date reads differ from up-front grants only for in-advance monthly policies.
_TO_DATE_STRATEGIES: dict[tuple[GrantMethod, GrantFrequency], _Strategy] = {
    **_STRATEGIES,
    (GrantMethod.IN_ADVANCE, GrantFrequency.PER_MONTH): _in_advance_per_month_to_date,
}


def _compute(
    strategies: dict[tuple[GrantMethod, GrantFrequency], _Strategy],
    grant: GrantSettings,
    joining_date: date | None,
    reference_date: date,
    year: int,
) -> Entitlement:
    if grant.annual_allotment is None:
        raise ConfigurationError("Policy has no annual allotment configured")
    allotment = grant.annual_allotment
    total = quantize_days(allotment)

    if joining_date is None:
        # Directory has no joining date: treat as fully entitled.
        return Entitlement(total_entitlement=total, starting_balance=total)
    if joining_date.year > year:
        return Entitlement(total_entitlement=total, starting_balance=Decimal("0.00"))

    strategy = strategies[(grant.method, grant.frequency)]
    window = _window(joining_date, reference_date, year)
    return Entitlement(total_entitlement=total, starting_balance=quantize_days(strategy(allotment, window)))


def compute_entitlement(
    grant: GrantSettings,
    joining_date: date | None,
    reference_date: date,
    year: int,
) -> Entitlement:
    """Compute what is granted when a balance is first seeded for ``year``.

    In-advance monthly policies are granted the months remaining from the
    effective start through December.
    """
    return _compute(_STRATEGIES, grant, joining_date, reference_date, year)


def compute_earned_to_date(
    grant: GrantSettings,
    joining_date: date | None,
    reference_date: date,
    year: int,
) -> Entitlement:
    """Compute what has become available by ``reference_date`` (eligibility-to-date read).

    In-advance monthly policies count months from the effective start through
    the reference month.
    """
    return _compute(_TO_DATE_STRATEGIES, grant, joining_date, reference_date, year)


def format_days(value: Decimal) -> str:
    """Render a day amount without trailing zeros (``5.00`` -> ``5``, ``2.50`` -> ``2.5``)."""
    return format(value.normalize(), "f")

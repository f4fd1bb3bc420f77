# ruff: noqa: TC003
"""Validation engine for candidate leave requests.

``validate_leave_request`` is pure: everything it needs (balance, calendar,
other requests, blackout periods) is gathered by the caller into a
``ValidationContext``. Violations come back in a fixed order and callers show
the first one to the employee, so the order of ``_RULES`` is part of the
contract.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from leave_ledger.models.enums import EligibilityGate, InstancePeriod, RequestStatus
from leave_ledger.schemas.policy import PolicySettings
from leave_ledger.services.entitlement import format_days
from leave_ledger.services.work_calendar import WorkCalendar

# Requests in these states hold days on the calendar.
ACTIVE_STATUSES = frozenset({RequestStatus.PENDING, RequestStatus.APPROVED, RequestStatus.WITHDRAWAL_PENDING})

_STATUS_LABELS = {
    RequestStatus.PENDING: "pending approval",
    RequestStatus.APPROVED: "approved",
    RequestStatus.WITHDRAWAL_PENDING: "pending withdrawal",
}


@dataclass(frozen=True)
class ExistingRequest:
    """Another request of the same employee, as seen by the overlap and instance checks."""

    id: uuid.UUID
    policy_id: uuid.UUID
    start_date: date
    end_date: date
    status: RequestStatus


@dataclass(frozen=True)
class BlackoutWindow:
    """A blackout period and the employees it applies to."""

    title: str
    start_date: date
    end_date: date
    allow_leaves: bool
    employee_ids: frozenset[str]


@dataclass(frozen=True)
class ValidationContext:
    """Everything the rules need beyond the policy and the requested dates.

    ``available_days`` is None for policies that do not track a balance.
    """

    today: date
    employee_id: str
    policy_id: uuid.UUID
    policy_name: str
    available_days: Decimal | None
    negative_balance_limit: Decimal
    joining_date: date | None
    calendar: WorkCalendar
    document_count: int = 0
    existing_requests: Sequence[ExistingRequest] = ()
    blackout_periods: Sequence[BlackoutWindow] = ()
    default_probation_days: int = 90


@dataclass(frozen=True)
class _Candidate:
    settings: PolicySettings
    start_date: date
    end_date: date
    working_days: Decimal
    context: ValidationContext


# ---------------------------------------------------------------------------
# Rules, in reporting order
# ---------------------------------------------------------------------------


def _check_balance(c: _Candidate) -> list[str]:
    available = c.context.available_days
    if available is None:
        return []
    requested = c.working_days
    limit = abs(c.context.negative_balance_limit)
    prefix = (
        f"Insufficient balance. Available: {format_days(available)} days, "
        f"Requested: {format_days(requested)} days."
    )

    if limit == 0:
        if requested > available:
            return [f"{prefix} Negative balance is not allowed for this leave type."]
        return []
    if available - requested < -limit:
        return [f"{prefix} Maximum negative balance allowed: {format_days(limit)} days."]
    return []


def _check_min_days(c: _Candidate) -> list[str]:
    minimum = c.settings.limits.min_days_required
    if minimum and c.working_days < minimum:
        return [f"Minimum {format_days(minimum)} days required for this leave type"]
    return []


def _check_max_days(c: _Candidate) -> list[str]:
    maximum = c.settings.limits.max_days_in_stretch
    if maximum and c.working_days > maximum:
        return [f"Maximum {format_days(maximum)} days allowed in a single application"]
    return []


def _check_holidays(c: _Candidate) -> list[str]:
    calendar = c.context.calendar
    if calendar.degraded:
        return []
    violations = []
    day = c.start_date
    while day <= c.end_date:
        if calendar.is_holiday(day):
            violations.append(f"Cannot apply leave on holiday: {calendar.holiday_name(day)} ({day.isoformat()})")
        day += timedelta(days=1)
    return violations


def _check_advance_notice(c: _Candidate) -> list[str]:
    notice = c.settings.limits.must_be_planned_in_advance
    if notice and (c.start_date - c.context.today).days < notice:
        return [f"Leave must be planned {notice} days in advance"]
    return []


def _check_eligibility(c: _Candidate) -> list[str]:
    eligibility = c.settings.eligibility
    joining_date = c.context.joining_date
    if eligibility.gate == EligibilityGate.FROM_JOINING or joining_date is None:
        return []

    days = eligibility.days
    if eligibility.gate == EligibilityGate.AFTER_PROBATION and days == 0:
        days = c.context.default_probation_days
    eligible_from = joining_date + timedelta(days=days)
    if c.context.today >= eligible_from:
        return []

    remaining = (eligible_from - c.context.today).days
    return [
        f"You can apply for {c.context.policy_name} only after {days} days from your joining date "
        f"({joining_date.isoformat()}). Eligible from {eligible_from.isoformat()} ({remaining} days remaining)"
    ]


def _check_weekend_adjacency(c: _Candidate) -> list[str]:
    if c.settings.limits.allow_leaves_before_weekend:
        return []
    if not c.context.calendar.is_working_day(c.end_date + timedelta(days=1)):
        return ["Leave cannot be taken before weekends"]
    return []


def _check_documents(c: _Candidate) -> list[str]:
    if c.settings.limits.supporting_documents_required and c.context.document_count == 0:
        return ["Supporting documents are required for this leave type"]
    return []


def _period_key(day: date, period: InstancePeriod) -> tuple[int, int]:
    if period == InstancePeriod.MONTH:
        return day.year, day.month
    if period == InstancePeriod.QUARTER:
        return day.year, (day.month - 1) // 3
    return day.year, 0


def _check_max_instances(c: _Candidate) -> list[str]:
    limits = c.settings.limits
    if not limits.max_instances:
        return []
    period = limits.max_instances_period
    target = _period_key(c.start_date, period)
    count = sum(
        1
        for other in c.context.existing_requests
        if other.policy_id == c.context.policy_id
        and other.status in ACTIVE_STATUSES
        and _period_key(other.start_date, period) == target
    )
    if count >= limits.max_instances:
        return [f"Maximum {limits.max_instances} applications allowed per {period.value.lower()}"]
    return []


def _check_overlap(c: _Candidate) -> list[str]:
    for other in c.context.existing_requests:
        if other.status not in ACTIVE_STATUSES:
            continue
        if other.start_date <= c.end_date and c.start_date <= other.end_date:
            label = _STATUS_LABELS[other.status]
            if other.start_date == other.end_date:
                return [f"You already have a {label} leave request on {other.start_date.isoformat()}"]
            return [
                f"You already have a {label} leave request from "
                f"{other.start_date.isoformat()} to {other.end_date.isoformat()}"
            ]
    return []


def _check_blackouts(c: _Candidate) -> list[str]:
    violations = []
    for period in c.context.blackout_periods:
        if c.context.employee_id not in period.employee_ids or period.allow_leaves:
            continue
        if period.start_date <= c.end_date and c.start_date <= period.end_date:
            if period.start_date == period.end_date:
                span = f"on {period.start_date.isoformat()}"
            else:
                span = f"from {period.start_date.isoformat()} to {period.end_date.isoformat()}"
            violations.append(
                f'You are not allowed to apply for leave during the blackout period "{period.title}" {span}.'
            )
    return violations


_RULES: tuple[Callable[[_Candidate], list[str]], ...] = (
    _check_balance,
    _check_min_days,
    _check_max_days,
    _check_holidays,
    _check_advance_notice,
    _check_eligibility,
    _check_weekend_adjacency,
    _check_documents,
    _check_max_instances,
    _check_overlap,
    _check_blackouts,
)


def validate_leave_request(
    settings: PolicySettings,
    start_date: date,
    end_date: date,
    requested_working_days: Decimal,
    context: ValidationContext,
) -> list[str]:
    """Return every rule violation for the candidate request, in reporting order."""
    candidate = _Candidate(
        settings=settings,
        start_date=start_date,
        end_date=end_date,
        working_days=requested_working_days,
        context=context,
    )
    violations: list[str] = []
    for rule in _RULES:
        violations.extend(rule(candidate))
    return violations

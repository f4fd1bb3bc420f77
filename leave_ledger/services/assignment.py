# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.exceptions import AppError, ConfigurationError, NotFoundError
from leave_ledger.models.assignment import LeavePolicyAssignment
from leave_ledger.models.enums import AuditAction, AuditEntityType
from leave_ledger.schemas.assignment import AssignmentListResponse, AssignmentResponse
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log
from leave_ledger.services.directory import lookup_joining_date
from leave_ledger.services.ledger import seed_balance, with_conflict_retry
from leave_ledger.services.policy import get_policy_or_404

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.assignment import CreateAssignmentRequest
    from leave_ledger.schemas.auth import AuthContext


def _build_assignment_response(assignment: LeavePolicyAssignment) -> AssignmentResponse:
    """Build an AssignmentResponse from a DB model."""
    return AssignmentResponse(
        id=assignment.id,
        org_id=assignment.org_id,
        employee_id=assignment.employee_id,
        policy_id=assignment.policy_id,
        effective_from=assignment.effective_from,
        effective_to=assignment.effective_to,
        created_by=assignment.created_by,
        created_at=assignment.created_at,
    )


def active_on(at_date: date) -> list[ColumnElement[bool]]:
    """Filters selecting assignments active on a date: half-open [effective_from, effective_to)."""
    return [
        col(LeavePolicyAssignment.effective_from) <= at_date,
        or_(
            col(LeavePolicyAssignment.effective_to).is_(None),
            col(LeavePolicyAssignment.effective_to) > at_date,
        ),
    ]


async def _check_overlap(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    policy_id: uuid.UUID,
    effective_from: date,
    effective_to: date | None,
) -> None:
    """Check for overlapping assignments using half-open intervals [from, to)."""
    query = select(LeavePolicyAssignment).where(
        col(LeavePolicyAssignment.org_id) == org_id,
        col(LeavePolicyAssignment.employee_id) == employee_id,
        col(LeavePolicyAssignment.policy_id) == policy_id,
        or_(
            col(LeavePolicyAssignment.effective_to).is_(None),
            col(LeavePolicyAssignment.effective_to) > effective_from,
        ),
    )
    if effective_to is not None:
        query = query.where(col(LeavePolicyAssignment.effective_from) < effective_to)
    result = await session.execute(query)
    if result.scalars().first() is not None:
        raise AppError(
            "Assignment overlaps with an existing assignment for this employee and policy",
            status_code=409,
        )


async def create_assignment(
    session: AsyncSession,
    auth: AuthContext,
    policy_id: uuid.UUID,
    payload: CreateAssignmentRequest,
) -> AssignmentResponse:
    """Assign an employee to a policy and seed their balance.

    The balance is seeded for the year the assignment becomes effective
    (or the current year for back-dated assignments), using the joining date
    from the directory.
    """
    as_of = max(date.today(), payload.effective_from)
    joining_date = await lookup_joining_date(auth.org_id, payload.employee_id)

    async def _create() -> LeavePolicyAssignment:
        policy = await get_policy_or_404(session, auth.org_id, policy_id)
        await _check_overlap(
            session,
            auth.org_id,
            payload.employee_id,
            policy_id,
            payload.effective_from,
            payload.effective_to,
        )

        assignment = LeavePolicyAssignment(
            org_id=auth.org_id,
            employee_id=payload.employee_id,
            policy_id=policy_id,
            effective_from=payload.effective_from,
            effective_to=payload.effective_to,
            created_by=auth.user_id,
        )
        session.add(assignment)

        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            raise AppError("Duplicate assignment", status_code=409) from None

        await write_audit_log(
            session,
            org_id=auth.org_id,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.ASSIGNMENT,
            entity_id=assignment.id,
            action=AuditAction.CREATE,
            after_json=model_to_audit_dict(assignment),
        )

        await seed_balance(
            session,
            org_id=auth.org_id,
            employee_id=payload.employee_id,
            policy=policy,
            year=as_of.year,
            joining_date=joining_date,
            as_of=as_of,
            actor_id=auth.user_id,
        )

        await session.commit()
        await session.refresh(assignment)
        return assignment

    assignment = await with_conflict_retry(session, _create)
    return _build_assignment_response(assignment)


async def list_assignments_by_policy(
    session: AsyncSession,
    org_id: int,
    policy_id: uuid.UUID,
    offset: int = 0,
    limit: int = 50,
) -> AssignmentListResponse:
    """List all assignments for a policy."""
    await get_policy_or_404(session, org_id, policy_id)

    filters = [
        col(LeavePolicyAssignment.org_id) == org_id,
        col(LeavePolicyAssignment.policy_id) == policy_id,
    ]
    count_result = await session.execute(select(func.count()).select_from(LeavePolicyAssignment).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeavePolicyAssignment)
        .where(*filters)
        .order_by(col(LeavePolicyAssignment.effective_from).desc())
        .offset(offset)
        .limit(limit)
    )
    assignments = list(result.scalars().all())

    return AssignmentListResponse(
        items=[_build_assignment_response(a) for a in assignments],
        total=total,
    )


async def list_assignments_by_employee(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    offset: int = 0,
    limit: int = 50,
) -> AssignmentListResponse:
    """List all assignments for an employee."""
    filters = [
        col(LeavePolicyAssignment.org_id) == org_id,
        col(LeavePolicyAssignment.employee_id) == employee_id,
    ]
    count_result = await session.execute(select(func.count()).select_from(LeavePolicyAssignment).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeavePolicyAssignment)
        .where(*filters)
        .order_by(col(LeavePolicyAssignment.effective_from).desc())
        .offset(offset)
        .limit(limit)
    )
    assignments = list(result.scalars().all())

    return AssignmentListResponse(
        items=[_build_assignment_response(a) for a in assignments],
        total=total,
    )


async def end_date_assignment(
    session: AsyncSession,
    auth: AuthContext,
    assignment_id: uuid.UUID,
    effective_to: date,
) -> AssignmentResponse:
    """End-date an assignment (soft delete). Balances and ledger entries are kept."""
    result = await session.execute(
        select(LeavePolicyAssignment).where(
            col(LeavePolicyAssignment.id) == assignment_id,
            col(LeavePolicyAssignment.org_id) == auth.org_id,
        )
    )
    assignment = result.scalar_one_or_none()
    if assignment is None:
        raise NotFoundError("Assignment not found")

    if assignment.effective_to is not None:
        raise AppError("Assignment is already end-dated", status_code=400)

    if effective_to < assignment.effective_from:
        raise AppError("effective_to must be >= effective_from", status_code=400)

    before_dict = model_to_audit_dict(assignment)
    assignment.effective_to = effective_to
    await session.flush()

    await write_audit_log(
        session,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.ASSIGNMENT,
        entity_id=assignment.id,
        action=AuditAction.UPDATE,
        before_json=before_dict,
        after_json=model_to_audit_dict(assignment),
    )

    await session.commit()
    await session.refresh(assignment)
    return _build_assignment_response(assignment)


async def verify_active_assignment(
    session: AsyncSession,
    org_id: int,
    employee_id: str,
    policy_id: uuid.UUID,
    at_date: date,
) -> LeavePolicyAssignment:
    """Verify an employee has an active assignment to a policy on a given date.

    Raises ConfigurationError if no active assignment is found.
    """
    result = await session.execute(
        select(LeavePolicyAssignment).where(
            col(LeavePolicyAssignment.org_id) == org_id,
            col(LeavePolicyAssignment.employee_id) == employee_id,
            col(LeavePolicyAssignment.policy_id) == policy_id,
            *active_on(at_date),
        )
    )
    assignment = result.scalars().first()
    if assignment is None:
        raise ConfigurationError("Employee is not assigned to this policy on the given date")
    return assignment

# ruff: noqa: TC003
"""Leave request lifecycle.

Status changes go through ``next_status`` and the ``_TRANSITIONS`` table;
anything not in the table raises InvalidTransitionError. Transitions that move
days (approval, rejection, cancellation, withdrawal) write to the ledger in
the same transaction as the status change.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlmodel import col

from leave_ledger.config import get_settings
from leave_ledger.exceptions import AppError, ConfigurationError, InvalidTransitionError, NotFoundError, ValidationError
from leave_ledger.models.base import now_utc
from leave_ledger.models.enums import (
    AuditAction,
    AuditEntityType,
    LeaveUnit,
    LedgerEntryKind,
    RequestAction,
    RequestStatus,
    WorkflowProcess,
)
from leave_ledger.models.request import LeaveRequest
from leave_ledger.schemas.request import RequestListResponse, RequestResponse, ValidationPreviewResponse
from leave_ledger.services.assignment import verify_active_assignment
from leave_ledger.services.audit import SYSTEM_ACTOR, model_to_audit_dict, write_audit_log
from leave_ledger.services.blackout import load_blackout_windows
from leave_ledger.services.directory import lookup_joining_date
from leave_ledger.services.documents import verify_documents
from leave_ledger.services.entitlement import compute_entitlement, format_days
from leave_ledger.services.ledger import (
    append_entry,
    ensure_snapshot_for_update,
    get_snapshot,
    has_deduction_for_request,
    request_net_amount,
    request_reference,
    with_conflict_retry,
)
from leave_ledger.services.policy import get_leave_type_or_404, get_policy_or_404, parse_settings
from leave_ledger.services.validation import (
    ACTIVE_STATUSES,
    ExistingRequest,
    ValidationContext,
    validate_leave_request,
)
from leave_ledger.services.work_calendar import load_work_calendar
from leave_ledger.services.workflow import find_workflow, get_workflow_or_404, workflow_steps

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.models.policy import LeavePolicy
    from leave_ledger.schemas.auth import AuthContext
    from leave_ledger.schemas.request import (
        DecisionPayload,
        RejectPayload,
        SubmitRequestPayload,
        WithdrawPayload,
    )
    from leave_ledger.schemas.workflow import WorkflowStep

logger = logging.getLogger(__name__)

NO_WORKING_DAYS = "The selected dates do not include any working days"
HALF_DAY_NOT_ALLOWED = "Half-day leave is not allowed for this leave type"
HALF_DAY = Decimal("0.5")

_TRANSITIONS: dict[tuple[RequestStatus | None, RequestAction], RequestStatus] = {
    (None, RequestAction.SUBMIT_FOR_REVIEW): RequestStatus.PENDING,
    (None, RequestAction.AUTO_APPROVE): RequestStatus.APPROVED,
    (RequestStatus.PENDING, RequestAction.APPROVE_STEP): RequestStatus.PENDING,
    (RequestStatus.PENDING, RequestAction.APPROVE): RequestStatus.APPROVED,
    (RequestStatus.PENDING, RequestAction.REJECT): RequestStatus.REJECTED,
    (RequestStatus.PENDING, RequestAction.CANCEL): RequestStatus.WITHDRAWN,
    (RequestStatus.PENDING, RequestAction.WITHDRAW): RequestStatus.WITHDRAWN,
    (RequestStatus.APPROVED, RequestAction.REQUEST_WITHDRAWAL): RequestStatus.WITHDRAWAL_PENDING,
    (RequestStatus.APPROVED, RequestAction.WITHDRAW): RequestStatus.WITHDRAWN,
    (RequestStatus.WITHDRAWAL_PENDING, RequestAction.APPROVE_WITHDRAWAL_STEP): RequestStatus.WITHDRAWAL_PENDING,
    (RequestStatus.WITHDRAWAL_PENDING, RequestAction.APPROVE_WITHDRAWAL): RequestStatus.WITHDRAWN,
    (RequestStatus.WITHDRAWAL_PENDING, RequestAction.REJECT_WITHDRAWAL): RequestStatus.APPROVED,
}


def next_status(current: RequestStatus | None, action: RequestAction) -> RequestStatus:
    """Look up the state reached by ``action``. Raises InvalidTransitionError for edges not in the table."""
    try:
        return _TRANSITIONS[(current, action)]
    except KeyError:
        state = current.value if current is not None else "new"
        raise InvalidTransitionError(f"Cannot {action.value.lower()} a request in status {state}") from None


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_request_response(request: LeaveRequest) -> RequestResponse:
    """Map a request model to its response schema."""
    return RequestResponse(
        id=request.id,
        org_id=request.org_id,
        employee_id=request.employee_id,
        policy_id=request.policy_id,
        start_date=request.start_date,
        end_date=request.end_date,
        start_half_day=request.start_half_day,
        end_half_day=request.end_half_day,
        working_days=request.working_days,
        balance_year=request.balance_year,
        reason=request.reason,
        status=RequestStatus(request.status),
        workflow_id=request.workflow_id,
        current_step=request.current_step,
        approval_history=list(request.approval_history or []),
        document_ids=list(request.document_ids or []),
        submitted_at=request.submitted_at,
        decided_at=request.decided_at,
        decided_by=request.decided_by,
        decision_note=request.decision_note,
        withdrawal_reason=request.withdrawal_reason,
        created_at=request.created_at,
    )


async def _get_request_or_404(
    session: AsyncSession,
    org_id: int,
    request_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> LeaveRequest:
    """Fetch a request by ID scoped to the organization. Raises NotFoundError if missing."""
    query = select(LeaveRequest).where(
        col(LeaveRequest.id) == request_id,
        col(LeaveRequest.org_id) == org_id,
    )
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFoundError("Request not found")
    return request


def _ensure_owner_or_admin(auth: AuthContext, employee_id: str) -> None:
    if not auth.is_admin and employee_id != auth.user_id:
        raise AppError("Only the employee or an admin can act on this request", status_code=403)


def _ensure_reviewer(auth: AuthContext, step: WorkflowStep) -> None:
    if auth.is_admin:
        return
    if step.approver_role is not None and auth.role == step.approver_role:
        return
    raise AppError(f'You are not an approver for step "{step.title}"', status_code=403)


def _record_history(
    request: LeaveRequest,
    *,
    action: RequestAction,
    actor_id: str,
    note: str | None = None,
    step: int | None = None,
    title: str | None = None,
) -> None:
    entry: dict[str, Any] = {
        "step": step,
        "title": title,
        "action": action.value,
        "actor_id": actor_id,
        "at": now_utc().isoformat(),
        "note": note,
    }
    # JSON columns only persist on reassignment.
    request.approval_history = [*(request.approval_history or []), entry]


def _days_label(request: LeaveRequest) -> str:
    return f"{format_days(request.working_days)} days"


async def _deduct(
    session: AsyncSession,
    request: LeaveRequest,
    policy: LeavePolicy,
    *,
    kind: LedgerEntryKind,
    description: str,
    actor_id: str,
) -> None:
    """Deduct the request's working days unless a deduction for it already exists."""
    if not parse_settings(policy).is_balance_tracked:
        return
    snapshot = await ensure_snapshot_for_update(
        session,
        org_id=request.org_id,
        employee_id=request.employee_id,
        policy=policy,
        year=request.balance_year,
        actor_id=actor_id,
    )
    if await has_deduction_for_request(session, request.org_id, request.employee_id, request.policy_id, request.id):
        logger.info("Deduction for request %s already recorded, skipping", request.id)
        return
    await append_entry(
        session,
        snapshot,
        kind=kind,
        amount=-request.working_days,
        description=description,
        created_by=actor_id,
        request_id=request.id,
    )


async def _restore(
    session: AsyncSession,
    request: LeaveRequest,
    policy: LeavePolicy,
    *,
    description: str,
    actor_id: str,
) -> None:
    """Credit back whatever the request still holds. No entry when nothing was deducted."""
    if not parse_settings(policy).is_balance_tracked:
        return
    snapshot = await ensure_snapshot_for_update(
        session,
        org_id=request.org_id,
        employee_id=request.employee_id,
        policy=policy,
        year=request.balance_year,
        actor_id=actor_id,
    )
    outstanding = await request_net_amount(session, request.org_id, request.id)
    if outstanding >= 0:
        return
    await append_entry(
        session,
        snapshot,
        kind=LedgerEntryKind.CREDIT,
        amount=-outstanding,
        description=description,
        created_by=actor_id,
        request_id=request.id,
    )


def _close(request: LeaveRequest, status: RequestStatus, actor_id: str, note: str | None = None) -> None:
    request.status = status.value
    request.decided_at = now_utc()
    request.decided_by = actor_id
    if note is not None:
        request.decision_note = note


async def _approve_step(
    session: AsyncSession,
    request: LeaveRequest,
    policy: LeavePolicy,
    steps: list[WorkflowStep],
    *,
    actor_id: str,
    note: str | None,
    withdrawal: bool,
) -> None:
    """Approve the current step; the final step approves the request (or its withdrawal)."""
    index = request.current_step
    step = steps[index]
    is_final = index >= len(steps) - 1
    if withdrawal:
        action = RequestAction.APPROVE_WITHDRAWAL if is_final else RequestAction.APPROVE_WITHDRAWAL_STEP
    else:
        action = RequestAction.APPROVE if is_final else RequestAction.APPROVE_STEP
    status = next_status(RequestStatus(request.status), action)

    _record_history(request, action=action, actor_id=actor_id, note=note, step=index + 1, title=step.title)
    if not is_final:
        request.current_step = index + 1
        return

    _close(request, status, actor_id, note)
    reference = request_reference(request.id)
    if withdrawal:
        await _restore(
            session,
            request,
            policy,
            description=f"Withdrawal of leave request {reference} ({_days_label(request)})",
            actor_id=actor_id,
        )
    else:
        await _deduct(
            session,
            request,
            policy,
            kind=LedgerEntryKind.DEDUCTION,
            description=f"Leave deduction for approved application {reference} ({_days_label(request)})",
            actor_id=actor_id,
        )


async def _run_auto_approvals(
    session: AsyncSession,
    request: LeaveRequest,
    policy: LeavePolicy,
    steps: list[WorkflowStep],
    *,
    withdrawal: bool,
) -> None:
    """Approve steps flagged auto_approve as soon as they become current."""
    reviewing = RequestStatus.WITHDRAWAL_PENDING if withdrawal else RequestStatus.PENDING
    while (
        request.status == reviewing.value
        and request.current_step < len(steps)
        and steps[request.current_step].auto_approve
    ):
        await _approve_step(
            session,
            request,
            policy,
            steps,
            actor_id=SYSTEM_ACTOR,
            note="Auto-approved",
            withdrawal=withdrawal,
        )


async def _check_candidate(
    session: AsyncSession,
    *,
    org_id: int,
    employee_id: str,
    policy: LeavePolicy,
    start_date: date,
    end_date: date,
    available_days: Decimal | None,
    joining_date: date | None,
    document_count: int,
    start_half_day: bool = False,
    end_half_day: bool = False,
) -> tuple[Decimal, list[str]]:
    """Count working days and run the validation rules for a candidate request.

    Half-day flags only count on working days. A single-day request with
    either flag is half a day; otherwise each flagged end takes off half a day.
    """
    settings = parse_settings(policy)
    leave_type = await get_leave_type_or_404(session, org_id, policy.leave_type_id)
    # One day past the end so the weekend-adjacency rule sees holidays too.
    calendar = await load_work_calendar(session, org_id, start_date, end_date + timedelta(days=1))
    working_days = Decimal(calendar.count_working_days(start_date, end_date))
    if working_days == 0:
        return working_days, [NO_WORKING_DAYS]

    if start_half_day or end_half_day:
        if settings.limits.minimum_leave_unit == LeaveUnit.FULL_DAY:
            return working_days, [HALF_DAY_NOT_ALLOWED]
        if start_date == end_date:
            working_days = HALF_DAY
        else:
            if start_half_day and calendar.is_working_day(start_date):
                working_days -= HALF_DAY
            if end_half_day and calendar.is_working_day(end_date):
                working_days -= HALF_DAY

    existing_result = await session.execute(
        select(LeaveRequest).where(
            col(LeaveRequest.org_id) == org_id,
            col(LeaveRequest.employee_id) == employee_id,
            col(LeaveRequest.status).in_([s.value for s in ACTIVE_STATUSES]),
        )
    )
    existing = [
        ExistingRequest(
            id=r.id,
            policy_id=r.policy_id,
            start_date=r.start_date,
            end_date=r.end_date,
            status=RequestStatus(r.status),
        )
        for r in existing_result.scalars().all()
    ]

    context = ValidationContext(
        today=date.today(),
        employee_id=employee_id,
        policy_id=policy.id,
        policy_name=policy.name,
        available_days=available_days,
        negative_balance_limit=leave_type.negative_balance_limit,
        joining_date=joining_date,
        calendar=calendar,
        document_count=document_count,
        existing_requests=existing,
        blackout_periods=await load_blackout_windows(session, org_id, start_date, end_date),
        default_probation_days=get_settings().default_probation_days,
    )
    return working_days, validate_leave_request(settings, start_date, end_date, working_days, context)


async def _write_request_audit(
    session: AsyncSession,
    auth: AuthContext,
    request: LeaveRequest,
    action: AuditAction,
    before_json: dict[str, Any] | None,
) -> None:
    await session.flush()
    await write_audit_log(
        session,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.REQUEST,
        entity_id=request.id,
        action=action,
        before_json=before_json,
        after_json=model_to_audit_dict(request),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def preview_request(
    session: AsyncSession,
    auth: AuthContext,
    payload: SubmitRequestPayload,
) -> ValidationPreviewResponse:
    """Dry-run a submission: working days, available balance and every violation. Writes nothing."""
    _ensure_owner_or_admin(auth, payload.employee_id)
    policy = await get_policy_or_404(session, auth.org_id, payload.policy_id)
    settings = parse_settings(policy)
    joining_date = await lookup_joining_date(auth.org_id, payload.employee_id)

    available: Decimal | None = None
    if settings.is_balance_tracked:
        year = payload.start_date.year
        snapshot = await get_snapshot(session, auth.org_id, payload.employee_id, policy.id, year)
        if snapshot is not None:
            available = snapshot.current_balance
        else:
            available = compute_entitlement(settings.grant, joining_date, date.today(), year).starting_balance

    working_days, violations = await _check_candidate(
        session,
        org_id=auth.org_id,
        employee_id=payload.employee_id,
        policy=policy,
        start_date=payload.start_date,
        end_date=payload.end_date,
        available_days=available,
        joining_date=joining_date,
        document_count=len(set(payload.document_ids)),
        start_half_day=payload.start_half_day,
        end_half_day=payload.end_half_day,
    )
    return ValidationPreviewResponse(
        working_days=working_days,
        available_days=available,
        violations=violations,
        is_valid=not violations,
    )


async def submit_request(
    session: AsyncSession,
    auth: AuthContext,
    payload: SubmitRequestPayload,
) -> RequestResponse:
    """Submit a leave request.

    Flow:
    1. Verify the assignment and the referenced documents
    2. Lock (or lazily seed) the balance snapshot for the start date's year
    3. Run the validation rules; any violation rejects the submission
    4. Route through the apply workflow, or approve directly when none exists
    5. Deduct (or pre-deduct) through the ledger, audit and commit
    """
    _ensure_owner_or_admin(auth, payload.employee_id)
    joining_date = await lookup_joining_date(auth.org_id, payload.employee_id)

    async def _submit() -> LeaveRequest:
        policy = await get_policy_or_404(session, auth.org_id, payload.policy_id)
        if not policy.is_active:
            raise ConfigurationError(f"Policy {policy.name} is not active")
        settings = parse_settings(policy)
        await verify_active_assignment(session, auth.org_id, payload.employee_id, policy.id, payload.start_date)
        document_ids = await verify_documents(session, auth.org_id, payload.employee_id, payload.document_ids)

        balance_year = payload.start_date.year
        available: Decimal | None = None
        if settings.is_balance_tracked:
            snapshot = await ensure_snapshot_for_update(
                session,
                org_id=auth.org_id,
                employee_id=payload.employee_id,
                policy=policy,
                year=balance_year,
                actor_id=auth.user_id,
            )
            available = snapshot.current_balance

        working_days, violations = await _check_candidate(
            session,
            org_id=auth.org_id,
            employee_id=payload.employee_id,
            policy=policy,
            start_date=payload.start_date,
            end_date=payload.end_date,
            available_days=available,
            joining_date=joining_date,
            document_count=len(document_ids),
            start_half_day=payload.start_half_day,
            end_half_day=payload.end_half_day,
        )
        if violations:
            raise ValidationError(violations)

        workflow = await find_workflow(session, auth.org_id, policy.id, WorkflowProcess.APPLY_LEAVE)
        action = RequestAction.SUBMIT_FOR_REVIEW if workflow is not None else RequestAction.AUTO_APPROVE
        request = LeaveRequest(
            org_id=auth.org_id,
            employee_id=payload.employee_id,
            policy_id=policy.id,
            start_date=payload.start_date,
            end_date=payload.end_date,
            start_half_day=payload.start_half_day,
            end_half_day=payload.end_half_day,
            working_days=working_days,
            balance_year=balance_year,
            reason=payload.reason,
            status=next_status(None, action).value,
            workflow_id=workflow.id if workflow is not None else None,
            document_ids=document_ids,
            submitted_at=now_utc(),
        )
        session.add(request)
        await session.flush()

        reference = request_reference(request.id)
        if workflow is None:
            _record_history(
                request,
                action=RequestAction.AUTO_APPROVE,
                actor_id=SYSTEM_ACTOR,
                note="No approval workflow configured",
            )
            _close(request, RequestStatus.APPROVED, SYSTEM_ACTOR)
            await _deduct(
                session,
                request,
                policy,
                kind=LedgerEntryKind.DEDUCTION,
                description=f"Leave deduction for approved application {reference} ({_days_label(request)})",
                actor_id=auth.user_id,
            )
        else:
            if settings.deduct_before_approval:
                await _deduct(
                    session,
                    request,
                    policy,
                    kind=LedgerEntryKind.PENDING_DEDUCTION,
                    description=(
                        f"Leave balance deducted for pending application {reference} "
                        f"({_days_label(request)}) - Deduct before workflow"
                    ),
                    actor_id=auth.user_id,
                )
            await _run_auto_approvals(session, request, policy, workflow_steps(workflow), withdrawal=False)

        await _write_request_audit(session, auth, request, AuditAction.SUBMIT, None)
        await session.commit()
        await session.refresh(request)
        return request

    request = await with_conflict_retry(session, _submit)
    logger.info(
        "Request %s submitted for employee=%s policy=%s status=%s",
        request.id,
        request.employee_id,
        request.policy_id,
        request.status,
    )
    return _build_request_response(request)


async def approve_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: DecisionPayload,
) -> RequestResponse:
    """Approve the current workflow step of a pending request or a pending withdrawal."""

    async def _approve() -> LeaveRequest:
        request = await _get_request_or_404(session, auth.org_id, request_id, for_update=True)
        current = RequestStatus(request.status)
        if current not in (RequestStatus.PENDING, RequestStatus.WITHDRAWAL_PENDING) or request.workflow_id is None:
            raise InvalidTransitionError(f"Cannot approve a request in status {current.value}")
        withdrawal = current == RequestStatus.WITHDRAWAL_PENDING

        workflow = await get_workflow_or_404(session, auth.org_id, request.workflow_id)
        steps = workflow_steps(workflow)
        if request.current_step >= len(steps):
            raise ConfigurationError("The approval workflow has no step left to approve")
        _ensure_reviewer(auth, steps[request.current_step])

        policy = await get_policy_or_404(session, auth.org_id, request.policy_id)
        before_dict = model_to_audit_dict(request)
        await _approve_step(
            session,
            request,
            policy,
            steps,
            actor_id=auth.user_id,
            note=payload.note,
            withdrawal=withdrawal,
        )
        await _run_auto_approvals(session, request, policy, steps, withdrawal=withdrawal)

        await _write_request_audit(session, auth, request, AuditAction.APPROVE, before_dict)
        await session.commit()
        await session.refresh(request)
        return request

    request = await with_conflict_retry(session, _approve)
    return _build_request_response(request)


async def reject_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: RejectPayload,
) -> RequestResponse:
    """Reject a pending request (restoring any held days) or a pending withdrawal."""

    async def _reject() -> LeaveRequest:
        request = await _get_request_or_404(session, auth.org_id, request_id, for_update=True)
        current = RequestStatus(request.status)
        action = (
            RequestAction.REJECT_WITHDRAWAL if current == RequestStatus.WITHDRAWAL_PENDING else RequestAction.REJECT
        )
        status = next_status(current, action)

        step_number: int | None = None
        step_title: str | None = None
        if request.workflow_id is not None:
            steps = workflow_steps(await get_workflow_or_404(session, auth.org_id, request.workflow_id))
            if request.current_step < len(steps):
                step = steps[request.current_step]
                _ensure_reviewer(auth, step)
                step_number, step_title = request.current_step + 1, step.title
        if step_number is None and not auth.is_admin:
            raise AppError("Admin access required", status_code=403)

        policy = await get_policy_or_404(session, auth.org_id, request.policy_id)
        before_dict = model_to_audit_dict(request)
        _record_history(
            request,
            action=action,
            actor_id=auth.user_id,
            note=payload.reason,
            step=step_number,
            title=step_title,
        )
        if action == RequestAction.REJECT_WITHDRAWAL:
            # The approval decision stands; only the history records the refusal.
            request.status = status.value
        else:
            _close(request, status, auth.user_id, payload.reason)
            await _restore(
                session,
                request,
                policy,
                description=(
                    f"Balance restored for rejected request {request_reference(request.id)} "
                    f"({_days_label(request)}) - Reason: {payload.reason}"
                ),
                actor_id=auth.user_id,
            )

        await _write_request_audit(session, auth, request, AuditAction.REJECT, before_dict)
        await session.commit()
        await session.refresh(request)
        return request

    request = await with_conflict_retry(session, _reject)
    return _build_request_response(request)


async def cancel_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
) -> RequestResponse:
    """Cancel a pending request. Always allowed for the employee or an admin."""

    async def _cancel() -> LeaveRequest:
        request = await _get_request_or_404(session, auth.org_id, request_id, for_update=True)
        _ensure_owner_or_admin(auth, request.employee_id)
        status = next_status(RequestStatus(request.status), RequestAction.CANCEL)

        policy = await get_policy_or_404(session, auth.org_id, request.policy_id)
        before_dict = model_to_audit_dict(request)
        _record_history(request, action=RequestAction.CANCEL, actor_id=auth.user_id)
        _close(request, status, auth.user_id)
        await _restore(
            session,
            request,
            policy,
            description=(
                f"Balance restored for cancelled request {request_reference(request.id)} ({_days_label(request)})"
            ),
            actor_id=auth.user_id,
        )

        await _write_request_audit(session, auth, request, AuditAction.CANCEL, before_dict)
        await session.commit()
        await session.refresh(request)
        return request

    request = await with_conflict_retry(session, _cancel)
    return _build_request_response(request)


async def withdraw_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: WithdrawPayload,
) -> RequestResponse:
    """Withdraw a pending or approved request, subject to the policy's withdrawal flags.

    An approved request goes through the withdrawal workflow when one is
    configured; otherwise it is withdrawn directly and its days are restored.
    """

    async def _withdraw() -> LeaveRequest:
        request = await _get_request_or_404(session, auth.org_id, request_id, for_update=True)
        _ensure_owner_or_admin(auth, request.employee_id)
        current = RequestStatus(request.status)
        policy = await get_policy_or_404(session, auth.org_id, request.policy_id)
        settings = parse_settings(policy)
        before_dict = model_to_audit_dict(request)

        if current == RequestStatus.PENDING and not settings.withdrawal.allow_before_approval:
            raise ConfigurationError("Withdrawal before approval is not allowed for this leave type")
        if current == RequestStatus.APPROVED and not settings.withdrawal.allow_after_approval:
            raise ConfigurationError("Withdrawal after approval is not allowed for this leave type")

        workflow = None
        if current == RequestStatus.APPROVED:
            workflow = await find_workflow(session, auth.org_id, policy.id, WorkflowProcess.WITHDRAW_LEAVE)
        request.withdrawal_reason = payload.reason

        if workflow is not None:
            status = next_status(current, RequestAction.REQUEST_WITHDRAWAL)
            _record_history(
                request,
                action=RequestAction.REQUEST_WITHDRAWAL,
                actor_id=auth.user_id,
                note=payload.reason,
            )
            request.status = status.value
            request.workflow_id = workflow.id
            request.current_step = 0
            await _run_auto_approvals(session, request, policy, workflow_steps(workflow), withdrawal=True)
        else:
            status = next_status(current, RequestAction.WITHDRAW)
            _record_history(request, action=RequestAction.WITHDRAW, actor_id=auth.user_id, note=payload.reason)
            _close(request, status, auth.user_id)
            await _restore(
                session,
                request,
                policy,
                description=f"Withdrawal of leave request {request_reference(request.id)} ({_days_label(request)})",
                actor_id=auth.user_id,
            )

        await _write_request_audit(session, auth, request, AuditAction.WITHDRAW, before_dict)
        await session.commit()
        await session.refresh(request)
        return request

    request = await with_conflict_retry(session, _withdraw)
    return _build_request_response(request)


async def get_request(
    session: AsyncSession,
    org_id: int,
    request_id: uuid.UUID,
) -> RequestResponse:
    """Fetch a single request."""
    request = await _get_request_or_404(session, org_id, request_id)
    return _build_request_response(request)


async def list_requests(
    session: AsyncSession,
    org_id: int,
    employee_id: str | None = None,
    status: RequestStatus | None = None,
    offset: int = 0,
    limit: int = 50,
) -> RequestListResponse:
    """List requests with optional employee and status filters."""
    base_filter = [col(LeaveRequest.org_id) == org_id]
    if employee_id is not None:
        base_filter.append(col(LeaveRequest.employee_id) == employee_id)
    if status is not None:
        base_filter.append(col(LeaveRequest.status) == status.value)

    count_result = await session.execute(select(func.count()).select_from(LeaveRequest).where(*base_filter))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeaveRequest)
        .where(*base_filter)
        .order_by(col(LeaveRequest.start_date).desc(), col(LeaveRequest.created_at).desc())
        .offset(offset)
        .limit(limit)
    )
    requests = list(result.scalars().all())

    return RequestListResponse(
        items=[_build_request_response(r) for r in requests],
        total=total,
    )

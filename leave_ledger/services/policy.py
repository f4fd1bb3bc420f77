# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.exceptions import AppError, NotFoundError
from leave_ledger.models.enums import AuditAction, AuditEntityType
from leave_ledger.models.leave_type import LeaveType
from leave_ledger.models.policy import LeavePolicy
from leave_ledger.schemas.policy import (
    LeaveTypeListResponse,
    LeaveTypeResponse,
    PolicyListResponse,
    PolicyResponse,
    PolicySettings,
)
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.auth import AuthContext
    from leave_ledger.schemas.policy import CreateLeaveTypeRequest, CreatePolicyRequest, UpdatePolicyRequest


def parse_settings(policy: LeavePolicy) -> PolicySettings:
    """Parse a policy's stored settings."""
    return PolicySettings.model_validate(policy.settings_json or {})


def _build_leave_type_response(leave_type: LeaveType) -> LeaveTypeResponse:
    return LeaveTypeResponse(
        id=leave_type.id,
        org_id=leave_type.org_id,
        name=leave_type.name,
        description=leave_type.description,
        negative_balance_limit=leave_type.negative_balance_limit,
        is_active=leave_type.is_active,
        created_at=leave_type.created_at,
    )


def _build_policy_response(policy: LeavePolicy) -> PolicyResponse:
    """Build a PolicyResponse from a DB model."""
    return PolicyResponse(
        id=policy.id,
        org_id=policy.org_id,
        leave_type_id=policy.leave_type_id,
        key=policy.key,
        name=policy.name,
        settings=parse_settings(policy),
        is_active=policy.is_active,
        created_at=policy.created_at,
    )


# ---------------------------------------------------------------------------
# Lookups shared with the ledger and request services
# ---------------------------------------------------------------------------


async def get_policy_or_404(session: AsyncSession, org_id: int, policy_id: uuid.UUID) -> LeavePolicy:
    """Fetch a policy scoped to the organization. Raises NotFoundError if missing."""
    result = await session.execute(
        select(LeavePolicy).where(
            col(LeavePolicy.id) == policy_id,
            col(LeavePolicy.org_id) == org_id,
        )
    )
    policy = result.scalar_one_or_none()
    if policy is None:
        raise NotFoundError("Policy not found")
    return policy


async def get_leave_type_or_404(session: AsyncSession, org_id: int, leave_type_id: uuid.UUID) -> LeaveType:
    """Fetch a leave type scoped to the organization. Raises NotFoundError if missing."""
    result = await session.execute(
        select(LeaveType).where(
            col(LeaveType.id) == leave_type_id,
            col(LeaveType.org_id) == org_id,
        )
    )
    leave_type = result.scalar_one_or_none()
    if leave_type is None:
        raise NotFoundError("Leave type not found")
    return leave_type


# ---------------------------------------------------------------------------
# Leave types
# ---------------------------------------------------------------------------


async def create_leave_type(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateLeaveTypeRequest,
) -> LeaveTypeResponse:
    """Create a leave type."""
    leave_type = LeaveType(
        org_id=auth.org_id,
        name=payload.name,
        description=payload.description,
        negative_balance_limit=payload.negative_balance_limit,
    )
    session.add(leave_type)

    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise AppError("Leave type with this name already exists", status_code=409) from None

    await write_audit_log(
        session,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.LEAVE_TYPE,
        entity_id=leave_type.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(leave_type),
    )

    await session.commit()
    await session.refresh(leave_type)
    return _build_leave_type_response(leave_type)


async def list_leave_types(session: AsyncSession, org_id: int) -> LeaveTypeListResponse:
    """List all leave types of an organization."""
    result = await session.execute(
        select(LeaveType).where(col(LeaveType.org_id) == org_id).order_by(col(LeaveType.name))
    )
    leave_types = list(result.scalars().all())
    return LeaveTypeListResponse(items=[_build_leave_type_response(t) for t in leave_types], total=len(leave_types))


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


async def create_policy(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreatePolicyRequest,
) -> PolicyResponse:
    """Create a new policy for a leave type."""
    await get_leave_type_or_404(session, auth.org_id, payload.leave_type_id)

    existing = await session.execute(
        select(LeavePolicy).where(
            col(LeavePolicy.org_id) == auth.org_id,
            col(LeavePolicy.key) == payload.key,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise AppError("Policy with this key already exists for this organization", status_code=409)

    policy = LeavePolicy(
        org_id=auth.org_id,
        leave_type_id=payload.leave_type_id,
        key=payload.key,
        name=payload.name,
        settings_json=payload.settings.model_dump(mode="json"),
    )
    session.add(policy)
    await session.flush()

    await write_audit_log(
        session,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.POLICY,
        entity_id=policy.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(policy),
    )

    await session.commit()
    await session.refresh(policy)
    return _build_policy_response(policy)


async def get_policy(
    session: AsyncSession,
    org_id: int,
    policy_id: uuid.UUID,
) -> PolicyResponse:
    """Fetch a single policy."""
    policy = await get_policy_or_404(session, org_id, policy_id)
    return _build_policy_response(policy)


async def list_policies(
    session: AsyncSession,
    org_id: int,
    leave_type_id: uuid.UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> PolicyListResponse:
    """List policies of an organization, optionally for one leave type."""
    filters = [col(LeavePolicy.org_id) == org_id]
    if leave_type_id is not None:
        filters.append(col(LeavePolicy.leave_type_id) == leave_type_id)

    count_result = await session.execute(select(func.count()).select_from(LeavePolicy).where(*filters))
    total = count_result.scalar_one()

    policies_result = await session.execute(
        select(LeavePolicy).where(*filters).order_by(col(LeavePolicy.created_at)).offset(offset).limit(limit)
    )
    policies = list(policies_result.scalars().all())

    return PolicyListResponse(items=[_build_policy_response(p) for p in policies], total=total)


async def update_policy(
    session: AsyncSession,
    auth: AuthContext,
    policy_id: uuid.UUID,
    payload: UpdatePolicyRequest,
) -> PolicyResponse:
    """Update a policy's name, settings or active flag.

    Existing balances are not touched; run a force recalculation to apply a
    changed allotment.
    """
    policy = await get_policy_or_404(session, auth.org_id, policy_id)
    before_dict = model_to_audit_dict(policy)

    if payload.name is not None:
        policy.name = payload.name
    if payload.settings is not None:
        policy.settings_json = payload.settings.model_dump(mode="json")
    if payload.is_active is not None:
        policy.is_active = payload.is_active
    await session.flush()

    await write_audit_log(
        session,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.POLICY,
        entity_id=policy.id,
        action=AuditAction.UPDATE,
        before_json=before_dict,
        after_json=model_to_audit_dict(policy),
    )

    await session.commit()
    await session.refresh(policy)
    return _build_policy_response(policy)

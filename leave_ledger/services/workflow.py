# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import or_, select
from sqlmodel import col

from leave_ledger.exceptions import NotFoundError
from leave_ledger.models.enums import AuditAction, AuditEntityType, WorkflowProcess
from leave_ledger.models.workflow import ApprovalWorkflow
from leave_ledger.schemas.workflow import WorkflowListResponse, WorkflowResponse, WorkflowStep
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log
from leave_ledger.services.policy import get_policy_or_404

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.auth import AuthContext
    from leave_ledger.schemas.workflow import CreateWorkflowRequest


def _build_workflow_response(workflow: ApprovalWorkflow) -> WorkflowResponse:
    return WorkflowResponse(
        id=workflow.id,
        org_id=workflow.org_id,
        name=workflow.name,
        process=WorkflowProcess(workflow.process),
        policy_id=workflow.policy_id,
        steps=workflow_steps(workflow),
        is_active=workflow.is_active,
        created_by=workflow.created_by,
        created_at=workflow.created_at,
    )


def workflow_steps(workflow: ApprovalWorkflow) -> list[WorkflowStep]:
    """Parse a workflow's stored steps."""
    return [WorkflowStep.model_validate(step) for step in workflow.steps or []]


async def find_workflow(
    session: AsyncSession,
    org_id: int,
    policy_id: uuid.UUID,
    process: WorkflowProcess,
) -> ApprovalWorkflow | None:
    """Find the active workflow for a policy and process.

    A workflow bound to the policy wins over an organization-wide one.
    Workflows without steps are ignored.
    """
    result = await session.execute(
        select(ApprovalWorkflow)
        .where(
            col(ApprovalWorkflow.org_id) == org_id,
            col(ApprovalWorkflow.process) == process.value,
            col(ApprovalWorkflow.is_active).is_(True),
            or_(
                col(ApprovalWorkflow.policy_id) == policy_id,
                col(ApprovalWorkflow.policy_id).is_(None),
            ),
        )
        .order_by(col(ApprovalWorkflow.created_at).desc())
    )
    candidates = [w for w in result.scalars().all() if w.steps]
    for workflow in candidates:
        if workflow.policy_id == policy_id:
            return workflow
    return candidates[0] if candidates else None


async def get_workflow_or_404(session: AsyncSession, org_id: int, workflow_id: uuid.UUID) -> ApprovalWorkflow:
    result = await session.execute(
        select(ApprovalWorkflow).where(
            col(ApprovalWorkflow.id) == workflow_id,
            col(ApprovalWorkflow.org_id) == org_id,
        )
    )
    workflow = result.scalar_one_or_none()
    if workflow is None:
        raise NotFoundError("Workflow not found")
    return workflow


async def create_workflow(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateWorkflowRequest,
) -> WorkflowResponse:
    """Create an approval workflow."""
    if payload.policy_id is not None:
        await get_policy_or_404(session, auth.org_id, payload.policy_id)

    workflow = ApprovalWorkflow(
        org_id=auth.org_id,
        name=payload.name,
        process=payload.process.value,
        policy_id=payload.policy_id,
        steps=[step.model_dump() for step in payload.steps],
        created_by=auth.user_id,
    )
    session.add(workflow)
    await session.flush()

    await write_audit_log(
        session,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.WORKFLOW,
        entity_id=workflow.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(workflow),
    )

    await session.commit()
    await session.refresh(workflow)
    return _build_workflow_response(workflow)


async def list_workflows(
    session: AsyncSession,
    org_id: int,
    process: WorkflowProcess | None = None,
) -> WorkflowListResponse:
    """List workflows of an organization, optionally for one process."""
    query = select(ApprovalWorkflow).where(col(ApprovalWorkflow.org_id) == org_id)
    if process is not None:
        query = query.where(col(ApprovalWorkflow.process) == process.value)
    result = await session.execute(query.order_by(col(ApprovalWorkflow.created_at)))
    workflows = list(result.scalars().all())
    return WorkflowListResponse(items=[_build_workflow_response(w) for w in workflows], total=len(workflows))


async def deactivate_workflow(
    session: AsyncSession,
    auth: AuthContext,
    workflow_id: uuid.UUID,
) -> WorkflowResponse:
    """Deactivate a workflow. Requests already routed through it keep their recorded steps."""
    workflow = await get_workflow_or_404(session, auth.org_id, workflow_id)
    before_dict = model_to_audit_dict(workflow)
    workflow.is_active = False
    await session.flush()

    await write_audit_log(
        session,
        org_id=auth.org_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.WORKFLOW,
        entity_id=workflow.id,
        action=AuditAction.DELETE,
        before_json=before_dict,
        after_json=model_to_audit_dict(workflow),
    )

    await session.commit()
    await session.refresh(workflow)
    return _build_workflow_response(workflow)

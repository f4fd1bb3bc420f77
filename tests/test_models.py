from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from leave_ledger.models import (
    ApprovalWorkflow,
    AuditLog,
    LeaveBalanceSnapshot,
    LeaveLedgerEntry,
    LeavePolicy,
    LeavePolicyAssignment,
    LeaveRequest,
    LeaveType,
    OrgHoliday,
    SQLModel,
)
from leave_ledger.models.enums import LedgerEntryKind, RequestStatus, WorkflowProcess

EXPECTED_TABLES = {
    "approval_workflow",
    "audit_log",
    "blackout_period",
    "leave_balance_snapshot",
    "leave_document",
    "leave_ledger_entry",
    "leave_policy",
    "leave_policy_assignment",
    "leave_request",
    "leave_type",
    "leave_type_mapping",
    "org_holiday",
}


def test_all_tables_registered() -> None:
    table_names = set(SQLModel.metadata.tables.keys())
    assert EXPECTED_TABLES.issubset(table_names)


def test_snapshot_is_keyed_by_employee_policy_and_year() -> None:
    table = SQLModel.metadata.tables["leave_balance_snapshot"]
    assert [c.name for c in table.primary_key.columns] == ["org_id", "employee_id", "policy_id", "year"]


def test_leave_type_defaults() -> None:
    leave_type = LeaveType(org_id=101, name="Casual Leave")
    assert leave_type.negative_balance_limit == Decimal("0")
    assert leave_type.is_active is True
    assert leave_type.id is not None


def test_leave_policy_instantiation() -> None:
    policy = LeavePolicy(org_id=101, leave_type_id=uuid.uuid4(), key="casual", name="Casual Leave")
    assert policy.key == "casual"
    assert policy.is_active is True


def test_assignment_instantiation() -> None:
    assignment = LeavePolicyAssignment(
        org_id=101,
        employee_id="emp-1",
        policy_id=uuid.uuid4(),
        effective_from=date(2025, 1, 1),
        created_by="admin-1",
    )
    assert assignment.effective_to is None


def test_leave_request_defaults() -> None:
    request = LeaveRequest(
        org_id=101,
        employee_id="emp-1",
        policy_id=uuid.uuid4(),
        start_date=date(2029, 1, 8),
        end_date=date(2029, 1, 12),
        working_days=Decimal("5"),
        balance_year=2029,
    )
    assert request.status == RequestStatus.PENDING
    assert request.current_step == 0
    assert request.approval_history == []
    assert request.document_ids == []
    assert request.workflow_id is None


def test_ledger_entry_instantiation() -> None:
    entry = LeaveLedgerEntry(
        org_id=101,
        employee_id="emp-1",
        policy_id=uuid.uuid4(),
        year=2029,
        kind=LedgerEntryKind.GRANT.value,
        amount=Decimal("12"),
        resulting_balance=Decimal("12"),
        description="Leave granted under Casual Leave for 2029 (12 days)",
        created_by="system",
    )
    assert entry.request_id is None
    assert entry.metadata_json is None


def test_balance_snapshot_defaults() -> None:
    snapshot = LeaveBalanceSnapshot(org_id=101, employee_id="emp-1", policy_id=uuid.uuid4(), year=2029)
    assert snapshot.current_balance == Decimal("0")
    assert snapshot.used_balance == Decimal("0")
    assert snapshot.carry_forward == Decimal("0")
    assert snapshot.version == 1


def test_holiday_instantiation() -> None:
    holiday = OrgHoliday(org_id=101, date=date(2029, 1, 26), name="Founders Day")
    assert holiday.is_recurring is False


def test_workflow_instantiation() -> None:
    workflow = ApprovalWorkflow(
        org_id=101,
        name="Manager review",
        process=WorkflowProcess.APPLY_LEAVE.value,
        steps=[{"title": "Manager", "approver_role": "manager", "auto_approve": False}],
        created_by="admin-1",
    )
    assert workflow.policy_id is None
    assert workflow.is_active is True


def test_audit_log_instantiation() -> None:
    log = AuditLog(
        org_id=101,
        actor_id="admin-1",
        entity_type="POLICY",
        entity_id=uuid.uuid4(),
        action="CREATE",
    )
    assert log.before_json is None
    assert log.after_json is None

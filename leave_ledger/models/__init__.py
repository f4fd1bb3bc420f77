from sqlmodel import SQLModel

from leave_ledger.models.assignment import LeavePolicyAssignment
from leave_ledger.models.audit import AuditLog
from leave_ledger.models.balance import LeaveBalanceSnapshot
from leave_ledger.models.base import OrgScoped, TimestampMixin, UUIDBase
from leave_ledger.models.blackout import BlackoutPeriod
from leave_ledger.models.document import LeaveDocument
from leave_ledger.models.enums import (
    AuditAction,
    AuditEntityType,
    EligibilityGate,
    GrantFrequency,
    GrantMethod,
    InstancePeriod,
    LedgerEntryKind,
    RecalculationMode,
    RequestAction,
    RequestStatus,
    WorkflowProcess,
)
from leave_ledger.models.holiday import OrgHoliday
from leave_ledger.models.leave_type import LeaveType, LeaveTypeMapping
from leave_ledger.models.ledger import LeaveLedgerEntry
from leave_ledger.models.policy import LeavePolicy
from leave_ledger.models.request import LeaveRequest
from leave_ledger.models.workflow import ApprovalWorkflow

__all__ = [
    "ApprovalWorkflow",
    "AuditAction",
    "AuditEntityType",
    "AuditLog",
    "BlackoutPeriod",
    "EligibilityGate",
    "GrantFrequency",
    "GrantMethod",
    "InstancePeriod",
    "LeaveBalanceSnapshot",
    "LeaveDocument",
    "LeaveLedgerEntry",
    "LeavePolicy",
    "LeavePolicyAssignment",
    "LeaveRequest",
    "LeaveType",
    "LeaveTypeMapping",
    "LedgerEntryKind",
    "OrgHoliday",
    "OrgScoped",
    "RecalculationMode",
    "RequestAction",
    "RequestStatus",
    "SQLModel",
    "TimestampMixin",
    "UUIDBase",
    "WorkflowProcess",
]

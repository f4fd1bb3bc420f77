from __future__ import annotations

import enum


class GrantMethod(enum.StrEnum):
    """Whether leave days are available up front or accrue after being earned."""

    IN_ADVANCE = "IN_ADVANCE"
    AFTER_EARNING = "AFTER_EARNING"


class GrantFrequency(enum.StrEnum):
    """Granularity at which the annual allotment is granted or earned."""

    PER_YEAR = "PER_YEAR"
    PER_MONTH = "PER_MONTH"


class EligibilityGate(enum.StrEnum):
    """When a newly joined employee may start applying for a leave type."""

    FROM_JOINING = "FROM_JOINING"
    AFTER_PROBATION = "AFTER_PROBATION"
    AFTER_N_DAYS = "AFTER_N_DAYS"


class InstancePeriod(enum.StrEnum):
    """Window used when counting applications against a maximum."""

    MONTH = "MONTH"
    QUARTER = "QUARTER"
    YEAR = "YEAR"


class LeaveUnit(enum.StrEnum):
    """Smallest portion of a working day an application may cover."""

    FULL_DAY = "FULL_DAY"
    HALF_DAY = "HALF_DAY"


class RequestStatus(enum.StrEnum):
    """State machine for leave requests."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"
    WITHDRAWAL_PENDING = "WITHDRAWAL_PENDING"


class RequestAction(enum.StrEnum):
    """Events that move a leave request between states."""

    SUBMIT_FOR_REVIEW = "SUBMIT_FOR_REVIEW"
    AUTO_APPROVE = "AUTO_APPROVE"
    APPROVE_STEP = "APPROVE_STEP"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    CANCEL = "CANCEL"
    REQUEST_WITHDRAWAL = "REQUEST_WITHDRAWAL"
    WITHDRAW = "WITHDRAW"
    APPROVE_WITHDRAWAL_STEP = "APPROVE_WITHDRAWAL_STEP"
    APPROVE_WITHDRAWAL = "APPROVE_WITHDRAWAL"
    REJECT_WITHDRAWAL = "REJECT_WITHDRAWAL"


class LedgerEntryKind(enum.StrEnum):
    """Type of ledger entry affecting balance."""

    GRANT = "GRANT"
    CREDIT = "CREDIT"
    DEDUCTION = "DEDUCTION"
    PENDING_DEDUCTION = "PENDING_DEDUCTION"


class WorkflowProcess(enum.StrEnum):
    """Which request lifecycle a workflow reviews."""

    APPLY_LEAVE = "APPLY_LEAVE"
    WITHDRAW_LEAVE = "WITHDRAW_LEAVE"


class RecalculationMode(enum.StrEnum):
    """How the bulk recalculation treats keys that already have a snapshot."""

    AUTO = "AUTO"
    FORCE = "FORCE"


class AuditEntityType(enum.StrEnum):
    """Entity type recorded in the audit log."""

    LEAVE_TYPE = "LEAVE_TYPE"
    LEAVE_TYPE_MAPPING = "LEAVE_TYPE_MAPPING"
    POLICY = "POLICY"
    ASSIGNMENT = "ASSIGNMENT"
    REQUEST = "REQUEST"
    WORKFLOW = "WORKFLOW"
    BLACKOUT_PERIOD = "BLACKOUT_PERIOD"
    HOLIDAY = "HOLIDAY"
    ADJUSTMENT = "ADJUSTMENT"
    BALANCE = "BALANCE"
    DOCUMENT = "DOCUMENT"


class AuditAction(enum.StrEnum):
    """Action recorded in the audit log."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    CANCEL = "CANCEL"
    WITHDRAW = "WITHDRAW"
    SEED = "SEED"
    RECALCULATE = "RECALCULATE"
    CARRY_FORWARD = "CARRY_FORWARD"
    IMPORT = "IMPORT"

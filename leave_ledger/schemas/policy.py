# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Self

from pydantic import BaseModel, Field, model_validator

from leave_ledger.models.enums import EligibilityGate, GrantFrequency, GrantMethod, InstancePeriod, LeaveUnit

# ---------------------------------------------------------------------------
# Settings sub-schemas
# ---------------------------------------------------------------------------


class GrantSettings(BaseModel):
    """How the annual allotment becomes available.

    ``annual_allotment`` unset means the policy is not balance-tracked.
    """

    method: GrantMethod = GrantMethod.IN_ADVANCE
    frequency: GrantFrequency = GrantFrequency.PER_YEAR
    annual_allotment: Decimal | None = Field(default=None, ge=0, max_digits=8, decimal_places=2)


class RequestLimits(BaseModel):
    """Per-application limits checked by the validation engine."""

    min_days_required: Decimal | None = Field(default=None, ge=0)
    max_days_in_stretch: Decimal | None = Field(default=None, ge=0)
    max_instances: int | None = Field(default=None, ge=0)
    max_instances_period: InstancePeriod = InstancePeriod.YEAR
    must_be_planned_in_advance: int = Field(default=0, ge=0, description="Days of advance notice")
    minimum_leave_unit: LeaveUnit = LeaveUnit.FULL_DAY
    allow_leaves_before_weekend: bool = False
    supporting_documents_required: bool = False


class EligibilitySettings(BaseModel):
    """When a new joiner may start applying."""

    gate: EligibilityGate = EligibilityGate.FROM_JOINING
    days: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _validate_days(self) -> Self:
        if self.gate == EligibilityGate.AFTER_N_DAYS and self.days <= 0:
            msg = "days must be positive for the AFTER_N_DAYS eligibility gate"
            raise ValueError(msg)
        return self


class WithdrawalSettings(BaseModel):
    """Which request states an employee may withdraw from."""

    allow_before_approval: bool = False
    allow_after_approval: bool = False


class PolicySettings(BaseModel):
    """Complete ruleset of a leave policy, stored in ``LeavePolicy.settings_json``."""

    grant: GrantSettings = Field(default_factory=GrantSettings)
    limits: RequestLimits = Field(default_factory=RequestLimits)
    eligibility: EligibilitySettings = Field(default_factory=EligibilitySettings)
    withdrawal: WithdrawalSettings = Field(default_factory=WithdrawalSettings)
    deduct_before_approval: bool = False
    carry_forward_limit: Decimal | None = Field(default=None, ge=0)

    @property
    def is_balance_tracked(self) -> bool:
        return self.grant.annual_allotment is not None


# ---------------------------------------------------------------------------
# Leave types
# ---------------------------------------------------------------------------


class CreateLeaveTypeRequest(BaseModel):
    """Request body for creating a leave type."""

    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    negative_balance_limit: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Days the balance may go below zero; 0 disallows negative balances",
    )


class LeaveTypeResponse(BaseModel):
    """Response schema for a leave type."""

    id: uuid.UUID
    org_id: int
    name: str
    description: str | None
    negative_balance_limit: Decimal
    is_active: bool
    created_at: datetime


class LeaveTypeListResponse(BaseModel):
    """List of leave types."""

    items: list[LeaveTypeResponse]
    total: int


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


class CreatePolicyRequest(BaseModel):
    """Request body for creating a policy."""

    leave_type_id: uuid.UUID
    key: str = Field(min_length=1, max_length=255, pattern=r"^[a-z0-9_-]+$")
    name: str = Field(min_length=1, max_length=255)
    settings: PolicySettings = Field(default_factory=PolicySettings)


class UpdatePolicyRequest(BaseModel):
    """Request body for updating a policy. Omitted fields are left unchanged."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    settings: PolicySettings | None = None
    is_active: bool | None = None


class PolicyResponse(BaseModel):
    """Response schema for a single policy."""

    id: uuid.UUID
    org_id: int
    leave_type_id: uuid.UUID
    key: str
    name: str
    settings: PolicySettings
    is_active: bool
    created_at: datetime


class PolicyListResponse(BaseModel):
    """Paginated list of policies."""

    items: list[PolicyResponse]
    total: int

# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Self

from pydantic import BaseModel, Field, model_validator


class CreateBlackoutPeriodRequest(BaseModel):
    """Request body for creating a blackout period."""

    title: str = Field(min_length=1, max_length=255)
    start_date: date
    end_date: date
    reason: str | None = None
    allow_leaves: bool = False
    assigned_employee_ids: list[str] = []

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must be >= start_date"
            raise ValueError(msg)
        return self


class BlackoutPeriodResponse(BaseModel):
    """Response schema for a blackout period."""

    id: uuid.UUID
    org_id: int
    title: str
    start_date: date
    end_date: date
    reason: str | None
    allow_leaves: bool
    assigned_employee_ids: list[str]
    created_at: datetime


class BlackoutPeriodListResponse(BaseModel):
    """List of blackout periods."""

    items: list[BlackoutPeriodResponse]
    total: int

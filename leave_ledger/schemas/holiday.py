# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date

from pydantic import BaseModel, Field


class CreateHolidayRequest(BaseModel):
    """Request body for creating an organization holiday."""

    date: date
    name: str = Field(min_length=1, max_length=255)
    is_recurring: bool = False


class HolidayResponse(BaseModel):
    """Response schema for an organization holiday."""

    id: uuid.UUID
    org_id: int
    date: date
    name: str
    is_recurring: bool


class HolidayListResponse(BaseModel):
    """Paginated list of organization holidays."""

    items: list[HolidayResponse]
    total: int

"""Integration tests for holiday CRUD, authorization, audit and the work calendar."""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlmodel import col

from leave_ledger.config import get_settings
from leave_ledger.exceptions import ExternalServiceError
from leave_ledger.models.audit import AuditLog
from leave_ledger.services.work_calendar import set_calendar_service

if TYPE_CHECKING:
    import pytest
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession

ORG_ID = 101
EMPLOYEE_ID = "emp-1"
AUTH_HEADERS = {"X-Org-Id": str(ORG_ID), "X-User-Id": "admin-1", "X-Role": "admin"}
EMPLOYEE_HEADERS = {"X-Org-Id": str(ORG_ID), "X-User-Id": EMPLOYEE_ID, "X-Role": "employee"}
BASE_URL = f"/orgs/{ORG_ID}/holidays"


def _holiday_payload(day: str = "2025-07-04", name: str = "Founders Day", **extra: Any) -> dict[str, Any]:
    return {"date": day, "name": name, **extra}


class _StaticCalendar:
    def __init__(self, holidays: dict[date, str]) -> None:
        self._holidays = holidays

    async def get_holidays(self, org_id: int, start: date, end: date) -> dict[date, str]:
        return {day: name for day, name in self._holidays.items() if start <= day <= end}


class _UnavailableCalendar:
    async def get_holidays(self, org_id: int, start: date, end: date) -> dict[date, str]:
        raise ExternalServiceError("Calendar returned 503")


class _SlowCalendar:
    async def get_holidays(self, org_id: int, start: date, end: date) -> dict[date, str]:
        await asyncio.sleep(1)
        return {}


# ---------------------------------------------------------------------------
# Create holiday tests
# ---------------------------------------------------------------------------


async def test_create_holiday(async_client: AsyncClient) -> None:
    resp = await async_client.post(BASE_URL, json=_holiday_payload(), headers=AUTH_HEADERS)
    assert resp.status_code == 201
    data = resp.json()
    assert data["date"] == "2025-07-04"
    assert data["name"] == "Founders Day"
    assert data["org_id"] == ORG_ID
    assert data["is_recurring"] is False
    assert "id" in data


# ---------------------------------------------------------------------------
# List holiday tests
# ---------------------------------------------------------------------------


async def test_list_holidays_empty(async_client: AsyncClient) -> None:
    resp = await async_client.get(BASE_URL, headers=AUTH_HEADERS)
    assert resp.status_code == 200
    data = resp.json()
    assert data["items"] == []
    assert data["total"] == 0


async def test_list_holidays_year_filter_includes_recurring(async_client: AsyncClient) -> None:
    await async_client.post(BASE_URL, json=_holiday_payload("2025-12-25", "Year End"), headers=AUTH_HEADERS)
    await async_client.post(BASE_URL, json=_holiday_payload("2026-03-02", "Harvest Day"), headers=AUTH_HEADERS)
    await async_client.post(
        BASE_URL, json=_holiday_payload("2024-01-01", "New Year", is_recurring=True), headers=AUTH_HEADERS
    )

    resp_2025 = await async_client.get(f"{BASE_URL}?year=2025", headers=AUTH_HEADERS)
    data_2025 = resp_2025.json()
    assert data_2025["total"] == 2
    assert [item["name"] for item in data_2025["items"]] == ["New Year", "Year End"]

    resp_2026 = await async_client.get(f"{BASE_URL}?year=2026", headers=AUTH_HEADERS)
    assert [item["name"] for item in resp_2026.json()["items"]] == ["New Year", "Harvest Day"]


async def test_list_holidays_pagination(async_client: AsyncClient) -> None:
    for i in range(3):
        await async_client.post(
            BASE_URL,
            json=_holiday_payload(f"2025-0{i + 1}-01", f"Holiday {i}"),
            headers=AUTH_HEADERS,
        )

    resp = await async_client.get(f"{BASE_URL}?offset=0&limit=2", headers=AUTH_HEADERS)
    data = resp.json()
    assert data["total"] == 3
    assert len(data["items"]) == 2

    resp2 = await async_client.get(f"{BASE_URL}?offset=2&limit=2", headers=AUTH_HEADERS)
    assert len(resp2.json()["items"]) == 1


# ---------------------------------------------------------------------------
# Delete and conflict tests
# ---------------------------------------------------------------------------


async def test_delete_holiday(async_client: AsyncClient) -> None:
    create_resp = await async_client.post(BASE_URL, json=_holiday_payload(), headers=AUTH_HEADERS)
    holiday_id = create_resp.json()["id"]

    del_resp = await async_client.delete(f"{BASE_URL}/{holiday_id}", headers=AUTH_HEADERS)
    assert del_resp.status_code == 204

    list_resp = await async_client.get(BASE_URL, headers=AUTH_HEADERS)
    assert list_resp.json()["total"] == 0

    del_resp = await async_client.delete(f"{BASE_URL}/{holiday_id}", headers=AUTH_HEADERS)
    assert del_resp.status_code == 404


async def test_duplicate_date_returns_409(async_client: AsyncClient) -> None:
    payload = _holiday_payload("2025-09-01", "Labour Day")
    resp1 = await async_client.post(BASE_URL, json=payload, headers=AUTH_HEADERS)
    assert resp1.status_code == 201

    resp2 = await async_client.post(BASE_URL, json=payload, headers=AUTH_HEADERS)
    assert resp2.status_code == 409
    assert resp2.json()["detail"] == "Holiday already exists for this date"


# ---------------------------------------------------------------------------
# Authorization and isolation tests
# ---------------------------------------------------------------------------


async def test_non_admin_cannot_create(async_client: AsyncClient) -> None:
    resp = await async_client.post(BASE_URL, json=_holiday_payload(), headers=EMPLOYEE_HEADERS)
    assert resp.status_code == 403


async def test_non_admin_cannot_delete(async_client: AsyncClient) -> None:
    create_resp = await async_client.post(BASE_URL, json=_holiday_payload(), headers=AUTH_HEADERS)
    holiday_id = create_resp.json()["id"]

    del_resp = await async_client.delete(f"{BASE_URL}/{holiday_id}", headers=EMPLOYEE_HEADERS)
    assert del_resp.status_code == 403


async def test_employee_can_list(async_client: AsyncClient) -> None:
    resp = await async_client.get(BASE_URL, headers=EMPLOYEE_HEADERS)
    assert resp.status_code == 200


async def test_org_isolation(async_client: AsyncClient) -> None:
    await async_client.post(BASE_URL, json=_holiday_payload(), headers=AUTH_HEADERS)

    other_headers = {**AUTH_HEADERS, "X-Org-Id": "202"}
    resp = await async_client.get("/orgs/202/holidays", headers=other_headers)
    assert resp.status_code == 200
    assert resp.json()["total"] == 0


# ---------------------------------------------------------------------------
# Audit tests
# ---------------------------------------------------------------------------


async def test_create_and_delete_holiday_write_audit(
    async_client: AsyncClient,
    db_session: AsyncSession,
) -> None:
    resp = await async_client.post(BASE_URL, json=_holiday_payload(), headers=AUTH_HEADERS)
    holiday_id = resp.json()["id"]
    await async_client.delete(f"{BASE_URL}/{holiday_id}", headers=AUTH_HEADERS)

    result = await db_session.execute(
        select(AuditLog).where(col(AuditLog.entity_type) == "HOLIDAY", col(AuditLog.org_id) == ORG_ID)
    )
    audits = {audit.action: audit for audit in result.scalars().all()}
    created, deleted = audits["CREATE"], audits["DELETE"]
    assert created.action == "CREATE"
    assert created.actor_id == "admin-1"
    assert str(created.entity_id) == holiday_id
    assert created.before_json is None
    assert created.after_json is not None
    assert created.after_json["name"] == "Founders Day"

    assert deleted.action == "DELETE"
    assert deleted.before_json is not None
    assert deleted.before_json["name"] == "Founders Day"
    assert deleted.after_json is None


# ---------------------------------------------------------------------------
# Work calendar during submission
# ---------------------------------------------------------------------------


async def _create_policy(client: AsyncClient) -> str:
    resp = await client.post(f"/orgs/{ORG_ID}/leave-types", json={"name": "Casual Leave"}, headers=AUTH_HEADERS)
    resp = await client.post(
        f"/orgs/{ORG_ID}/policies",
        json={
            "leave_type_id": resp.json()["id"],
            "key": "casual",
            "name": "Casual Leave",
            "settings": {"grant": {"annual_allotment": "12"}, "limits": {"allow_leaves_before_weekend": True}},
        },
        headers=AUTH_HEADERS,
    )
    policy_id: str = resp.json()["id"]
    await client.post(
        f"/orgs/{ORG_ID}/policies/{policy_id}/assignments",
        json={"employee_id": EMPLOYEE_ID, "effective_from": "2025-01-01"},
        headers=AUTH_HEADERS,
    )
    return policy_id


async def _validate(client: AsyncClient, policy_id: str, start: str, end: str) -> dict[str, Any]:
    resp = await client.post(
        f"/orgs/{ORG_ID}/requests/validate",
        json={"employee_id": EMPLOYEE_ID, "policy_id": policy_id, "start_date": start, "end_date": end},
        headers=EMPLOYEE_HEADERS,
    )
    assert resp.status_code == 200
    result: dict[str, Any] = resp.json()
    return result


async def test_holiday_in_range_is_a_violation(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client)
    await async_client.post(BASE_URL, json=_holiday_payload("2029-01-10", "Founders Day"), headers=AUTH_HEADERS)

    result = await _validate(async_client, policy_id, "2029-01-08", "2029-01-12")
    assert Decimal(str(result["working_days"])) == Decimal("4")
    assert result["is_valid"] is False
    assert result["violations"] == ["Cannot apply leave on holiday: Founders Day (2029-01-10)"]


async def test_recurring_holiday_applies_in_later_years(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client)
    await async_client.post(
        BASE_URL, json=_holiday_payload("2025-01-10", "Founders Day", is_recurring=True), headers=AUTH_HEADERS
    )

    result = await _validate(async_client, policy_id, "2029-01-08", "2029-01-12")
    assert result["violations"] == ["Cannot apply leave on holiday: Founders Day (2029-01-10)"]


async def test_external_calendar_supplies_holidays(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client)
    set_calendar_service(_StaticCalendar({date(2029, 1, 9): "Regional Day"}))

    result = await _validate(async_client, policy_id, "2029-01-08", "2029-01-12")
    assert result["violations"] == ["Cannot apply leave on holiday: Regional Day (2029-01-09)"]


async def test_unavailable_calendar_skips_holiday_check(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client)
    set_calendar_service(_UnavailableCalendar())

    result = await _validate(async_client, policy_id, "2029-01-08", "2029-01-12")
    assert result["violations"] == []


async def test_slow_calendar_skips_holiday_check(
    async_client: AsyncClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    policy_id = await _create_policy(async_client)
    monkeypatch.setattr(get_settings(), "calendar_timeout_seconds", 0.05)
    set_calendar_service(_SlowCalendar())

    result = await _validate(async_client, policy_id, "2029-01-08", "2029-01-12")
    assert result["violations"] == []

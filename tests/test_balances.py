"""Tests for balance reads, first-login seeding, admin adjustments and the
employee directory degrading to full entitlement.
"""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlmodel import col

from leave_ledger.config import get_settings
from leave_ledger.exceptions import ExternalServiceError
from leave_ledger.models.balance import LeaveBalanceSnapshot
from leave_ledger.models.ledger import LeaveLedgerEntry
from leave_ledger.services.directory import EmployeeRecord, set_directory_service

if TYPE_CHECKING:
    import pytest
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.services.directory import InMemoryDirectoryService

ORG_ID = 101
EMPLOYEE_ID = "emp-1"
THIS_YEAR = date.today().year

ADMIN_HEADERS = {"X-Org-Id": str(ORG_ID), "X-User-Id": "admin-1", "X-Role": "admin"}
EMPLOYEE_HEADERS = {"X-Org-Id": str(ORG_ID), "X-User-Id": EMPLOYEE_ID, "X-Role": "employee"}

BASE_URL = f"/orgs/{ORG_ID}"
BALANCES_URL = f"{BASE_URL}/employees/{EMPLOYEE_ID}/balances"
LEDGER_URL = f"{BASE_URL}/employees/{EMPLOYEE_ID}/ledger"
ADJUSTMENTS_URL = f"{BASE_URL}/adjustments"


class _UnavailableDirectory:
    async def lookup_employee(self, org_id: int, employee_id: str) -> EmployeeRecord | None:
        raise ExternalServiceError("Employee directory returned 502")


class _SlowDirectory:
    async def lookup_employee(self, org_id: int, employee_id: str) -> EmployeeRecord | None:
        await asyncio.sleep(1)
        return None


# ---------------------------------------------------------------------------
# Test helpers
# ---------------------------------------------------------------------------


async def _create_policy(
    client: AsyncClient,
    *,
    allotment: str | None = "12",
    frequency: str = "PER_YEAR",
    negative_balance_limit: str = "0",
) -> str:
    resp = await client.post(
        f"{BASE_URL}/leave-types",
        json={"name": "Earned Leave", "negative_balance_limit": negative_balance_limit},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 201
    grant: dict[str, Any] = {"method": "IN_ADVANCE", "frequency": frequency}
    if allotment is not None:
        grant["annual_allotment"] = allotment
    resp = await client.post(
        f"{BASE_URL}/policies",
        json={
            "leave_type_id": resp.json()["id"],
            "key": "earned",
            "name": "Earned Leave",
            "settings": {"grant": grant},
        },
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 201
    result: str = resp.json()["id"]
    return result


async def _assign(client: AsyncClient, policy_id: str, effective_from: str = "2025-01-01") -> None:
    resp = await client.post(
        f"{BASE_URL}/policies/{policy_id}/assignments",
        json={"employee_id": EMPLOYEE_ID, "effective_from": effective_from},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 201


def _days(value: Any) -> Decimal:
    return Decimal(str(value))


# ---------------------------------------------------------------------------
# Seeding on assignment
# ---------------------------------------------------------------------------


async def test_assignment_seeds_current_year_balance(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client)
    await _assign(async_client, policy_id)

    resp = await async_client.get(BALANCES_URL, headers=EMPLOYEE_HEADERS)
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 1
    item = data["items"][0]
    assert item["year"] == THIS_YEAR
    assert item["policy_key"] == "earned"
    assert item["is_tracked"] is True
    assert _days(item["total_entitlement"]) == Decimal("12")
    assert _days(item["current_balance"]) == Decimal("12")
    assert item["opening_balance"] is None


async def test_assignment_prorates_from_joining_date(
    async_client: AsyncClient, directory: InMemoryDirectoryService
) -> None:
    directory.seed(
        EmployeeRecord(id=EMPLOYEE_ID, org_id=ORG_ID, display_name="Ada", joining_date=date(2029, 3, 10))
    )
    policy_id = await _create_policy(async_client, frequency="PER_MONTH")
    await _assign(async_client, policy_id, effective_from="2029-03-10")

    resp = await async_client.get(f"{BALANCES_URL}/{policy_id}", params={"year": 2029}, headers=EMPLOYEE_HEADERS)
    assert resp.status_code == 200
    assert _days(resp.json()["current_balance"]) == Decimal("10")
    assert _days(resp.json()["total_entitlement"]) == Decimal("12")


async def test_balance_reports_days_earned_to_date(
    async_client: AsyncClient, directory: InMemoryDirectoryService
) -> None:
    directory.seed(
        EmployeeRecord(id=EMPLOYEE_ID, org_id=ORG_ID, display_name="Ada", joining_date=date(2029, 3, 10))
    )
    policy_id = await _create_policy(async_client, frequency="PER_MONTH")
    await _assign(async_client, policy_id, effective_from="2029-03-10")

    resp = await async_client.get(
        f"{BALANCES_URL}/{policy_id}", params={"year": 2029, "as_of": "2029-06-15"}, headers=EMPLOYEE_HEADERS
    )
    assert resp.status_code == 200
    data = resp.json()
    # March through June is earned; the rest of the year was granted up front.
    assert _days(data["earned_to_date"]) == Decimal("4")
    assert _days(data["current_balance"]) == Decimal("10")

    resp = await async_client.get(
        f"{BALANCES_URL}/{policy_id}", params={"year": 2029, "as_of": "2030-02-01"}, headers=EMPLOYEE_HEADERS
    )
    assert _days(resp.json()["earned_to_date"]) == Decimal("10")


async def test_unavailable_directory_grants_full_entitlement(async_client: AsyncClient) -> None:
    set_directory_service(_UnavailableDirectory())
    policy_id = await _create_policy(async_client, frequency="PER_MONTH")
    await _assign(async_client, policy_id, effective_from="2029-03-10")

    resp = await async_client.get(f"{BALANCES_URL}/{policy_id}", params={"year": 2029}, headers=EMPLOYEE_HEADERS)
    assert _days(resp.json()["current_balance"]) == Decimal("12")


async def test_slow_directory_times_out_to_full_entitlement(
    async_client: AsyncClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(get_settings(), "directory_timeout_seconds", 0.05)
    set_directory_service(_SlowDirectory())
    policy_id = await _create_policy(async_client, frequency="PER_MONTH")
    await _assign(async_client, policy_id, effective_from="2029-03-10")

    resp = await async_client.get(f"{BALANCES_URL}/{policy_id}", params={"year": 2029}, headers=EMPLOYEE_HEADERS)
    assert _days(resp.json()["current_balance"]) == Decimal("12")


async def test_get_balance_for_unseeded_year_returns_404(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client)
    await _assign(async_client, policy_id)

    resp = await async_client.get(f"{BALANCES_URL}/{policy_id}", params={"year": 2031}, headers=EMPLOYEE_HEADERS)
    assert resp.status_code == 404


async def test_untracked_policy_balance(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client, allotment=None)
    await _assign(async_client, policy_id)

    resp = await async_client.get(f"{BALANCES_URL}/{policy_id}", params={"year": THIS_YEAR}, headers=EMPLOYEE_HEADERS)
    assert resp.status_code == 200
    data = resp.json()
    assert data["is_tracked"] is False
    assert data["total_entitlement"] is None
    assert data["earned_to_date"] is None
    assert _days(data["used_balance"]) == Decimal("0")


# ---------------------------------------------------------------------------
# First-login seeding
# ---------------------------------------------------------------------------


async def test_seed_endpoint_is_idempotent(async_client: AsyncClient, db_session: AsyncSession) -> None:
    policy_id = await _create_policy(async_client)
    await _assign(async_client, policy_id)

    for _ in range(2):
        resp = await async_client.post(
            f"{BALANCES_URL}/{policy_id}/seed", json={"as_of": "2029-02-01"}, headers=EMPLOYEE_HEADERS
        )
        assert resp.status_code == 200
        assert resp.json()["year"] == 2029
        assert _days(resp.json()["current_balance"]) == Decimal("12")

    result = await db_session.execute(select(LeaveLedgerEntry).where(col(LeaveLedgerEntry.year) == 2029))
    assert len(result.scalars().all()) == 1


async def test_seed_for_another_employee_is_forbidden(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client)
    await _assign(async_client, policy_id)
    other = {**EMPLOYEE_HEADERS, "X-User-Id": "emp-2"}

    resp = await async_client.post(f"{BALANCES_URL}/{policy_id}/seed", headers=other)
    assert resp.status_code == 403


async def test_seed_untracked_policy_is_rejected(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client, allotment=None)
    await _assign(async_client, policy_id)

    resp = await async_client.post(f"{BALANCES_URL}/{policy_id}/seed", headers=EMPLOYEE_HEADERS)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Policy Earned Leave does not track a balance"


# ---------------------------------------------------------------------------
# Adjustments
# ---------------------------------------------------------------------------


async def test_admin_credit_adjustment(async_client: AsyncClient, db_session: AsyncSession) -> None:
    policy_id = await _create_policy(async_client)
    await _assign(async_client, policy_id)

    resp = await async_client.post(
        ADJUSTMENTS_URL,
        json={"employee_id": EMPLOYEE_ID, "policy_id": policy_id, "amount": "2.5", "reason": "Weekend support"},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["kind"] == "CREDIT"
    assert _days(data["resulting_balance"]) == Decimal("14.5")
    assert data["description"] == "Balance credited by administrator (2.5 days) - Reason: Weekend support"

    snapshot = (
        await db_session.execute(
            select(LeaveBalanceSnapshot).where(col(LeaveBalanceSnapshot.year) == THIS_YEAR)
        )
    ).scalar_one()
    assert _days(snapshot.current_balance) == Decimal("14.5")
    assert _days(snapshot.used_balance) == Decimal("0")


async def test_deduction_adjustment_respects_balance(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client)
    await _assign(async_client, policy_id)

    resp = await async_client.post(
        ADJUSTMENTS_URL,
        json={"employee_id": EMPLOYEE_ID, "policy_id": policy_id, "amount": "-13", "reason": "Correction"},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Insufficient balance for this adjustment"

    resp = await async_client.post(
        ADJUSTMENTS_URL,
        json={"employee_id": EMPLOYEE_ID, "policy_id": policy_id, "amount": "-4", "reason": "Correction"},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 201
    assert resp.json()["kind"] == "DEDUCTION"
    assert _days(resp.json()["amount"]) == Decimal("-4")


async def test_deduction_adjustment_negative_limit(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client, negative_balance_limit="2")
    await _assign(async_client, policy_id)

    resp = await async_client.post(
        ADJUSTMENTS_URL,
        json={"employee_id": EMPLOYEE_ID, "policy_id": policy_id, "amount": "-15", "reason": "Correction"},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Adjustment would exceed negative balance limit of 2 days"


async def test_zero_adjustment_is_rejected(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client)
    await _assign(async_client, policy_id)

    resp = await async_client.post(
        ADJUSTMENTS_URL,
        json={"employee_id": EMPLOYEE_ID, "policy_id": policy_id, "amount": "0", "reason": "Nothing"},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 400


async def test_employee_cannot_adjust(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client)
    await _assign(async_client, policy_id)

    resp = await async_client.post(
        ADJUSTMENTS_URL,
        json={"employee_id": EMPLOYEE_ID, "policy_id": policy_id, "amount": "5", "reason": "Please"},
        headers=EMPLOYEE_HEADERS,
    )
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Ledger listing
# ---------------------------------------------------------------------------


async def test_ledger_listing(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client)
    await _assign(async_client, policy_id)
    await async_client.post(
        ADJUSTMENTS_URL,
        json={"employee_id": EMPLOYEE_ID, "policy_id": policy_id, "amount": "1", "reason": "Bonus day"},
        headers=ADMIN_HEADERS,
    )

    resp = await async_client.get(
        LEDGER_URL, params={"policy_id": policy_id, "year": THIS_YEAR}, headers=EMPLOYEE_HEADERS
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 2
    assert sorted(item["kind"] for item in data["items"]) == ["CREDIT", "GRANT"]

    resp = await async_client.get(LEDGER_URL, params={"limit": 1}, headers=EMPLOYEE_HEADERS)
    assert resp.json()["total"] == 2
    assert len(resp.json()["items"]) == 1

    resp = await async_client.get(LEDGER_URL, params={"year": 2000}, headers=EMPLOYEE_HEADERS)
    assert resp.json()["total"] == 0

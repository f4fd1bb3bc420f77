"""Integration tests for leave types, policy CRUD, settings validation and audit."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlmodel import col

from leave_ledger.models.audit import AuditLog

if TYPE_CHECKING:
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession

ORG_ID = 101
AUTH_HEADERS = {"X-Org-Id": str(ORG_ID), "X-User-Id": "admin-1", "X-Role": "admin"}
EMPLOYEE_HEADERS = {"X-Org-Id": str(ORG_ID), "X-User-Id": "emp-1", "X-Role": "employee"}
LEAVE_TYPES_URL = f"/orgs/{ORG_ID}/leave-types"
BASE_URL = f"/orgs/{ORG_ID}/policies"


async def _leave_type(client: AsyncClient, name: str = "Casual Leave") -> str:
    resp = await client.post(LEAVE_TYPES_URL, json={"name": name}, headers=AUTH_HEADERS)
    assert resp.status_code == 201
    leave_type_id: str = resp.json()["id"]
    return leave_type_id


def _policy_payload(leave_type_id: str, key: str = "casual-ft", **settings: Any) -> dict[str, Any]:
    return {
        "leave_type_id": leave_type_id,
        "key": key,
        "name": "Casual Leave (full time)",
        "settings": {
            "grant": {"method": "AFTER_EARNING", "frequency": "PER_MONTH", "annual_allotment": "12"},
            **settings,
        },
    }


# ---------------------------------------------------------------------------
# Leave type tests
# ---------------------------------------------------------------------------


async def test_create_leave_type(async_client: AsyncClient) -> None:
    resp = await async_client.post(
        LEAVE_TYPES_URL,
        json={"name": "Sick Leave", "description": "Illness", "negative_balance_limit": "3"},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["name"] == "Sick Leave"
    assert data["org_id"] == ORG_ID
    assert float(data["negative_balance_limit"]) == 3
    assert data["is_active"] is True


async def test_create_leave_type_duplicate_name(async_client: AsyncClient) -> None:
    await _leave_type(async_client)
    resp = await async_client.post(LEAVE_TYPES_URL, json={"name": "Casual Leave"}, headers=AUTH_HEADERS)
    assert resp.status_code == 409


async def test_leave_type_rejects_negative_limit(async_client: AsyncClient) -> None:
    resp = await async_client.post(
        LEAVE_TYPES_URL, json={"name": "Sick Leave", "negative_balance_limit": "-1"}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 422


async def test_list_leave_types(async_client: AsyncClient) -> None:
    await _leave_type(async_client, "Sick Leave")
    await _leave_type(async_client, "Casual Leave")

    resp = await async_client.get(LEAVE_TYPES_URL, headers=EMPLOYEE_HEADERS)
    assert resp.status_code == 200
    assert [item["name"] for item in resp.json()["items"]] == ["Casual Leave", "Sick Leave"]


# ---------------------------------------------------------------------------
# Create policy tests
# ---------------------------------------------------------------------------


async def test_create_policy(async_client: AsyncClient) -> None:
    leave_type_id = await _leave_type(async_client)
    resp = await async_client.post(
        BASE_URL,
        json=_policy_payload(leave_type_id, carry_forward_limit="5", deduct_before_approval=True),
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["key"] == "casual-ft"
    assert data["leave_type_id"] == leave_type_id
    assert data["is_active"] is True
    settings = data["settings"]
    assert settings["grant"]["method"] == "AFTER_EARNING"
    assert settings["grant"]["frequency"] == "PER_MONTH"
    assert settings["deduct_before_approval"] is True
    # Omitted sections take their defaults.
    assert settings["eligibility"]["gate"] == "FROM_JOINING"
    assert settings["withdrawal"] == {"allow_before_approval": False, "allow_after_approval": False}
    assert settings["limits"]["allow_leaves_before_weekend"] is False
    assert settings["limits"]["minimum_leave_unit"] == "FULL_DAY"


async def test_create_policy_duplicate_key(async_client: AsyncClient) -> None:
    leave_type_id = await _leave_type(async_client)
    await async_client.post(BASE_URL, json=_policy_payload(leave_type_id), headers=AUTH_HEADERS)

    resp = await async_client.post(BASE_URL, json=_policy_payload(leave_type_id), headers=AUTH_HEADERS)
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Policy with this key already exists for this organization"


async def test_create_policy_unknown_leave_type(async_client: AsyncClient) -> None:
    resp = await async_client.post(BASE_URL, json=_policy_payload(str(uuid.uuid4())), headers=AUTH_HEADERS)
    assert resp.status_code == 404


async def test_create_policy_invalid_key(async_client: AsyncClient) -> None:
    leave_type_id = await _leave_type(async_client)
    resp = await async_client.post(BASE_URL, json=_policy_payload(leave_type_id, key="Casual FT"), headers=AUTH_HEADERS)
    assert resp.status_code == 422


async def test_create_policy_invalid_settings(async_client: AsyncClient) -> None:
    leave_type_id = await _leave_type(async_client)
    for settings in (
        {"grant": {"method": "WHENEVER"}},
        {"grant": {"annual_allotment": "-1"}},
        {"eligibility": {"gate": "AFTER_N_DAYS"}},
        {"limits": {"max_instances_period": "FORTNIGHT"}},
    ):
        payload = _policy_payload(leave_type_id)
        payload["settings"] = settings
        resp = await async_client.post(BASE_URL, json=payload, headers=AUTH_HEADERS)
        assert resp.status_code == 422, settings


# ---------------------------------------------------------------------------
# Get / list policy tests
# ---------------------------------------------------------------------------


async def test_get_policy(async_client: AsyncClient) -> None:
    leave_type_id = await _leave_type(async_client)
    create_resp = await async_client.post(BASE_URL, json=_policy_payload(leave_type_id), headers=AUTH_HEADERS)
    policy_id = create_resp.json()["id"]

    resp = await async_client.get(f"{BASE_URL}/{policy_id}", headers=EMPLOYEE_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["id"] == policy_id


async def test_get_policy_not_found(async_client: AsyncClient) -> None:
    resp = await async_client.get(f"{BASE_URL}/{uuid.uuid4()}", headers=AUTH_HEADERS)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Policy not found"


async def test_list_policies_filters_by_leave_type(async_client: AsyncClient) -> None:
    casual = await _leave_type(async_client)
    sick = await _leave_type(async_client, "Sick Leave")
    await async_client.post(BASE_URL, json=_policy_payload(casual, key="casual-ft"), headers=AUTH_HEADERS)
    await async_client.post(BASE_URL, json=_policy_payload(casual, key="casual-pt"), headers=AUTH_HEADERS)
    await async_client.post(BASE_URL, json=_policy_payload(sick, key="sick"), headers=AUTH_HEADERS)

    resp = await async_client.get(BASE_URL, headers=AUTH_HEADERS)
    assert resp.json()["total"] == 3

    resp = await async_client.get(BASE_URL, params={"leave_type_id": casual}, headers=AUTH_HEADERS)
    assert sorted(item["key"] for item in resp.json()["items"]) == ["casual-ft", "casual-pt"]

    resp = await async_client.get(BASE_URL, params={"offset": 2, "limit": 2}, headers=AUTH_HEADERS)
    assert resp.json()["total"] == 3
    assert len(resp.json()["items"]) == 1


async def test_list_policies_does_not_leak_other_org(async_client: AsyncClient) -> None:
    leave_type_id = await _leave_type(async_client)
    await async_client.post(BASE_URL, json=_policy_payload(leave_type_id), headers=AUTH_HEADERS)

    other_headers = {**AUTH_HEADERS, "X-Org-Id": "202"}
    resp = await async_client.get("/orgs/202/policies", headers=other_headers)
    assert resp.status_code == 200
    assert resp.json()["total"] == 0


# ---------------------------------------------------------------------------
# Update policy tests
# ---------------------------------------------------------------------------


async def test_update_policy(async_client: AsyncClient) -> None:
    leave_type_id = await _leave_type(async_client)
    create_resp = await async_client.post(BASE_URL, json=_policy_payload(leave_type_id), headers=AUTH_HEADERS)
    policy_id = create_resp.json()["id"]

    resp = await async_client.put(
        f"{BASE_URL}/{policy_id}",
        json={"name": "Casual Leave 2030", "is_active": False},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "Casual Leave 2030"
    assert data["is_active"] is False
    # Settings were not part of the update.
    assert data["settings"]["grant"]["method"] == "AFTER_EARNING"

    resp = await async_client.put(
        f"{BASE_URL}/{policy_id}",
        json={"settings": {"grant": {"annual_allotment": "15"}, "carry_forward_limit": "4"}},
        headers=AUTH_HEADERS,
    )
    settings = resp.json()["settings"]
    assert float(settings["grant"]["annual_allotment"]) == 15
    assert settings["grant"]["method"] == "IN_ADVANCE"
    assert float(settings["carry_forward_limit"]) == 4


async def test_update_policy_not_found(async_client: AsyncClient) -> None:
    resp = await async_client.put(f"{BASE_URL}/{uuid.uuid4()}", json={"name": "Nothing"}, headers=AUTH_HEADERS)
    assert resp.status_code == 404


async def test_non_admin_cannot_create_or_update(async_client: AsyncClient) -> None:
    leave_type_id = await _leave_type(async_client)
    resp = await async_client.post(BASE_URL, json=_policy_payload(leave_type_id), headers=EMPLOYEE_HEADERS)
    assert resp.status_code == 403

    create_resp = await async_client.post(BASE_URL, json=_policy_payload(leave_type_id), headers=AUTH_HEADERS)
    resp = await async_client.put(
        f"{BASE_URL}/{create_resp.json()['id']}", json={"name": "Mine now"}, headers=EMPLOYEE_HEADERS
    )
    assert resp.status_code == 403


async def test_non_admin_cannot_create_leave_type(async_client: AsyncClient) -> None:
    resp = await async_client.post(LEAVE_TYPES_URL, json={"name": "Bonus Leave"}, headers=EMPLOYEE_HEADERS)
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Audit tests
# ---------------------------------------------------------------------------


async def test_policy_changes_write_audit_entries(
    async_client: AsyncClient,
    db_session: AsyncSession,
) -> None:
    leave_type_id = await _leave_type(async_client)
    create_resp = await async_client.post(BASE_URL, json=_policy_payload(leave_type_id), headers=AUTH_HEADERS)
    policy_id = create_resp.json()["id"]
    await async_client.put(f"{BASE_URL}/{policy_id}", json={"name": "Renamed"}, headers=AUTH_HEADERS)

    result = await db_session.execute(
        select(AuditLog).where(
            col(AuditLog.entity_type) == "POLICY",
            col(AuditLog.entity_id) == uuid.UUID(policy_id),
        )
    )
    audits = {audit.action: audit for audit in result.scalars().all()}
    assert set(audits) == {"CREATE", "UPDATE"}
    assert audits["CREATE"].org_id == ORG_ID
    assert audits["CREATE"].actor_id == "admin-1"
    assert audits["CREATE"].before_json is None
    update = audits["UPDATE"]
    assert update.before_json is not None
    assert update.after_json is not None
    assert update.before_json["name"] == "Casual Leave (full time)"
    assert update.after_json["name"] == "Renamed"

    result = await db_session.execute(
        select(AuditLog).where(col(AuditLog.entity_type) == "LEAVE_TYPE", col(AuditLog.action) == "CREATE")
    )
    assert str(result.scalar_one().entity_id) == leave_type_id

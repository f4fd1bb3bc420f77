"""Tests for supporting document upload, download and use in leave requests."""

from __future__ import annotations

import hashlib
import uuid
from typing import TYPE_CHECKING

from leave_ledger.config import get_settings

if TYPE_CHECKING:
    from pathlib import Path

    import pytest
    from httpx import AsyncClient, Response

ORG_ID = 101
EMPLOYEE_ID = "emp-1"

ADMIN_HEADERS = {"X-Org-Id": str(ORG_ID), "X-User-Id": "admin-1", "X-Role": "admin"}
EMPLOYEE_HEADERS = {"X-Org-Id": str(ORG_ID), "X-User-Id": EMPLOYEE_ID, "X-Role": "employee"}
OTHER_HEADERS = {"X-Org-Id": str(ORG_ID), "X-User-Id": "emp-2", "X-Role": "employee"}

BASE_URL = f"/orgs/{ORG_ID}"
DOCUMENTS_URL = f"{BASE_URL}/documents"

CERTIFICATE = b"%PDF-1.4 medical certificate"


async def _upload(
    client: AsyncClient,
    content: bytes = CERTIFICATE,
    employee_id: str = EMPLOYEE_ID,
    headers: dict[str, str] | None = None,
) -> Response:
    return await client.post(
        DOCUMENTS_URL,
        data={"employee_id": employee_id},
        files={"file": ("certificate.pdf", content, "application/pdf")},
        headers=headers or EMPLOYEE_HEADERS,
    )


async def _create_policy(client: AsyncClient) -> str:
    resp = await client.post(f"{BASE_URL}/leave-types", json={"name": "Sick Leave"}, headers=ADMIN_HEADERS)
    resp = await client.post(
        f"{BASE_URL}/policies",
        json={
            "leave_type_id": resp.json()["id"],
            "key": "sick",
            "name": "Sick Leave",
            "settings": {
                "grant": {"method": "IN_ADVANCE", "annual_allotment": "12"},
                "limits": {"supporting_documents_required": True},
            },
        },
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 201
    policy_id: str = resp.json()["id"]
    resp = await client.post(
        f"{BASE_URL}/policies/{policy_id}/assignments",
        json={"employee_id": EMPLOYEE_ID, "effective_from": "2025-01-01"},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 201
    return policy_id


async def _submit(client: AsyncClient, policy_id: str, document_ids: list[str]) -> Response:
    return await client.post(
        f"{BASE_URL}/requests",
        json={
            "employee_id": EMPLOYEE_ID,
            "policy_id": policy_id,
            "start_date": "2029-01-08",
            "end_date": "2029-01-09",
            "document_ids": document_ids,
        },
        headers=EMPLOYEE_HEADERS,
    )


# ---------------------------------------------------------------------------
# Upload and download
# ---------------------------------------------------------------------------


async def test_upload_document(async_client: AsyncClient, tmp_path: Path) -> None:
    resp = await _upload(async_client)
    assert resp.status_code == 201
    data = resp.json()
    digest = hashlib.sha256(CERTIFICATE).hexdigest()
    assert data["employee_id"] == EMPLOYEE_ID
    assert data["filename"] == "certificate.pdf"
    assert data["content_type"] == "application/pdf"
    assert data["size_bytes"] == len(CERTIFICATE)
    assert data["digest"] == digest
    assert (tmp_path / "documents" / digest[:2] / digest).read_bytes() == CERTIFICATE


async def test_identical_uploads_share_a_blob(async_client: AsyncClient, tmp_path: Path) -> None:
    first = (await _upload(async_client)).json()
    second = (await _upload(async_client)).json()
    assert first["id"] != second["id"]
    assert first["digest"] == second["digest"]
    blobs = [p for p in (tmp_path / "documents").rglob("*") if p.is_file()]
    assert len(blobs) == 1


async def test_get_document_metadata(async_client: AsyncClient) -> None:
    document_id = (await _upload(async_client)).json()["id"]

    resp = await async_client.get(f"{DOCUMENTS_URL}/{document_id}", headers=ADMIN_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["id"] == document_id

    resp = await async_client.get(f"{DOCUMENTS_URL}/{uuid.uuid4()}", headers=ADMIN_HEADERS)
    assert resp.status_code == 404


async def test_download_document_content(async_client: AsyncClient) -> None:
    document_id = (await _upload(async_client)).json()["id"]

    resp = await async_client.get(f"{DOCUMENTS_URL}/{document_id}/content", headers=EMPLOYEE_HEADERS)
    assert resp.status_code == 200
    assert resp.content == CERTIFICATE
    assert resp.headers["content-type"].startswith("application/pdf")

    resp = await async_client.get(f"{DOCUMENTS_URL}/{document_id}/content", headers=ADMIN_HEADERS)
    assert resp.status_code == 200


async def test_other_employee_cannot_download(async_client: AsyncClient) -> None:
    document_id = (await _upload(async_client)).json()["id"]

    resp = await async_client.get(f"{DOCUMENTS_URL}/{document_id}/content", headers=OTHER_HEADERS)
    assert resp.status_code == 403


async def test_cannot_upload_for_another_employee(async_client: AsyncClient) -> None:
    resp = await _upload(async_client, headers=OTHER_HEADERS)
    assert resp.status_code == 403

    resp = await _upload(async_client, headers=ADMIN_HEADERS)
    assert resp.status_code == 201


async def test_empty_upload_is_rejected(async_client: AsyncClient) -> None:
    resp = await _upload(async_client, content=b"")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Document is empty"


async def test_oversized_upload_is_rejected(
    async_client: AsyncClient, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(get_settings(), "max_document_bytes", 8)

    resp = await _upload(async_client)
    assert resp.status_code == 413
    assert resp.json()["error"] == "DocumentTooLargeError"
    assert resp.json()["detail"] == "Document exceeds the maximum size of 8 bytes"
    # The partial upload was cleaned up.
    assert not [p for p in (tmp_path / "documents").rglob("*") if p.is_file()]


# ---------------------------------------------------------------------------
# Documents on leave requests
# ---------------------------------------------------------------------------


async def test_policy_requiring_documents_rejects_bare_request(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client)

    resp = await _submit(async_client, policy_id, [])
    assert resp.status_code == 422
    assert resp.json()["violations"] == ["Supporting documents are required for this leave type"]


async def test_request_with_document(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client)
    document_id = (await _upload(async_client)).json()["id"]

    resp = await _submit(async_client, policy_id, [document_id, document_id])
    assert resp.status_code == 201
    assert resp.json()["document_ids"] == [document_id]


async def test_request_with_unknown_document(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client)
    missing = str(uuid.uuid4())

    resp = await _submit(async_client, policy_id, [missing])
    assert resp.status_code == 404
    assert resp.json()["detail"] == f"Document not found: {missing}"


async def test_request_with_another_employees_document(async_client: AsyncClient) -> None:
    policy_id = await _create_policy(async_client)
    document_id = (await _upload(async_client, employee_id="emp-2", headers=OTHER_HEADERS)).json()["id"]

    resp = await _submit(async_client, policy_id, [document_id])
    assert resp.status_code == 404

"""Employee directory collaborator: display names and joining dates.

The directory is external and read-only. Callers go through
``lookup_joining_date`` which bounds the call with a timeout and degrades to
"unknown joining date" when the directory is slow or down.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Protocol, runtime_checkable

import httpx
from pydantic import BaseModel

from leave_ledger.config import get_settings
from leave_ledger.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class EmployeeRecord(BaseModel):
    """Employee metadata from the directory."""

    id: str
    org_id: int
    display_name: str
    joining_date: date | None = None


@runtime_checkable
class DirectoryService(Protocol):
    """Interface for the employee directory."""

    async def lookup_employee(self, org_id: int, employee_id: str) -> EmployeeRecord | None:
        """Fetch employee metadata. Returns None if not found."""
        ...


class InMemoryDirectoryService:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self._employees: dict[tuple[int, str], EmployeeRecord] = {}

    def seed(self, employee: EmployeeRecord) -> None:
        """Seed an employee for testing."""
        self._employees[(employee.org_id, employee.id)] = employee

    async def lookup_employee(self, org_id: int, employee_id: str) -> EmployeeRecord | None:
        """Fetch employee metadata. Returns None if not found."""
        return self._employees.get((org_id, employee_id))


class HttpDirectoryService:
    """Directory client for a REST endpoint ``GET {base_url}/orgs/{org}/employees/{id}``."""

    def __init__(self, base_url: str, timeout: float, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def lookup_employee(self, org_id: int, employee_id: str) -> EmployeeRecord | None:
        """Fetch employee metadata. Returns None if the directory answers 404."""
        url = f"{self._base_url}/orgs/{org_id}/employees/{employee_id}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(url)
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"Employee directory unreachable: {exc}") from exc

        if resp.status_code == httpx.codes.NOT_FOUND:
            return None
        if resp.status_code != httpx.codes.OK:
            raise ExternalServiceError(f"Employee directory returned {resp.status_code}")

        try:
            data = resp.json()
            return EmployeeRecord(
                id=employee_id,
                org_id=org_id,
                display_name=data.get("display_name") or data.get("name") or employee_id,
                joining_date=data.get("joining_date"),
            )
        except (ValueError, AttributeError) as exc:
            raise ExternalServiceError(f"Employee directory returned an unreadable record: {exc}") from exc


def _default_service() -> DirectoryService:
    settings = get_settings()
    if settings.directory_service_url:
        return HttpDirectoryService(settings.directory_service_url, settings.directory_timeout_seconds)
    return InMemoryDirectoryService()


_directory_service: DirectoryService | None = None


def get_directory_service() -> DirectoryService:
    """Return the configured directory service."""
    global _directory_service
    if _directory_service is None:
        _directory_service = _default_service()
    return _directory_service


def set_directory_service(service: DirectoryService) -> None:
    """Override the service (for testing or production wiring)."""
    global _directory_service
    _directory_service = service


async def lookup_joining_date(org_id: int, employee_id: str) -> date | None:
    """Return the employee's joining date, or None when unknown or the directory is unavailable."""
    settings = get_settings()
    service = get_directory_service()
    try:
        record = await asyncio.wait_for(
            service.lookup_employee(org_id, employee_id),
            timeout=settings.directory_timeout_seconds,
        )
    except (TimeoutError, ExternalServiceError) as exc:
        logger.warning(
            "Directory lookup failed for org=%s employee=%s, assuming full entitlement: %s",
            org_id,
            employee_id,
            str(exc) or "timed out",
        )
        return None

    if record is None:
        return None
    return record.joining_date

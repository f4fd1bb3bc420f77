# ruff: noqa: B008
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, Path, status

from leave_ledger.exceptions import AppError, ConfigurationError
from leave_ledger.schemas.auth import AuthContext


def parse_org_id(raw: str | None) -> int:
    """Parse the organization scope header. Raises ConfigurationError if missing or not numeric."""
    if raw is None or not raw.strip():
        raise ConfigurationError("Missing X-Org-Id header")
    try:
        org_id = int(raw.strip())
    except ValueError:
        raise ConfigurationError(f"Invalid X-Org-Id header: {raw!r}") from None
    if org_id <= 0:
        raise ConfigurationError(f"Invalid X-Org-Id header: {raw!r}")
    return org_id


async def get_auth_context(
    x_org_id: str | None = Header(default=None),
    x_user_id: str = Header(),
    x_role: str = Header(default="employee"),
) -> AuthContext:
    """Extract dev auth context from request headers."""
    return AuthContext(org_id=parse_org_id(x_org_id), user_id=x_user_id, role=x_role)


AuthDep = Annotated[AuthContext, Depends(get_auth_context)]


async def require_admin(
    auth: AuthDep,
) -> AuthContext:
    """Require admin role for the request."""
    if not auth.is_admin:
        raise AppError("Admin access required", status_code=status.HTTP_403_FORBIDDEN)
    return auth


AdminDep = Annotated[AuthContext, Depends(require_admin)]


async def validate_org_scope(
    org_id: int = Path(),
    auth: AuthContext = Depends(get_auth_context),
) -> AuthContext:
    """Ensure the path org_id matches the X-Org-Id header."""
    if org_id != auth.org_id:
        raise AppError("Organization ID mismatch", status_code=status.HTTP_403_FORBIDDEN)
    return auth

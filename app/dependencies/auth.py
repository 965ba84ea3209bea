"""
Caller identity for user-scoped routes.

Sign-in is handled by the hosted identity provider in front of the API, which
forwards the authenticated user's identifier in the ``X-User-Id`` header.
Admin routes are guarded separately by a shared token in ``X-Admin-Token``.
"""

import hmac
from http import HTTPStatus

from fastapi import Depends, Header, HTTPException, Security
from fastapi.security import APIKeyHeader

from app.core.config import AppSettings

from .config import get_app_settings

admin_token_header = APIKeyHeader(name="X-Admin-Token", auto_error=False)


def get_current_user_id(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> str:
    """Return the authenticated user id or reject the request."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail="Not authenticated")
    return x_user_id.strip()


def require_admin_token(
    token: str | None = Security(admin_token_header),
    settings: AppSettings = Depends(get_app_settings),
) -> None:
    """Reject the request unless it carries the configured admin token."""
    expected = settings.admin_api_token
    if not expected:
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail="Admin access is not configured",
        )
    if token is None:
        raise HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail="Admin token required")
    if not hmac.compare_digest(token.encode(), expected.encode()):
        raise HTTPException(status_code=HTTPStatus.FORBIDDEN, detail="Invalid admin token")


__all__ = ["get_current_user_id", "require_admin_token"]

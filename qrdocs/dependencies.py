"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

import secrets

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .config import Settings, get_settings
from .services.registry import DocumentRegistry

_basic = HTTPBasic(auto_error=False, realm="qrdocs-admin")


def get_registry(request: Request) -> DocumentRegistry:
    """Return the registry built during application startup."""

    return request.app.state.registry


def get_base_url(settings: Settings = Depends(get_settings)) -> str:
    """Return the public origin used to build view and QR links.

    Only configuration is consulted; QR images are persisted and served to
    every later caller, so they must not follow a client-supplied Host header.
    """

    return settings.link_base_url


def require_admin(
    credentials: HTTPBasicCredentials | None = Depends(_basic),
    settings: Settings = Depends(get_settings),
) -> None:
    """Enforce the admin credential pair when one is configured.

    With no ``ADMIN_USERNAME``/``ADMIN_PASSWORD`` configured every caller is
    admitted; startup logs a warning in that case.
    """

    if not settings.admin_gate_enabled:
        return
    if credentials is not None:
        user_ok = secrets.compare_digest(
            credentials.username.encode("utf-8"),
            (settings.admin_username or "").encode("utf-8"),
        )
        password_ok = secrets.compare_digest(
            credentials.password.encode("utf-8"),
            (settings.admin_password or "").encode("utf-8"),
        )
        if user_ok and password_ok:
            return
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
        headers={"WWW-Authenticate": 'Basic realm="qrdocs-admin"'},
    )


__all__ = ["get_base_url", "get_registry", "require_admin"]

"""Reusable dependencies for FastAPI routes."""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from functools import lru_cache

from fastapi import Depends, HTTPException, Request, status

from nomod_admin.core.config import Settings, get_settings
from nomod_admin.core.request_guards import OriginMismatchError, assert_same_origin
from nomod_admin.schemas.user import AdminUserRead
from nomod_admin.services.rate_limit import LoginRateLimiter
from nomod_admin.services.sessions import SESSION_COOKIE_NAME, SessionManager
from nomod_admin.services.users import UserService
from nomod_admin.store import AdminRole, AdminStore, StoreError, create_store

logger = logging.getLogger(__name__)

BLOCKED_REQUEST_DETAIL = "Request was blocked for security reasons."


@lru_cache
def get_store() -> AdminStore:
    """Return the process-wide store for the configured backend."""

    return create_store(get_settings())


async def get_user_service(
    store: AdminStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> UserService:
    return UserService(store, settings)


async def get_session_manager(
    store: AdminStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> SessionManager:
    return SessionManager.from_settings(store, settings)


async def get_rate_limiter(
    store: AdminStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> LoginRateLimiter:
    return LoginRateLimiter.from_settings(store, settings)


async def require_same_origin(request: Request) -> None:
    try:
        assert_same_origin(request.headers)
    except OriginMismatchError as exc:
        logger.warning("Blocked %s %s: %s", request.method, request.url.path, exc)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=BLOCKED_REQUEST_DETAIL) from exc


async def get_optional_user(
    request: Request,
    sessions: SessionManager = Depends(get_session_manager),
) -> AdminUserRead | None:
    token = request.cookies.get(SESSION_COOKIE_NAME)
    try:
        return await sessions.validate(token)
    except StoreError as exc:
        logger.error("Session lookup failed, treating request as unauthenticated: %s", exc)
        return None


async def get_current_user(user: AdminUserRead | None = Depends(get_optional_user)) -> AdminUserRead:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


def require_role(*roles: AdminRole) -> Callable[..., Awaitable[AdminUserRead]]:
    """Dependency factory admitting only users whose role is in ``roles``."""

    allowed = set(roles or ("admin", "editor"))

    async def dependency(user: AdminUserRead = Depends(get_current_user)) -> AdminUserRead:
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not allowed to access this page.",
            )
        return user

    return dependency

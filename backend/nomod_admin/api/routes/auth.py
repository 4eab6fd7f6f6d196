"""Authentication endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from nomod_admin.core.config import Settings, get_settings
from nomod_admin.core.dependencies import (
    get_current_user,
    get_rate_limiter,
    get_session_manager,
    get_user_service,
    require_same_origin,
)
from nomod_admin.core.request_guards import client_fingerprint
from nomod_admin.schemas.auth import AuthStatus, LoginRequest
from nomod_admin.schemas.user import AdminUserRead
from nomod_admin.services.rate_limit import LoginRateLimiter, RateLimitState
from nomod_admin.services.sessions import (
    SESSION_COOKIE_NAME,
    SessionManager,
    clear_session_cookie,
    set_session_cookie,
)
from nomod_admin.services.users import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _too_many_attempts(state: RateLimitState) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=state.message(),
        headers={"Retry-After": str(state.retry_after_seconds)},
    )


@router.get("/status", response_model=AuthStatus)
async def auth_status(users: UserService = Depends(get_user_service)) -> AuthStatus:
    hint = users.default_credentials_hint()
    return AuthStatus(show_default_credentials_hint=hint is not None, default_credentials=hint)


@router.post("/login", response_model=AdminUserRead, dependencies=[Depends(require_same_origin)])
async def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    users: UserService = Depends(get_user_service),
    sessions: SessionManager = Depends(get_session_manager),
    limiter: LoginRateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
) -> AdminUserRead:
    email = payload.email.strip()
    if not email or not payload.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email and password are required.")

    client_key = client_fingerprint(request.headers)
    state = await limiter.check_state(client_key)
    if state.limited:
        raise _too_many_attempts(state)

    user = await users.authenticate_user(email, payload.password)
    if user is None:
        logger.info("Rejected admin login attempt")
        failed = await limiter.record_failure(client_key)
        if failed.limited:
            raise _too_many_attempts(failed)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials.")

    await limiter.clear(client_key)
    token = await sessions.issue(user, request.headers.get("user-agent"))
    set_session_cookie(response, token, settings)
    logger.info("User %s logged in", user.id)
    return user


@router.post("/logout", status_code=status.HTTP_200_OK, dependencies=[Depends(require_same_origin)])
async def logout(
    request: Request,
    response: Response,
    sessions: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
) -> None:
    await sessions.clear(request.cookies.get(SESSION_COOKIE_NAME))
    clear_session_cookie(response, settings)


@router.get("/me", response_model=AdminUserRead)
async def get_current_user_info(current_user: AdminUserRead = Depends(get_current_user)) -> AdminUserRead:
    return current_user

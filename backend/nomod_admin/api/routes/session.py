"""Session introspection endpoint for the admin UI."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from nomod_admin.core.dependencies import get_optional_user
from nomod_admin.schemas.auth import SessionStatus
from nomod_admin.schemas.user import AdminUserRead

router = APIRouter(prefix="/admin", tags=["session"])


@router.get("/session", response_model=SessionStatus)
async def session_status(
    response: Response,
    user: AdminUserRead | None = Depends(get_optional_user),
) -> SessionStatus:
    response.headers["Cache-Control"] = "no-store"
    if user is None:
        return SessionStatus(authenticated=False)
    return SessionStatus(authenticated=True, role=user.role, name=user.name)

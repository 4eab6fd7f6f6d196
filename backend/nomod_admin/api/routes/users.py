"""Admin user management endpoints (admin role only)."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from nomod_admin.core.dependencies import get_user_service, require_role, require_same_origin
from nomod_admin.schemas.user import AdminUserCreate, AdminUserPasswordUpdate, AdminUserRead, AdminUserRoleUpdate
from nomod_admin.services.users import UserManagementError, UserNotFoundError, UserService

router = APIRouter(prefix="/admin/users", tags=["users"])

require_admin = require_role("admin")


def _to_http_error(exc: UserManagementError) -> HTTPException:
    if isinstance(exc, UserNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.get("/", response_model=list[AdminUserRead])
async def list_users(
    users: UserService = Depends(get_user_service),
    _: AdminUserRead = Depends(require_admin),
) -> list[AdminUserRead]:
    return await users.list_users()


@router.post(
    "/",
    response_model=AdminUserRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_same_origin)],
)
async def create_user(
    payload: AdminUserCreate,
    users: UserService = Depends(get_user_service),
    _: AdminUserRead = Depends(require_admin),
) -> AdminUserRead:
    try:
        return await users.create_user(payload)
    except UserManagementError as exc:
        raise _to_http_error(exc) from exc


@router.put("/{user_id}/role", status_code=status.HTTP_200_OK, dependencies=[Depends(require_same_origin)])
async def update_user_role(
    user_id: str,
    payload: AdminUserRoleUpdate,
    users: UserService = Depends(get_user_service),
    _: AdminUserRead = Depends(require_admin),
) -> dict[str, str]:
    try:
        await users.update_user_role(user_id, payload.role)
    except UserManagementError as exc:
        raise _to_http_error(exc) from exc
    return {"status": "role-updated"}


@router.put("/{user_id}/password", status_code=status.HTTP_200_OK, dependencies=[Depends(require_same_origin)])
async def update_user_password(
    user_id: str,
    payload: AdminUserPasswordUpdate,
    users: UserService = Depends(get_user_service),
    _: AdminUserRead = Depends(require_admin),
) -> dict[str, str]:
    try:
        await users.update_user_password(user_id, payload.password)
    except UserManagementError as exc:
        raise _to_http_error(exc) from exc
    return {"status": "password-updated"}


@router.delete(
    "/{user_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_same_origin)]
)
async def delete_user(
    user_id: str,
    users: UserService = Depends(get_user_service),
    current_user: AdminUserRead = Depends(require_admin),
) -> None:
    if user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete your own account.")
    try:
        await users.delete_user(user_id)
    except UserManagementError as exc:
        raise _to_http_error(exc) from exc

"""User service for admin credential management and authentication."""
from __future__ import annotations

import logging
import uuid

from nomod_admin.core.clock import Clock, utcnow
from nomod_admin.core.config import DEFAULT_ADMIN_EMAIL, DEFAULT_ADMIN_NAME, DEFAULT_ADMIN_PASSWORD, Settings
from nomod_admin.core.security import PasswordHasher
from nomod_admin.schemas.auth import DefaultCredentials
from nomod_admin.schemas.user import AdminUserCreate, AdminUserRead
from nomod_admin.store import AdminRole, AdminStore, StoredUser, normalize_email

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class UserManagementError(ValueError):
    """Raised when a user-management request violates a rule."""


class UserNotFoundError(UserManagementError):
    """Raised when the targeted user does not exist or is inactive."""


def to_public(user: StoredUser) -> AdminUserRead:
    return AdminUserRead.model_validate(user)


def _find_active(users: list[StoredUser], user_id: str) -> StoredUser:
    for user in users:
        if user.id == user_id and user.is_active:
            return user
    raise UserNotFoundError("User not found.")


def _assert_admin_remains(users: list[StoredUser]) -> None:
    active_admins = [user for user in users if user.is_active and user.role == "admin"]
    if len(active_admins) <= 1:
        raise UserManagementError("At least one admin user must remain.")


class UserService:
    """Credential store operations over an :class:`AdminStore`."""

    def __init__(self, store: AdminStore, settings: Settings, clock: Clock = utcnow) -> None:
        self.store = store
        self.settings = settings
        self.clock = clock

    async def ensure_default_admin(self) -> bool:
        """Seed the configured default admin when no users exist. Returns True if seeded."""

        if await self.store.list_users():
            return False

        now = self.clock()
        hashed = PasswordHasher.hash(self.settings.default_admin_password())
        user = StoredUser(
            id=str(uuid.uuid4()),
            email=self.settings.default_admin_email(),
            name=DEFAULT_ADMIN_NAME,
            role="admin",
            password_hash=hashed.hash,
            password_salt=hashed.salt,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        await self.store.insert_user_if_absent(user)
        logger.info("Seeded default admin user %s", user.id)
        return True

    async def read_users(self) -> list[StoredUser]:
        await self.ensure_default_admin()
        return await self.store.list_users()

    async def authenticate_user(self, email: str, password: str) -> AdminUserRead | None:
        normalized = normalize_email(email)
        users = await self.read_users()
        matching = next((user for user in users if user.email == normalized and user.is_active), None)
        if matching is None:
            return None
        if not PasswordHasher.verify(password, matching.password_hash, matching.password_salt):
            return None

        now = self.clock()
        await self.store.update_user(matching.id, last_login_at=now, updated_at=now)
        matching.last_login_at = now
        matching.updated_at = now
        return to_public(matching)

    async def list_users(self) -> list[AdminUserRead]:
        users = await self.read_users()
        users.sort(key=lambda user: user.name.casefold())
        return [to_public(user) for user in users]

    async def create_user(self, user_in: AdminUserCreate) -> AdminUserRead:
        email = normalize_email(user_in.email)
        name = user_in.name.strip()
        if not email or not name:
            raise UserManagementError("Name and email are required.")
        if len(user_in.password) < MIN_PASSWORD_LENGTH:
            raise UserManagementError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

        users = await self.read_users()
        if any(user.email == email for user in users):
            raise UserManagementError("A user with this email already exists.")

        now = self.clock()
        hashed = PasswordHasher.hash(user_in.password)
        user = StoredUser(
            id=str(uuid.uuid4()),
            email=email,
            name=name,
            role=user_in.role,
            password_hash=hashed.hash,
            password_salt=hashed.salt,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        await self.store.insert_user(user)
        logger.info("Created %s user %s", user.role, user.id)
        return to_public(user)

    async def update_user_role(self, user_id: str, role: AdminRole) -> None:
        users = await self.read_users()
        target = _find_active(users, user_id)
        if target.role == "admin" and role != "admin":
            _assert_admin_remains(users)

        now = self.clock()
        await self.store.update_user(user_id, role=role, updated_at=now)
        await self.store.update_user_sessions(user_id, role=role, last_seen_at=now)
        logger.info("Changed role of user %s to %s", user_id, role)

    async def update_user_password(self, user_id: str, new_password: str) -> None:
        password = new_password.strip()
        if len(password) < MIN_PASSWORD_LENGTH:
            raise UserManagementError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

        users = await self.read_users()
        _find_active(users, user_id)

        hashed = PasswordHasher.hash(password)
        await self.store.update_user(
            user_id,
            password_hash=hashed.hash,
            password_salt=hashed.salt,
            updated_at=self.clock(),
        )
        logger.info("Reset password of user %s", user_id)

    async def delete_user(self, user_id: str) -> None:
        users = await self.read_users()
        target = _find_active(users, user_id)
        if target.role == "admin":
            _assert_admin_remains(users)

        await self.store.delete_user(user_id)
        logger.info("Deleted user %s", user_id)

    def default_credentials_hint(self) -> DefaultCredentials | None:
        """Credentials to show on the login screen while the built-in defaults are in use."""

        if self.settings.has_custom_admin_credentials or self.settings.is_production:
            return None
        return DefaultCredentials(email=DEFAULT_ADMIN_EMAIL, password=DEFAULT_ADMIN_PASSWORD)

"""Record types and the storage protocol shared by every backend."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Protocol

AdminRole = Literal["admin", "editor"]


class StoreError(RuntimeError):
    """Raised when the backing store rejects or fails a request."""


def sanitize_role(value: Any) -> AdminRole:
    return "admin" if value == "admin" else "editor"


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(slots=True)
class StoredUser:
    id: str
    email: str
    name: str
    role: AdminRole
    password_hash: str
    password_salt: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    last_login_at: datetime | None = None


@dataclass(slots=True)
class StoredSession:
    id: str
    token_hash: str
    user_id: str
    role: AdminRole
    created_at: datetime
    expires_at: datetime
    last_seen_at: datetime
    user_agent: str | None = None


@dataclass(slots=True)
class RateLimitRecord:
    key: str
    count: int
    # None when the stored value could not be parsed
    first_attempt_at: datetime | None
    blocked_until: datetime | None = None


class AdminStore(Protocol):
    """Persistence operations used by the auth services.

    Implementations raise :class:`StoreError` for transport or backend failures.
    """

    # admin_users
    async def list_users(self) -> list[StoredUser]:
        ...

    async def insert_user(self, user: StoredUser) -> None:
        ...

    async def insert_user_if_absent(self, user: StoredUser) -> None:
        ...

    async def update_user(self, user_id: str, **changes: Any) -> None:
        ...

    async def delete_user(self, user_id: str) -> None:
        ...

    # admin_sessions
    async def list_live_sessions(self, now: datetime) -> list[StoredSession]:
        ...

    async def get_session_by_token_hash(self, token_hash: str) -> StoredSession | None:
        ...

    async def insert_session(self, session: StoredSession) -> None:
        ...

    async def delete_session(self, session_id: str) -> None:
        ...

    async def delete_session_by_token_hash(self, token_hash: str) -> None:
        ...

    async def update_user_sessions(self, user_id: str, **changes: Any) -> None:
        ...

    async def delete_expired_sessions(self, now: datetime) -> int:
        ...

    # login_rate_limits
    async def get_rate_limit(self, key: str) -> RateLimitRecord | None:
        ...

    async def upsert_rate_limit(self, record: RateLimitRecord, updated_at: datetime) -> None:
        ...

    async def delete_rate_limit(self, key: str) -> None:
        ...

    async def delete_rate_limits_before(self, cutoff: datetime) -> int:
        ...

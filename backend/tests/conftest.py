from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from nomod_admin.core.config import Settings
from nomod_admin.core.security import PasswordHasher
from nomod_admin.store import RateLimitRecord, StoredSession, StoredUser

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock passed wherever services accept ``clock=``."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class InMemoryStore:
    """Dict-backed AdminStore used to exercise the services without a backend."""

    def __init__(self) -> None:
        self.users: dict[str, StoredUser] = {}
        self.sessions: dict[str, StoredSession] = {}
        self.rate_limits: dict[str, RateLimitRecord] = {}
        self.rate_limit_updated_at: dict[str, datetime] = {}

    # admin_users

    async def list_users(self) -> list[StoredUser]:
        users = sorted(self.users.values(), key=lambda user: user.created_at)
        return [replace(user) for user in users]

    async def insert_user(self, user: StoredUser) -> None:
        self.users[user.id] = replace(user)

    async def insert_user_if_absent(self, user: StoredUser) -> None:
        if any(existing.email == user.email for existing in self.users.values()):
            return
        self.users[user.id] = replace(user)

    async def update_user(self, user_id: str, **changes) -> None:
        if user_id in self.users:
            self.users[user_id] = replace(self.users[user_id], **changes)

    async def delete_user(self, user_id: str) -> None:
        self.users.pop(user_id, None)
        for session_id in [key for key, item in self.sessions.items() if item.user_id == user_id]:
            del self.sessions[session_id]

    # admin_sessions

    async def list_live_sessions(self, now: datetime) -> list[StoredSession]:
        live = [item for item in self.sessions.values() if item.expires_at > now]
        return [replace(item) for item in sorted(live, key=lambda item: item.created_at)]

    async def get_session_by_token_hash(self, token_hash: str) -> StoredSession | None:
        for item in self.sessions.values():
            if item.token_hash == token_hash:
                return replace(item)
        return None

    async def insert_session(self, session: StoredSession) -> None:
        self.sessions[session.id] = replace(session)

    async def delete_session(self, session_id: str) -> None:
        self.sessions.pop(session_id, None)

    async def delete_session_by_token_hash(self, token_hash: str) -> None:
        for session_id in [key for key, item in self.sessions.items() if item.token_hash == token_hash]:
            del self.sessions[session_id]

    async def update_user_sessions(self, user_id: str, **changes) -> None:
        for session_id, item in list(self.sessions.items()):
            if item.user_id == user_id:
                self.sessions[session_id] = replace(item, **changes)

    async def delete_expired_sessions(self, now: datetime) -> int:
        expired = [key for key, item in self.sessions.items() if item.expires_at <= now]
        for session_id in expired:
            del self.sessions[session_id]
        return len(expired)

    # login_rate_limits

    async def get_rate_limit(self, key: str) -> RateLimitRecord | None:
        record = self.rate_limits.get(key)
        return replace(record) if record else None

    async def upsert_rate_limit(self, record: RateLimitRecord, updated_at: datetime) -> None:
        self.rate_limits[record.key] = replace(record)
        self.rate_limit_updated_at[record.key] = updated_at

    async def delete_rate_limit(self, key: str) -> None:
        self.rate_limits.pop(key, None)

    async def delete_rate_limits_before(self, cutoff: datetime) -> int:
        stale = [
            key
            for key, record in self.rate_limits.items()
            if record.first_attempt_at is not None and record.first_attempt_at < cutoff
        ]
        for key in stale:
            del self.rate_limits[key]
        return len(stale)


def add_user(
    store: InMemoryStore,
    email: str,
    password: str = "correct-horse",
    *,
    role: str = "editor",
    name: str | None = None,
    is_active: bool = True,
    created_at: datetime = T0,
) -> StoredUser:
    hashed = PasswordHasher.hash(password)
    user = StoredUser(
        id=str(uuid.uuid4()),
        email=email,
        name=name or email.split("@")[0].title(),
        role=role,
        password_hash=hashed.hash,
        password_salt=hashed.salt,
        is_active=is_active,
        created_at=created_at,
        updated_at=created_at,
    )
    store.users[user.id] = user
    return user


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="development",
        auth_secret="test-auth-secret",
        admin_email=None,
        admin_password=None,
        store_backend="sql",
    )

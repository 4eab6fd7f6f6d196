"""SQLAlchemy implementation of the admin store, used for local development."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Executable, delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from nomod_admin.core.clock import parse_timestamp
from nomod_admin.db.base import Base
from nomod_admin.db.session import build_engine, build_session_factory, session_scope
from nomod_admin.models import AdminSession, AdminUser, LoginRateLimit
from nomod_admin.store.base import (
    RateLimitRecord,
    StoredSession,
    StoredUser,
    StoreError,
    normalize_email,
    sanitize_role,
)


def _utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc)


def _to_user(row: AdminUser) -> StoredUser:
    return StoredUser(
        id=row.id,
        email=normalize_email(row.email),
        name=row.name,
        role=sanitize_role(row.role),
        password_hash=row.password_hash,
        password_salt=row.password_salt,
        is_active=row.is_active is not False,
        created_at=parse_timestamp(row.created_at),
        updated_at=parse_timestamp(row.updated_at),
        last_login_at=parse_timestamp(row.last_login_at),
    )


def _to_session(row: AdminSession) -> StoredSession:
    return StoredSession(
        id=row.id,
        token_hash=row.token_hash,
        user_id=row.user_id,
        role=sanitize_role(row.role),
        created_at=parse_timestamp(row.created_at),
        expires_at=parse_timestamp(row.expires_at),
        last_seen_at=parse_timestamp(row.last_seen_at),
        user_agent=row.user_agent,
    )


def _normalize_changes(changes: dict[str, Any]) -> dict[str, Any]:
    return {key: _utc(value) if isinstance(value, datetime) else value for key, value in changes.items()}


class SqlAlchemyStore:
    """Admin store backed by an async SQLAlchemy engine."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self._session_factory = build_session_factory(engine)

    @classmethod
    def from_url(cls, database_url: str) -> "SqlAlchemyStore":
        return cls(build_engine(database_url))

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def _execute(self, statement: Executable) -> int:
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(statement)
                return result.rowcount or 0
        except SQLAlchemyError as exc:
            raise StoreError(f"Database operation failed: {exc}") from exc

    async def _fetch_all(self, statement: Executable) -> list[Any]:
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(statement)
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Database operation failed: {exc}") from exc

    async def _add(self, instance: Any) -> None:
        try:
            async with session_scope(self._session_factory) as session:
                session.add(instance)
        except SQLAlchemyError as exc:
            raise StoreError(f"Database operation failed: {exc}") from exc

    # admin_users

    async def list_users(self) -> list[StoredUser]:
        rows = await self._fetch_all(select(AdminUser).order_by(AdminUser.created_at.asc()))
        return [_to_user(row) for row in rows]

    def _user_row(self, user: StoredUser) -> AdminUser:
        return AdminUser(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            password_hash=user.password_hash,
            password_salt=user.password_salt,
            is_active=user.is_active,
            created_at=_utc(user.created_at),
            updated_at=_utc(user.updated_at),
            last_login_at=_utc(user.last_login_at) if user.last_login_at else None,
        )

    async def insert_user(self, user: StoredUser) -> None:
        await self._add(self._user_row(user))

    async def insert_user_if_absent(self, user: StoredUser) -> None:
        try:
            await self.insert_user(user)
        except StoreError as exc:
            # ignore-duplicates semantics on the email key
            if not isinstance(exc.__cause__, IntegrityError):
                raise

    async def update_user(self, user_id: str, **changes: Any) -> None:
        await self._execute(update(AdminUser).where(AdminUser.id == user_id).values(**_normalize_changes(changes)))

    async def delete_user(self, user_id: str) -> None:
        # SQLite does not enforce ON DELETE CASCADE unless the pragma is on
        await self._execute(delete(AdminSession).where(AdminSession.user_id == user_id))
        await self._execute(delete(AdminUser).where(AdminUser.id == user_id))

    # admin_sessions

    async def list_live_sessions(self, now: datetime) -> list[StoredSession]:
        rows = await self._fetch_all(
            select(AdminSession).where(AdminSession.expires_at > _utc(now)).order_by(AdminSession.created_at.asc())
        )
        return [_to_session(row) for row in rows]

    async def get_session_by_token_hash(self, token_hash: str) -> StoredSession | None:
        rows = await self._fetch_all(select(AdminSession).where(AdminSession.token_hash == token_hash).limit(1))
        return _to_session(rows[0]) if rows else None

    async def insert_session(self, session: StoredSession) -> None:
        await self._add(
            AdminSession(
                id=session.id,
                token_hash=session.token_hash,
                user_id=session.user_id,
                role=session.role,
                created_at=_utc(session.created_at),
                expires_at=_utc(session.expires_at),
                last_seen_at=_utc(session.last_seen_at),
                user_agent=session.user_agent,
            )
        )

    async def delete_session(self, session_id: str) -> None:
        await self._execute(delete(AdminSession).where(AdminSession.id == session_id))

    async def delete_session_by_token_hash(self, token_hash: str) -> None:
        await self._execute(delete(AdminSession).where(AdminSession.token_hash == token_hash))

    async def update_user_sessions(self, user_id: str, **changes: Any) -> None:
        await self._execute(
            update(AdminSession).where(AdminSession.user_id == user_id).values(**_normalize_changes(changes))
        )

    async def delete_expired_sessions(self, now: datetime) -> int:
        return await self._execute(delete(AdminSession).where(AdminSession.expires_at <= _utc(now)))

    # login_rate_limits

    async def get_rate_limit(self, key: str) -> RateLimitRecord | None:
        rows = await self._fetch_all(select(LoginRateLimit).where(LoginRateLimit.key == key).limit(1))
        if not rows:
            return None
        row = rows[0]
        return RateLimitRecord(
            key=row.key,
            count=row.count,
            first_attempt_at=parse_timestamp(row.first_attempt_at),
            blocked_until=parse_timestamp(row.blocked_until),
        )

    async def upsert_rate_limit(self, record: RateLimitRecord, updated_at: datetime) -> None:
        values = {
            "count": record.count,
            "first_attempt_at": _utc(record.first_attempt_at or updated_at),
            "blocked_until": _utc(record.blocked_until) if record.blocked_until else None,
            "updated_at": _utc(updated_at),
        }
        try:
            async with session_scope(self._session_factory) as session:
                existing = await session.get(LoginRateLimit, record.key)
                if existing is None:
                    session.add(LoginRateLimit(key=record.key, **values))
                else:
                    for field, value in values.items():
                        setattr(existing, field, value)
        except SQLAlchemyError as exc:
            raise StoreError(f"Database operation failed: {exc}") from exc

    async def delete_rate_limit(self, key: str) -> None:
        await self._execute(delete(LoginRateLimit).where(LoginRateLimit.key == key))

    async def delete_rate_limits_before(self, cutoff: datetime) -> int:
        return await self._execute(delete(LoginRateLimit).where(LoginRateLimit.first_attempt_at < _utc(cutoff)))

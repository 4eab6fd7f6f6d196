"""Session issuance, validation and pruning for the admin area."""
from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import timedelta

from starlette.responses import Response

from nomod_admin.core.clock import Clock, utcnow
from nomod_admin.core.config import Settings
from nomod_admin.core.security import generate_session_token, hash_session_token
from nomod_admin.schemas.user import AdminUserRead
from nomod_admin.services.users import UserService, to_public
from nomod_admin.store import AdminStore, StoredSession, StoredUser

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "nomod_admin_session"


class SessionManager:
    """Issue and resolve opaque session tokens whose HMAC digests are stored.

    Every ``issue`` and ``validate`` call first prunes sessions owned by missing
    or inactive users, so the session table heals itself without a background job.
    Users are read through ``read_users``; ``from_settings`` wires it to
    :meth:`UserService.read_users` so the default admin is seeded first.
    """

    def __init__(
        self,
        store: AdminStore,
        secret: str,
        *,
        max_age_seconds: int = 60 * 60 * 8,
        max_sessions_per_user: int = 20,
        max_sessions_total: int = 5000,
        clock: Clock = utcnow,
        read_users: Callable[[], Awaitable[list[StoredUser]]] | None = None,
    ) -> None:
        self.store = store
        self._secret = secret
        self._read_users = read_users or store.list_users
        self.max_age = timedelta(seconds=max_age_seconds)
        self.max_sessions_per_user = max_sessions_per_user
        self.max_sessions_total = max_sessions_total
        self.clock = clock

    @classmethod
    def from_settings(cls, store: AdminStore, settings: Settings, clock: Clock = utcnow) -> "SessionManager":
        return cls(
            store,
            settings.resolve_auth_secret(),
            max_age_seconds=settings.session_max_age_seconds,
            max_sessions_per_user=settings.max_sessions_per_user,
            max_sessions_total=settings.max_sessions_total,
            clock=clock,
            read_users=UserService(store, settings, clock).read_users,
        )

    def token_hash(self, token: str) -> str:
        return hash_session_token(token, self._secret)

    async def prune_orphaned_sessions(self) -> int:
        """Delete live sessions whose owner is missing or inactive."""

        users = await self._read_users()
        sessions = await self.store.list_live_sessions(self.clock())
        active_ids = {user.id for user in users if user.is_active}

        removed = 0
        for session in sessions:
            if session.user_id in active_ids:
                continue
            await self.store.delete_session(session.id)
            removed += 1
        if removed:
            logger.info("Pruned %d session(s) of inactive or missing users", removed)
        return removed

    async def _evict_over_capacity(self, user_id: str) -> None:
        sessions = await self.store.list_live_sessions(self.clock())
        sessions.sort(key=lambda item: item.created_at)

        # keep room for the session about to be inserted
        user_sessions = [item for item in sessions if item.user_id == user_id]
        stale_user = user_sessions[: max(0, len(user_sessions) - (self.max_sessions_per_user - 1))]
        stale_global = sessions[: max(0, len(sessions) - (self.max_sessions_total - 1))]

        stale_ids = dict.fromkeys(item.id for item in [*stale_user, *stale_global])
        for session_id in stale_ids:
            await self.store.delete_session(session_id)
        if stale_ids:
            logger.info("Evicted %d session(s) over capacity", len(stale_ids))

    async def issue(self, user: AdminUserRead, user_agent: str | None = None) -> str:
        """Persist a new session for ``user`` and return the raw bearer token."""

        await self.prune_orphaned_sessions()
        token = generate_session_token()
        await self._evict_over_capacity(user.id)

        now = self.clock()
        session = StoredSession(
            id=str(uuid.uuid4()),
            token_hash=self.token_hash(token),
            user_id=user.id,
            role=user.role,
            created_at=now,
            expires_at=now + self.max_age,
            last_seen_at=now,
            user_agent=user_agent or None,
        )
        await self.store.insert_session(session)
        logger.info("Issued session %s for user %s", session.id, user.id)
        return token

    async def validate(self, token: str | None) -> AdminUserRead | None:
        """Resolve the active user owning ``token``, or ``None``."""

        if not token:
            return None

        await self.prune_orphaned_sessions()

        session = await self.store.get_session_by_token_hash(self.token_hash(token))
        if session is None:
            return None

        if session.expires_at <= self.clock():
            await self.store.delete_session(session.id)
            logger.info("Deleted expired session %s", session.id)
            return None

        users = await self._read_users()
        user = next((item for item in users if item.id == session.user_id and item.is_active), None)
        if user is None:
            return None
        return to_public(user)

    async def clear(self, token: str | None) -> None:
        if token:
            await self.store.delete_session_by_token_hash(self.token_hash(token))

    async def sweep(self) -> int:
        """Delete expired and orphaned sessions; used by the scheduled sweep."""

        expired = await self.store.delete_expired_sessions(self.clock())
        return expired + await self.prune_orphaned_sessions()


def set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.session_max_age_seconds,
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )

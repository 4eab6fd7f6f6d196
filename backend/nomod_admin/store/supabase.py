"""Supabase (PostgREST) implementation of the admin store."""
from __future__ import annotations

import base64
import json
from datetime import datetime
from typing import Any

import httpx

from nomod_admin.core.clock import isoformat, parse_timestamp
from nomod_admin.core.config import ConfigurationError, Settings
from nomod_admin.store.base import (
    RateLimitRecord,
    StoredSession,
    StoredUser,
    StoreError,
    normalize_email,
    sanitize_role,
)

USERS_PATH = "/rest/v1/admin_users"
SESSIONS_PATH = "/rest/v1/admin_sessions"
RATE_LIMITS_PATH = "/rest/v1/login_rate_limits"

USER_COLUMNS = "id,email,name,role,password_hash,password_salt,is_active,created_at,updated_at,last_login_at"
SESSION_COLUMNS = "id,token_hash,user_id,role,created_at,expires_at,last_seen_at,user_agent"
RATE_LIMIT_COLUMNS = "key,count,first_attempt_at,blocked_until"


def _decode_jwt_payload(token: str) -> dict[str, Any] | None:
    try:
        payload = token.split(".")[1]
        padded = payload + "=" * (-len(payload) % 4)
        decoded = json.loads(base64.urlsafe_b64decode(padded).decode("utf-8"))
    except (IndexError, ValueError):
        return None
    return decoded if isinstance(decoded, dict) else None


def _assert_key_looks_privileged(key: str) -> None:
    # Legacy Supabase keys are JWTs; enforce the service_role claim when detectable.
    if not key.startswith("eyJ"):
        return
    payload = _decode_jwt_payload(key) or {}
    role = payload.get("role") if isinstance(payload.get("role"), str) else ""
    if role and role != "service_role":
        raise ConfigurationError(
            f'SUPABASE_SERVICE_ROLE_KEY must be a service role key. Detected JWT role "{role}".'
        )


def _encode(values: dict[str, Any]) -> dict[str, Any]:
    return {key: isoformat(value) if isinstance(value, datetime) else value for key, value in values.items()}


def _user_from_row(row: dict[str, Any]) -> StoredUser | None:
    required = ("id", "email", "name", "password_hash", "password_salt")
    if not all(row.get(field) for field in required):
        return None
    created_at = parse_timestamp(row.get("created_at"))
    updated_at = parse_timestamp(row.get("updated_at")) or created_at
    if created_at is None or updated_at is None:
        return None
    return StoredUser(
        id=str(row["id"]),
        email=normalize_email(row["email"]),
        name=row["name"],
        role=sanitize_role(row.get("role")),
        password_hash=row["password_hash"],
        password_salt=row["password_salt"],
        is_active=row.get("is_active") is not False,
        created_at=created_at,
        updated_at=updated_at,
        last_login_at=parse_timestamp(row.get("last_login_at")),
    )


def _session_from_row(row: dict[str, Any]) -> StoredSession | None:
    required = ("id", "token_hash", "user_id", "created_at", "expires_at")
    if not all(row.get(field) for field in required):
        return None
    created_at = parse_timestamp(row["created_at"])
    expires_at = parse_timestamp(row["expires_at"])
    if created_at is None or expires_at is None:
        return None
    return StoredSession(
        id=str(row["id"]),
        token_hash=row["token_hash"],
        user_id=str(row["user_id"]),
        role=sanitize_role(row.get("role")),
        created_at=created_at,
        expires_at=expires_at,
        last_seen_at=parse_timestamp(row.get("last_seen_at")) or created_at,
        user_agent=row.get("user_agent") or None,
    )


def _rate_limit_from_row(row: dict[str, Any]) -> RateLimitRecord | None:
    if not row.get("key"):
        return None
    return RateLimitRecord(
        key=row["key"],
        count=int(row.get("count") or 0),
        first_attempt_at=parse_timestamp(row.get("first_attempt_at")),
        blocked_until=parse_timestamp(row.get("blocked_until")),
    )


def _read_json(response: httpx.Response) -> Any:
    if response.is_error:
        body = response.text
        lowered = body.lower()
        looks_like_rls = "row-level security policy" in lowered or '"code":"42501"' in lowered
        if response.status_code in (401, 403) and looks_like_rls:
            raise StoreError(
                f"Supabase request failed ({response.status_code}) due to RLS. Use SUPABASE_SERVICE_ROLE_KEY "
                "(or SUPABASE_SECRET_KEY) for server-side calls, not anon/publishable keys."
            )
        raise StoreError(f"Supabase request failed ({response.status_code}): {body or response.reason_phrase}")

    if response.status_code == 204 or not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise StoreError("Supabase returned a malformed JSON body") from exc


class SupabaseStore:
    """Admin store backed by Supabase's REST interface using the service-role key."""

    def __init__(
        self,
        url: str | None,
        service_role_key: str | None,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url or not service_role_key:
            raise ConfigurationError(
                "Supabase is not configured. Set SUPABASE_URL (or NEXT_PUBLIC_SUPABASE_URL) and "
                "SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_SECRET_KEY)."
            )
        _assert_key_looks_privileged(service_role_key)
        self._base_url = url.rstrip("/")
        self._key = service_role_key
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> "SupabaseStore":
        return cls(
            settings.supabase_url,
            settings.supabase_service_role_key,
            timeout=settings.supabase_timeout_seconds,
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        body: Any = None,
        prefer: str | None = None,
    ) -> Any:
        headers = {"apikey": self._key, "Authorization": f"Bearer {self._key}"}
        if prefer:
            headers["Prefer"] = prefer
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url, timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.request(method, path, params=params, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise StoreError(f"Supabase request to {path} failed: {exc}") from exc
        return _read_json(response)

    # admin_users

    async def list_users(self) -> list[StoredUser]:
        rows = await self._request("GET", USERS_PATH, params={"select": USER_COLUMNS, "order": "created_at.asc"})
        return [user for user in (_user_from_row(row) for row in rows or []) if user]

    def _user_body(self, user: StoredUser) -> dict[str, Any]:
        return _encode(
            {
                "id": user.id,
                "email": user.email,
                "name": user.name,
                "role": user.role,
                "password_hash": user.password_hash,
                "password_salt": user.password_salt,
                "is_active": user.is_active,
                "created_at": user.created_at,
                "updated_at": user.updated_at,
            }
        )

    async def insert_user(self, user: StoredUser) -> None:
        await self._request("POST", USERS_PATH, body=[self._user_body(user)], prefer="return=minimal")

    async def insert_user_if_absent(self, user: StoredUser) -> None:
        await self._request(
            "POST",
            USERS_PATH,
            params={"on_conflict": "email"},
            body=[self._user_body(user)],
            prefer="resolution=ignore-duplicates,return=minimal",
        )

    async def update_user(self, user_id: str, **changes: Any) -> None:
        await self._request("PATCH", USERS_PATH, params={"id": f"eq.{user_id}"}, body=_encode(changes))

    async def delete_user(self, user_id: str) -> None:
        # admin_sessions.user_id cascades on delete
        await self._request("DELETE", USERS_PATH, params={"id": f"eq.{user_id}"})

    # admin_sessions

    async def list_live_sessions(self, now: datetime) -> list[StoredSession]:
        rows = await self._request(
            "GET",
            SESSIONS_PATH,
            params={
                "select": SESSION_COLUMNS,
                "expires_at": f"gt.{isoformat(now)}",
                "order": "created_at.asc",
            },
        )
        return [session for session in (_session_from_row(row) for row in rows or []) if session]

    async def get_session_by_token_hash(self, token_hash: str) -> StoredSession | None:
        rows = await self._request(
            "GET",
            SESSIONS_PATH,
            params={"select": SESSION_COLUMNS, "token_hash": f"eq.{token_hash}", "limit": "1"},
        )
        for row in rows or []:
            session = _session_from_row(row)
            if session:
                return session
        return None

    async def insert_session(self, session: StoredSession) -> None:
        body = _encode(
            {
                "id": session.id,
                "token_hash": session.token_hash,
                "user_id": session.user_id,
                "role": session.role,
                "created_at": session.created_at,
                "expires_at": session.expires_at,
                "last_seen_at": session.last_seen_at,
                "user_agent": session.user_agent,
            }
        )
        await self._request("POST", SESSIONS_PATH, body=[body], prefer="return=minimal")

    async def delete_session(self, session_id: str) -> None:
        await self._request("DELETE", SESSIONS_PATH, params={"id": f"eq.{session_id}"})

    async def delete_session_by_token_hash(self, token_hash: str) -> None:
        await self._request("DELETE", SESSIONS_PATH, params={"token_hash": f"eq.{token_hash}"})

    async def update_user_sessions(self, user_id: str, **changes: Any) -> None:
        await self._request("PATCH", SESSIONS_PATH, params={"user_id": f"eq.{user_id}"}, body=_encode(changes))

    async def delete_expired_sessions(self, now: datetime) -> int:
        rows = await self._request(
            "DELETE",
            SESSIONS_PATH,
            params={"expires_at": f"lte.{isoformat(now)}", "select": "id"},
            prefer="return=representation",
        )
        return len(rows or [])

    # login_rate_limits

    async def get_rate_limit(self, key: str) -> RateLimitRecord | None:
        rows = await self._request(
            "GET",
            RATE_LIMITS_PATH,
            params={"select": RATE_LIMIT_COLUMNS, "key": f"eq.{key}", "limit": "1"},
        )
        if not rows:
            return None
        return _rate_limit_from_row(rows[0])

    async def upsert_rate_limit(self, record: RateLimitRecord, updated_at: datetime) -> None:
        body = _encode(
            {
                "key": record.key,
                "count": record.count,
                "first_attempt_at": record.first_attempt_at or updated_at,
                "blocked_until": record.blocked_until,
                "updated_at": updated_at,
            }
        )
        await self._request(
            "POST",
            RATE_LIMITS_PATH,
            params={"on_conflict": "key"},
            body=[body],
            prefer="resolution=merge-duplicates,return=minimal",
        )

    async def delete_rate_limit(self, key: str) -> None:
        await self._request("DELETE", RATE_LIMITS_PATH, params={"key": f"eq.{key}"})

    async def delete_rate_limits_before(self, cutoff: datetime) -> int:
        rows = await self._request(
            "DELETE",
            RATE_LIMITS_PATH,
            params={"first_attempt_at": f"lt.{isoformat(cutoff)}", "select": "key"},
            prefer="return=representation",
        )
        return len(rows or [])

"""Backing stores for admin users, sessions and login rate limits."""
from __future__ import annotations

from nomod_admin.core.config import Settings
from nomod_admin.store.base import (
    AdminRole,
    AdminStore,
    RateLimitRecord,
    StoredSession,
    StoredUser,
    StoreError,
    normalize_email,
    sanitize_role,
)


def create_store(settings: Settings) -> AdminStore:
    """Build the store selected by ``settings.store_backend``."""

    if settings.store_backend == "sql":
        from nomod_admin.store.sql import SqlAlchemyStore

        return SqlAlchemyStore.from_url(settings.database_url)

    from nomod_admin.store.supabase import SupabaseStore

    return SupabaseStore.from_settings(settings)


__all__ = [
    "AdminRole",
    "AdminStore",
    "RateLimitRecord",
    "StoredSession",
    "StoredUser",
    "StoreError",
    "create_store",
    "normalize_email",
    "sanitize_role",
]

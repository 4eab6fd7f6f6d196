"""Sliding-window login throttling keyed by client fingerprint."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from nomod_admin.core.clock import Clock, utcnow
from nomod_admin.core.config import Settings
from nomod_admin.store import AdminStore, RateLimitRecord, StoreError

logger = logging.getLogger(__name__)

STALE_WINDOW_MULTIPLIER = 4


@dataclass(frozen=True, slots=True)
class RateLimitState:
    limited: bool
    retry_after_seconds: int = 0

    @property
    def retry_after_minutes(self) -> int:
        return math.ceil(self.retry_after_seconds / 60)

    def message(self) -> str:
        minutes = self.retry_after_minutes
        return f"Too many login attempts. Try again in {minutes} minute{'' if minutes == 1 else 's'}."


NOT_LIMITED = RateLimitState(limited=False)


class LoginRateLimiter:
    """Count failed logins per fingerprint and lock the fingerprint out at the threshold.

    Read and write of a counter are separate round trips, so concurrent failures for
    one fingerprint may lose an increment. Throttling is best-effort.
    """

    def __init__(
        self,
        store: AdminStore,
        *,
        window_seconds: int = 15 * 60,
        max_attempts: int = 5,
        lockout_seconds: int = 15 * 60,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.window = timedelta(seconds=window_seconds)
        self.max_attempts = max_attempts
        self.lockout = timedelta(seconds=lockout_seconds)
        self.stale_after = self.window * STALE_WINDOW_MULTIPLIER
        self.clock = clock

    @classmethod
    def from_settings(cls, store: AdminStore, settings: Settings, clock: Clock = utcnow) -> "LoginRateLimiter":
        return cls(
            store,
            window_seconds=settings.login_window_seconds,
            max_attempts=settings.login_max_attempts,
            lockout_seconds=settings.login_lockout_seconds,
            clock=clock,
        )

    async def _read(self, key: str) -> RateLimitRecord | None:
        # fail open: an unreadable counter never locks anyone out
        try:
            return await self.store.get_rate_limit(key)
        except StoreError as exc:
            logger.warning("Could not read login rate limit record: %s", exc)
            return None

    async def _write(self, record: RateLimitRecord, now: datetime) -> None:
        await self.store.upsert_rate_limit(record, updated_at=now)

    async def check_state(self, key: str) -> RateLimitState:
        now = self.clock()
        record = await self._read(key)
        if record is None:
            return NOT_LIMITED

        if record.first_attempt_at is None or now - record.first_attempt_at > self.stale_after:
            await self.store.delete_rate_limit(key)
            return NOT_LIMITED

        if record.blocked_until is not None and record.blocked_until > now:
            remaining = (record.blocked_until - now).total_seconds()
            return RateLimitState(limited=True, retry_after_seconds=max(1, math.ceil(remaining)))

        if record.blocked_until is not None:
            record.blocked_until = None
            await self._write(record, now)

        return NOT_LIMITED

    async def record_failure(self, key: str) -> RateLimitState:
        now = self.clock()
        current = await self._read(key)

        if current is None:
            await self._write(RateLimitRecord(key=key, count=1, first_attempt_at=now), now)
            return NOT_LIMITED

        reset_window = current.first_attempt_at is None or now - current.first_attempt_at > self.window
        count = 1 if reset_window else current.count + 1
        first_attempt_at = now if reset_window else current.first_attempt_at

        if count >= self.max_attempts:
            blocked_until = now + self.lockout
            await self._write(
                RateLimitRecord(key=key, count=count, first_attempt_at=first_attempt_at, blocked_until=blocked_until),
                now,
            )
            logger.warning("Login locked out for %d seconds after %d failed attempts", self.lockout.total_seconds(), count)
            return RateLimitState(limited=True, retry_after_seconds=math.ceil(self.lockout.total_seconds()))

        await self._write(RateLimitRecord(key=key, count=count, first_attempt_at=first_attempt_at), now)
        return NOT_LIMITED

    async def clear(self, key: str) -> None:
        await self.store.delete_rate_limit(key)

    async def sweep(self) -> int:
        """Delete counters whose window started more than the staleness threshold ago."""

        return await self.store.delete_rate_limits_before(self.clock() - self.stale_after)

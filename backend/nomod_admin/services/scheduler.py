"""Background scheduler for sweeping expired auth state."""
from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from nomod_admin.core.config import ConfigurationError, get_settings
from nomod_admin.core.dependencies import get_store
from nomod_admin.services.rate_limit import LoginRateLimiter
from nomod_admin.services.sessions import SessionManager
from nomod_admin.store import StoreError

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "sweep-auth-state"

_scheduler: AsyncIOScheduler | None = None


def get_scheduler() -> AsyncIOScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler()
    return _scheduler


def start_scheduler() -> None:
    scheduler = get_scheduler()
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def shutdown_scheduler() -> None:
    scheduler = get_scheduler()
    if scheduler.running:
        scheduler.shutdown(wait=False)


def schedule_sweep_job() -> None:
    settings = get_settings()
    scheduler = get_scheduler()
    trigger = IntervalTrigger(seconds=settings.sweep_interval_seconds)
    scheduler.add_job(sweep_auth_state, trigger=trigger, id=SWEEP_JOB_ID, replace_existing=True)
    logger.info("Scheduled %s every %s seconds", SWEEP_JOB_ID, trigger.interval.total_seconds())


async def sweep_auth_state() -> tuple[int, int]:
    """Delete expired/orphaned sessions and stale rate-limit counters.

    Returns ``(sessions_removed, counters_removed)``; ``(0, 0)`` when the sweep failed.
    """

    settings = get_settings()
    try:
        store = get_store()
        sessions_removed = await SessionManager.from_settings(store, settings).sweep()
        counters_removed = await LoginRateLimiter.from_settings(store, settings).sweep()
    except (ConfigurationError, StoreError) as exc:
        logger.error("Auth state sweep failed: %s", exc)
        return 0, 0

    if sessions_removed or counters_removed:
        logger.info(
            "Auth state sweep removed %d session(s) and %d rate limit record(s)",
            sessions_removed,
            counters_removed,
        )
    return sessions_removed, counters_removed

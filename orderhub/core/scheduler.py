# orderhub/core/scheduler.py
from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from orderhub.core.config import get_settings

log = logging.getLogger("orderhub.scheduler")

_scheduler: AsyncIOScheduler | None = None


async def _job_refresh_tracking(runtime) -> None:
    summaries = await runtime.refresher().refresh_all(trigger="scheduled")
    log.info("scheduled tracking refresh: %d workspace(s)", len(summaries))


def init_scheduler(runtime) -> AsyncIOScheduler | None:
    """Interval tracking refresh over every active workspace; off unless ENABLE_TRACKING_SCHEDULER."""
    global _scheduler
    settings = get_settings()
    if not settings.ENABLE_TRACKING_SCHEDULER:
        return None
    if _scheduler is not None:
        return _scheduler
    _scheduler = AsyncIOScheduler(timezone="UTC")
    _scheduler.add_job(
        _job_refresh_tracking,
        "interval",
        minutes=settings.TRACKING_REFRESH_INTERVAL_MINUTES,
        args=[runtime],
        id="tracking_refresh",
        max_instances=1,
        coalesce=True,
    )
    _scheduler.start()
    log.info("tracking scheduler started (every %s min)", settings.TRACKING_REFRESH_INTERVAL_MINUTES)
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None

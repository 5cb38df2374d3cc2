"""APScheduler setup for background jobs."""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from finsync.config import get_settings

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None


def setup_scheduler(interval_seconds: Optional[int] = None) -> AsyncIOScheduler:
    """Set up and start the background scheduler."""
    global _scheduler

    if _scheduler is not None:
        if interval_seconds:
            _scheduler.reschedule_job(
                "periodic_sync",
                trigger=IntervalTrigger(seconds=interval_seconds),
            )
            logger.info(f"Background scheduler already running, import rescheduled every {interval_seconds}s")
        else:
            logger.info("Background scheduler already running")
        return _scheduler

    settings = get_settings()
    interval = interval_seconds or settings.sync_interval_seconds

    _scheduler = AsyncIOScheduler()

    # Import cycle; overlapping ticks are dropped, never queued
    _scheduler.add_job(
        "finsync.jobs.sync_job:run_periodic_sync",
        trigger=IntervalTrigger(seconds=interval),
        id="periodic_sync",
        name="Periodic Calendar Import",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    # Sync log retention - daily at 3 AM
    _scheduler.add_job(
        "finsync.jobs.cleanup:run_retention_cleanup",
        trigger=CronTrigger(hour=3, minute=0),
        id="retention_cleanup",
        name="Retention Cleanup",
        replace_existing=True,
    )

    _scheduler.start()
    logger.info(f"Background scheduler started (import every {interval}s)")

    return _scheduler


def shutdown_scheduler() -> None:
    """Stop scheduling new ticks; an in-flight cycle is left to finish."""
    global _scheduler

    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Background scheduler stopped")


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the current scheduler instance."""
    return _scheduler

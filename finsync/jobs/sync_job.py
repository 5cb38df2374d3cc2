"""Periodic import job."""

import logging

from finsync.database import is_sync_paused

logger = logging.getLogger(__name__)


async def run_periodic_sync() -> int:
    """
    One scheduler tick: run an import cycle unless it should be skipped.

    A tick is skipped when sync is paused, when provider integration is
    inactive, or while the previous cycle is still running.
    """
    if await is_sync_paused():
        logger.debug("Sync is paused, skipping periodic import")
        return 0

    from finsync.sync.engine import get_engine

    engine = get_engine()

    if not engine.integration_enabled:
        logger.debug("Provider integration inactive, skipping periodic import")
        return 0

    if engine.cycle_in_progress:
        logger.debug("Import cycle still running, skipping tick")
        return 0

    try:
        return await engine.run_once()
    except Exception as e:
        logger.exception(f"Periodic import failed: {e}")
        return 0

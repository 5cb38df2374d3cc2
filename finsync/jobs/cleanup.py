"""Retention cleanup job."""

import json
import logging
from datetime import datetime, timedelta

from finsync.config import get_settings
from finsync.database import get_database

logger = logging.getLogger(__name__)


async def run_retention_cleanup() -> dict:
    """
    Purge sync log entries older than the retention period.

    Events themselves are never expired; the local store is authoritative.
    """
    settings = get_settings()
    db = await get_database()
    cutoff = datetime.utcnow() - timedelta(days=settings.sync_log_retention_days)
    # Same layout as CURRENT_TIMESTAMP so the string comparison is ordered
    log_cutoff = cutoff.strftime("%Y-%m-%d %H:%M:%S")

    cursor = await db.execute(
        "DELETE FROM sync_log WHERE created_at < ? RETURNING id",
        (log_cutoff,)
    )
    deleted = await cursor.fetchall()
    await db.commit()

    summary = {"old_sync_logs": len(deleted)}
    logger.info(f"Retention cleanup completed: {summary}")

    await db.execute(
        """INSERT INTO sync_log (action, status, details)
           VALUES ('retention_cleanup', 'success', ?)""",
        (json.dumps(summary),)
    )
    await db.commit()

    return summary

"""Database connection and schema management."""

import asyncio
import json
import logging
from datetime import datetime
from typing import Optional

import aiosqlite

from finsync.config import get_settings

logger = logging.getLogger(__name__)

# Global database connection
_db_connection: Optional[aiosqlite.Connection] = None
_db_lock = asyncio.Lock()


SCHEMA = """
-- Local, authoritative calendar events
CREATE TABLE IF NOT EXISTS calendar_events (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    type TEXT,
    date TEXT NOT NULL,
    time TEXT,
    amount NUMERIC,
    description TEXT,
    provider_id TEXT UNIQUE,
    provider_calendar_id TEXT,
    sync_source TEXT NOT NULL DEFAULT 'native'
        CHECK (sync_source IN ('native', 'provider', 'bidirectional')),
    sync_version INTEGER NOT NULL DEFAULT 1,
    last_synced_at TIMESTAMP,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_calendar_events_date ON calendar_events(date);

-- Runtime settings (pause switch, provider token)
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value_plain TEXT,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Audit log
CREATE TABLE IF NOT EXISTS sync_log (
    id INTEGER PRIMARY KEY,
    event_id TEXT,
    provider_id TEXT,
    action TEXT NOT NULL,
    status TEXT NOT NULL,
    details TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_sync_log_created ON sync_log(created_at);
"""


async def get_database() -> aiosqlite.Connection:
    """Get the database connection, creating it if necessary."""
    global _db_connection

    async with _db_lock:
        if _db_connection is None:
            settings = get_settings()
            _db_connection = await aiosqlite.connect(settings.database_path)
            _db_connection.row_factory = aiosqlite.Row
            await _db_connection.execute("PRAGMA journal_mode = WAL")
            await init_schema(_db_connection)
        return _db_connection


async def init_schema(db: aiosqlite.Connection) -> None:
    """Initialize database schema."""
    await db.executescript(SCHEMA)
    await db.commit()
    logger.info("Database schema initialized")


async def close_database() -> None:
    """Close the database connection."""
    global _db_connection

    async with _db_lock:
        if _db_connection is not None:
            await _db_connection.close()
            _db_connection = None
            logger.info("Database connection closed")


async def get_setting(key: str) -> Optional[dict]:
    """Get a setting by key."""
    db = await get_database()
    cursor = await db.execute(
        "SELECT * FROM settings WHERE key = ?", (key,)
    )
    row = await cursor.fetchone()
    if row:
        return dict(row)
    return None


async def set_setting(key: str, value: str) -> None:
    """Set a setting value."""
    db = await get_database()
    now = datetime.utcnow().isoformat()
    await db.execute(
        """INSERT INTO settings (key, value_plain, updated_at)
           VALUES (?, ?, ?)
           ON CONFLICT(key) DO UPDATE SET
           value_plain = excluded.value_plain,
           updated_at = excluded.updated_at""",
        (key, value, now)
    )
    await db.commit()


async def delete_setting(key: str) -> None:
    """Remove a setting."""
    db = await get_database()
    await db.execute("DELETE FROM settings WHERE key = ?", (key,))
    await db.commit()


async def is_sync_paused() -> bool:
    """Check if background sync is paused."""
    setting = await get_setting("sync_paused")
    return bool(setting and setting.get("value_plain") == "true")


async def record_sync_log(
    action: str,
    status: str,
    details: Optional[dict] = None,
    event_id: Optional[str] = None,
    provider_id: Optional[str] = None,
) -> None:
    """Append an entry to the sync audit log."""
    db = await get_database()
    await db.execute(
        """INSERT INTO sync_log (event_id, provider_id, action, status, details)
           VALUES (?, ?, ?, ?, ?)""",
        (event_id, provider_id, action, status, json.dumps(details or {})),
    )
    await db.commit()

"""Local event store backed by the application database."""

import uuid
from datetime import date, datetime
from typing import Optional, Union

import aiosqlite

from finsync.database import get_database
from finsync.sync.errors import EventNotFound, StoreFailure

SYNC_SOURCES = ("native", "provider", "bidirectional")

# Columns a caller may write; id and created_at are owned by the store.
WRITABLE_FIELDS = (
    "title",
    "type",
    "date",
    "time",
    "amount",
    "description",
    "provider_id",
    "provider_calendar_id",
    "sync_source",
    "sync_version",
    "last_synced_at",
)


def _date_key(value: Union[date, datetime, str]) -> str:
    """Normalize a day to the ISO string stored in the date column."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise StoreFailure("Events need a date")
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


class EventStore:
    """
    CRUD access to calendar_events.

    Every method is a single committed statement and returns plain dict
    copies, so callers never hold live references into the store.
    """

    async def _db(self) -> aiosqlite.Connection:
        return await get_database()

    async def get_event(self, event_id: str) -> Optional[dict]:
        """Fetch one event by local id."""
        try:
            db = await self._db()
            cursor = await db.execute(
                "SELECT * FROM calendar_events WHERE id = ?", (event_id,)
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreFailure(f"Failed to load event {event_id}: {e}") from e
        return dict(row) if row else None

    async def find_by_provider_id(self, provider_id: str) -> Optional[dict]:
        """Fetch the event linked to a provider id (unique index lookup)."""
        if not provider_id:
            return None
        try:
            db = await self._db()
            cursor = await db.execute(
                "SELECT * FROM calendar_events WHERE provider_id = ?", (provider_id,)
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreFailure(f"Failed to look up provider id {provider_id}: {e}") from e
        return dict(row) if row else None

    async def list_events_on_date(self, day: Union[date, datetime, str]) -> list[dict]:
        """All events on one calendar day, oldest first."""
        try:
            db = await self._db()
            cursor = await db.execute(
                """SELECT * FROM calendar_events
                   WHERE date = ?
                   ORDER BY created_at, id""",
                (_date_key(day),)
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StoreFailure(f"Failed to list events on {day}: {e}") from e
        return [dict(row) for row in rows]

    async def list_events(
        self,
        start: Union[date, datetime, str],
        end: Union[date, datetime, str],
    ) -> list[dict]:
        """Events with start <= date <= end, ordered by day and time."""
        try:
            db = await self._db()
            cursor = await db.execute(
                """SELECT * FROM calendar_events
                   WHERE date >= ? AND date <= ?
                   ORDER BY date, time, created_at""",
                (_date_key(start), _date_key(end))
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StoreFailure(f"Failed to list events: {e}") from e
        return [dict(row) for row in rows]

    async def create_event(self, fields: dict) -> dict:
        """Insert a new event and return the stored row."""
        if not fields.get("title") or not fields.get("date"):
            raise StoreFailure("Events need a title and a date")

        record = {key: fields.get(key) for key in WRITABLE_FIELDS}
        record["date"] = _date_key(record["date"])
        record["sync_source"] = record["sync_source"] or "native"
        record["sync_version"] = record["sync_version"] or 1
        if record["sync_source"] not in SYNC_SOURCES:
            raise StoreFailure(f"Unknown sync source {record['sync_source']!r}")

        event_id = fields.get("id") or uuid.uuid4().hex
        now = datetime.utcnow().isoformat()
        columns = ["id", *WRITABLE_FIELDS, "created_at", "updated_at"]
        values = [event_id, *(record[key] for key in WRITABLE_FIELDS), now, now]
        placeholders = ", ".join("?" * len(columns))

        try:
            db = await self._db()
            await db.execute(
                f"INSERT INTO calendar_events ({', '.join(columns)}) VALUES ({placeholders})",
                values,
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise StoreFailure(f"Failed to create event {record['title']!r}: {e}") from e

        created = await self.get_event(event_id)
        if created is None:
            raise StoreFailure(f"Event {event_id} vanished after insert")
        return created

    async def update_event(self, event_id: str, fields: dict, touch: bool = True) -> None:
        """
        Apply a partial update; unknown keys are ignored.

        With touch=False the updated_at column is left as it was.
        """
        updates = {key: value for key, value in fields.items() if key in WRITABLE_FIELDS}
        if "date" in updates:
            updates["date"] = _date_key(updates["date"])
        if "sync_source" in updates and updates["sync_source"] not in SYNC_SOURCES:
            raise StoreFailure(f"Unknown sync source {updates['sync_source']!r}")
        if touch:
            updates["updated_at"] = datetime.utcnow().isoformat()
        if not updates:
            return

        assignments = ", ".join(f"{key} = ?" for key in updates)
        try:
            db = await self._db()
            cursor = await db.execute(
                f"UPDATE calendar_events SET {assignments} WHERE id = ?",
                [*updates.values(), event_id],
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise StoreFailure(f"Failed to update event {event_id}: {e}") from e

        if cursor.rowcount == 0:
            raise EventNotFound(event_id)

    async def delete_event(self, event_id: str) -> None:
        """Delete one event."""
        try:
            db = await self._db()
            cursor = await db.execute(
                "DELETE FROM calendar_events WHERE id = ?", (event_id,)
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise StoreFailure(f"Failed to delete event {event_id}: {e}") from e

        if cursor.rowcount == 0:
            raise EventNotFound(event_id)

    async def count_linked(self) -> dict:
        """Event counts per sync source."""
        try:
            db = await self._db()
            cursor = await db.execute(
                "SELECT sync_source, COUNT(*) AS total FROM calendar_events GROUP BY sync_source"
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StoreFailure(f"Failed to count events: {e}") from e
        counts = {source: 0 for source in SYNC_SOURCES}
        for row in rows:
            counts[row["sync_source"]] = row["total"]
        return counts

"""Core reconciliation engine between the local store and Google Calendar."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import aiosqlite

from finsync.config import get_settings
from finsync.database import record_sync_log
from finsync.store import EventStore
from finsync.sync import signals
from finsync.sync.converter import convert_provider_event, provider_event_date
from finsync.sync.errors import EventNotFound, ProviderUnavailable, SyncError
from finsync.sync.google_calendar import build_event_body, build_provider_client
from finsync.sync.matching import find_duplicate

logger = logging.getLogger(__name__)

# Fields a user may set directly; sync metadata is managed by the engine.
USER_FIELDS = ("title", "type", "date", "time", "amount", "description")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncEngine:
    """
    Reconciles provider events into the local store.

    One engine owns one reentrancy guard: at most one import cycle runs at a
    time, and a cycle requested while another is in flight returns at once.
    """

    def __init__(
        self,
        store: Optional[EventStore] = None,
        provider=None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store or EventStore()
        self.provider = provider
        self.settings = get_settings()
        self._clock = clock or _utc_now
        self._cycle_lock = asyncio.Lock()
        self.last_result: Optional[dict] = None

    @property
    def integration_enabled(self) -> bool:
        return self.provider is not None

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_lock.locked()

    def sync_window(self, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
        """The [time_min, time_max] range fetched from the provider."""
        now = now or self._clock()
        return (
            now - timedelta(days=self.settings.sync_window_past_days),
            now + timedelta(days=self.settings.sync_window_future_days),
        )

    # ------------------------------------------------------------------
    # Import cycle
    # ------------------------------------------------------------------

    async def run_once(self) -> int:
        """Run one import cycle. Returns the number of newly created events."""
        if self._cycle_lock.locked():
            logger.info("Import cycle already in progress, skipping")
            return 0

        if not self.integration_enabled:
            logger.debug("Provider integration inactive, skipping import cycle")
            return 0

        async with self._cycle_lock:
            return await self._import_cycle(self.provider)

    async def _import_cycle(self, provider) -> int:
        """Internal: one reconciliation pass (must be called under the cycle lock)."""
        now = self._clock()
        time_min, time_max = self.sync_window(now)
        tally = {"imported": 0, "linked": 0, "skipped": 0, "conflicts": 0, "failed": 0}

        try:
            provider_events = await self._fetch_provider_events(provider, time_min, time_max)
        except ProviderUnavailable as e:
            logger.warning(f"Import cycle aborted, provider unavailable: {e}")
            self.last_result = {
                **tally,
                "status": "provider_unavailable",
                "error": str(e),
                "finished_at": self._clock().isoformat(),
            }
            await self._audit("import", "failure", {"error": str(e)})
            return 0

        logger.info(f"Reconciling {len(provider_events)} provider events")

        for provider_event in provider_events:
            try:
                outcome = await self._reconcile_event(provider, provider_event, now)
            except Exception as e:
                logger.error(f"Error importing provider event {provider_event.get('id')}: {e}")
                outcome = "failed"
            tally[outcome] += 1

        imported = tally["imported"]
        if imported:
            signals.emit_refresh(imported)

        self.last_result = {
            **tally,
            "status": "success",
            "fetched": len(provider_events),
            "finished_at": self._clock().isoformat(),
        }
        await self._audit("import", "success", dict(tally))

        logger.info(
            f"Import completed: {imported} imported, {tally['linked']} linked, "
            f"{tally['skipped']} skipped, {tally['conflicts']} conflicts, {tally['failed']} failed"
        )
        return imported

    async def _fetch_provider_events(self, provider, time_min: datetime, time_max: datetime) -> list[dict]:
        try:
            return await asyncio.to_thread(provider.list_events, time_min, time_max)
        except Exception as e:
            raise ProviderUnavailable(f"Could not list provider events: {e}") from e

    async def _reconcile_event(self, provider, provider_event: dict, now: datetime) -> str:
        """Reconcile one provider event. Returns the tally bucket it lands in."""
        provider_id = provider_event.get("id")
        if not provider_id:
            return "skipped"

        event_day = provider_event_date(provider_event)
        if event_day is None or abs((event_day - now.date()).days) > self.settings.sync_max_distance_days:
            return "skipped"

        converted = convert_provider_event(provider_event)
        if converted is None:
            return "skipped"

        if await self.store.find_by_provider_id(provider_id):
            logger.debug(f"Skipping already imported provider event {provider_id}")
            return "skipped"

        # The inferred type is advisory and must not veto a content match.
        candidate = {**converted, "type": None}
        same_day = await self.store.list_events_on_date(converted["date"])
        duplicate = find_duplicate(candidate, same_day)

        if duplicate is not None:
            if not duplicate.get("provider_id"):
                linked = await self.link_event(duplicate["id"], provider_id)
                return "linked" if linked else "failed"

            logger.warning(
                f"Provider event {provider_id} matches event {duplicate['id']}, "
                f"already linked to {duplicate['provider_id']}; dropping"
            )
            await self._audit(
                "conflict",
                "skipped",
                {"linked_provider_id": duplicate["provider_id"], "title": converted["title"]},
                event_id=duplicate["id"],
                provider_id=provider_id,
            )
            return "conflicts"

        created = await self.store.create_event({
            **converted,
            "provider_id": provider_id,
            "provider_calendar_id": getattr(provider, "calendar_id", None),
            "sync_source": "provider",
            "sync_version": 1,
            "last_synced_at": now.isoformat(),
        })
        logger.info(f"Imported provider event {provider_id} as {created['id']}: {created['title']}")
        return "imported"

    # ------------------------------------------------------------------
    # Linkage
    # ------------------------------------------------------------------

    async def link_event(self, event_id: str, provider_id: str) -> bool:
        """
        Attach a provider id to a local event and mark it bidirectional.

        Only sync metadata is written. Never raises: a missed link is retried
        naturally by the next cycle's content match.
        """
        try:
            event = await self.store.get_event(event_id)
            if event is None:
                logger.warning(f"Cannot link missing event {event_id} to {provider_id}")
                return False

            current = event.get("provider_id")
            if current and current != provider_id:
                logger.warning(
                    f"Event {event_id} is already linked to {current}, refusing to relink to {provider_id}"
                )
                return False

            if current == provider_id:
                # Already linked; only the sync timestamp moves
                updates = {"last_synced_at": self._clock().isoformat()}
            else:
                updates = {
                    "provider_id": provider_id,
                    "sync_source": "bidirectional",
                    "last_synced_at": self._clock().isoformat(),
                }
            await self.store.update_event(event_id, updates, touch=False)
        except SyncError as e:
            logger.error(f"Failed to link event {event_id} to {provider_id}: {e}")
            return False

        logger.info(f"Linked event {event_id} to provider event {provider_id}")
        await self._audit("link", "success", {}, event_id=event_id, provider_id=provider_id)
        return True

    # ------------------------------------------------------------------
    # User-initiated operations
    # ------------------------------------------------------------------

    async def delete_event(self, event_id: str) -> bool:
        """
        Delete an event, provider copy first.

        Provider failures are logged and ignored; the local delete is the
        authoritative step and its failures propagate.
        """
        event = await self.store.get_event(event_id)
        if event is None:
            raise EventNotFound(event_id)

        provider_id = event.get("provider_id")
        provider = self.provider
        provider_deleted = False

        if provider_id and provider is not None:
            try:
                await asyncio.to_thread(provider.delete_event, provider_id)
                provider_deleted = True
                logger.info(f"Deleted provider event {provider_id}")
            except Exception as e:
                logger.error(f"Provider deletion failed for {provider_id}, deleting locally anyway: {e}")

        await self.store.delete_event(event_id)
        logger.info(f"Deleted event {event_id}")

        await self._audit(
            "delete",
            "success",
            {"provider_deleted": provider_deleted},
            event_id=event_id,
            provider_id=provider_id,
        )
        return True

    async def add_event(self, fields: dict, export: bool = False) -> dict:
        """Create a native event; optionally push it to the provider."""
        record = {key: fields.get(key) for key in USER_FIELDS}
        record.update(
            sync_source="native",
            sync_version=1,
            last_synced_at=self._clock().isoformat(),
        )
        created = await self.store.create_event(record)
        logger.info(f"Added event {created['id']}: {created['title']}")

        if export:
            exported = await self.export_event(created["id"])
            if exported is not None:
                return exported
        return created

    async def edit_event(self, event_id: str, fields: dict) -> dict:
        """Apply user edits and bump the sync version."""
        event = await self.store.get_event(event_id)
        if event is None:
            raise EventNotFound(event_id)

        updates = {key: value for key, value in fields.items() if key in USER_FIELDS}
        if not updates:
            return event

        updates["sync_version"] = (event.get("sync_version") or 0) + 1
        await self.store.update_event(event_id, updates)

        updated = await self.store.get_event(event_id)
        if updated is None:
            raise EventNotFound(event_id)
        return updated

    async def export_event(self, event_id: str) -> Optional[dict]:
        """
        Create a provider copy of a local event and link the two.

        Holds the cycle lock so an import cycle cannot see the new provider
        event before the link exists. Returns None if nothing was exported.
        """
        if not self.integration_enabled:
            logger.info(f"Provider integration inactive, not exporting event {event_id}")
            return None

        async with self._cycle_lock:
            event = await self.store.get_event(event_id)
            if event is None:
                raise EventNotFound(event_id)
            if event.get("provider_id"):
                return event

            provider = self.provider
            try:
                body = build_event_body(event)
                created = await asyncio.to_thread(provider.insert_event, body)
            except Exception as e:
                logger.error(f"Failed to export event {event_id}: {e}")
                return None

            if not await self.link_event(event_id, created["id"]):
                return None
            return await self.store.get_event(event_id)

    async def _audit(
        self,
        action: str,
        status: str,
        details: dict,
        event_id: Optional[str] = None,
        provider_id: Optional[str] = None,
    ) -> None:
        try:
            await record_sync_log(action, status, details, event_id=event_id, provider_id=provider_id)
        except aiosqlite.Error as e:
            logger.error(f"Could not write sync log entry for {action}: {e}")


# Process-wide engine used by the scheduler and the API.
_engine: Optional[SyncEngine] = None


def get_engine() -> SyncEngine:
    """Get the shared engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = SyncEngine()
    return _engine


async def configure_engine() -> SyncEngine:
    """(Re)attach a provider client built from the current credentials."""
    engine = get_engine()
    engine.provider = await build_provider_client()
    return engine


def reset_engine() -> None:
    global _engine
    _engine = None

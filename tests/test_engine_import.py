"""Tests for the import cycle."""

import asyncio
import json
from datetime import datetime, timezone

import pytest

from finsync.database import get_database
from finsync.sync import signals

FIXED_NOW = datetime(2024, 4, 20, 12, 0, tzinfo=timezone.utc)


def _provider_event(event_id, summary="Rent", day="2024-05-01", **extra):
    event = {"id": event_id, "summary": summary, "start": {"date": day}}
    event.update(extra)
    return event


async def _log_entries(action):
    db = await get_database()
    cursor = await db.execute(
        "SELECT * FROM sync_log WHERE action = ? ORDER BY id", (action,)
    )
    return [dict(row) for row in await cursor.fetchall()]


# =============================================================================
# Import and idempotency
# =============================================================================

class TestImport:
    @pytest.mark.asyncio
    async def test_new_provider_event_is_imported(self, engine, fake_provider):
        fake_provider.events = [_provider_event("g1", summary="Pago tarjeta")]

        assert await engine.run_once() == 1

        event = await engine.store.find_by_provider_id("g1")
        assert event["title"] == "Pago tarjeta"
        assert event["type"] == "payment"
        assert event["sync_source"] == "provider"
        assert event["sync_version"] == 1
        assert event["provider_calendar_id"] == "primary"
        assert event["last_synced_at"] == FIXED_NOW.isoformat()

    @pytest.mark.asyncio
    async def test_second_cycle_is_idempotent(self, engine, fake_provider):
        fake_provider.events = [
            _provider_event("g1"),
            _provider_event("g2", summary="Sueldo", day="2024-05-03"),
        ]

        assert await engine.run_once() == 2
        assert await engine.run_once() == 0

        events = await engine.store.list_events("2024-04-01", "2024-06-01")
        assert len(events) == 2
        assert engine.last_result["skipped"] == 2

    @pytest.mark.asyncio
    async def test_window_is_centered_on_now(self, engine, fake_provider):
        await engine.run_once()

        time_min, time_max = fake_provider.list_calls[0]
        assert (FIXED_NOW - time_min).days == 30
        assert (time_max - FIXED_NOW).days == 60

    @pytest.mark.asyncio
    async def test_events_far_from_now_are_skipped(self, engine, fake_provider):
        fake_provider.events = [
            _provider_event("far-past", day="2024-01-01"),
            _provider_event("far-future", day="2024-08-01"),
            _provider_event("near", day="2024-07-15"),
        ]

        assert await engine.run_once() == 1
        assert await engine.store.find_by_provider_id("far-past") is None
        assert await engine.store.find_by_provider_id("far-future") is None
        assert await engine.store.find_by_provider_id("near") is not None

    @pytest.mark.asyncio
    async def test_far_event_never_links_matching_native_event(self, engine, fake_provider):
        local = await engine.store.create_event({"title": "Rent", "date": "2024-08-01"})
        fake_provider.events = [_provider_event("far-future", day="2024-08-01")]

        assert await engine.run_once() == 0

        untouched = await engine.store.get_event(local["id"])
        assert untouched["provider_id"] is None
        assert untouched["sync_source"] == "native"
        assert await engine.store.find_by_provider_id("far-future") is None
        assert engine.last_result["linked"] == 0

    @pytest.mark.asyncio
    async def test_unmappable_and_anonymous_events_are_skipped(self, engine, fake_provider):
        fake_provider.events = [
            {"id": "no-start", "summary": "Ghost"},
            {"summary": "No id", "start": {"date": "2024-05-01"}},
            _provider_event("cancelled", status="cancelled"),
        ]

        assert await engine.run_once() == 0
        assert engine.last_result["skipped"] == 3

    @pytest.mark.asyncio
    async def test_refresh_signal_fires_only_when_something_was_imported(self, engine, fake_provider):
        received = []
        signals.subscribe(received.append)

        await engine.run_once()
        assert received == []

        fake_provider.events = [_provider_event("g1"), _provider_event("g2", summary="Water")]
        await engine.run_once()
        assert received == [2]
        assert signals.get_last_notification()["message"] == "2 events imported from Google Calendar"


# =============================================================================
# Linking existing local events
# =============================================================================

class TestContentLink:
    @pytest.mark.asyncio
    async def test_native_event_is_linked_not_duplicated(self, engine, fake_provider):
        local = await engine.store.create_event({"title": "Rent", "date": "2024-05-01", "time": None})
        fake_provider.events = [_provider_event("g1")]

        assert await engine.run_once() == 0

        events = await engine.store.list_events("2024-05-01", "2024-05-01")
        assert len(events) == 1
        assert events[0]["id"] == local["id"]
        assert events[0]["provider_id"] == "g1"
        assert events[0]["sync_source"] == "bidirectional"
        assert engine.last_result["linked"] == 1
        assert len(await _log_entries("link")) == 1

    @pytest.mark.asyncio
    async def test_link_ignores_advisory_type(self, engine, fake_provider):
        # Converted type would be "payment"; the local one is "income"
        local = await engine.store.create_event(
            {"title": "Pago luz", "date": "2024-05-04", "type": "income"}
        )
        fake_provider.events = [_provider_event("g3", summary="Pago luz", day="2024-05-04")]

        assert await engine.run_once() == 0
        linked = await engine.store.find_by_provider_id("g3")
        assert linked["id"] == local["id"]
        assert linked["type"] == "income"

    @pytest.mark.asyncio
    async def test_timed_event_links_on_matching_time(self, engine, fake_provider):
        await engine.store.create_event({"title": "Call bank", "date": "2024-05-02", "time": "10:00:00"})
        fake_provider.events = [
            {"id": "g1", "summary": "Call bank", "start": {"dateTime": "2024-05-02T10:00:00Z"}}
        ]

        assert await engine.run_once() == 0
        assert (await engine.store.find_by_provider_id("g1"))["sync_source"] == "bidirectional"

    @pytest.mark.asyncio
    async def test_boilerplate_description_still_links(self, engine, fake_provider):
        await engine.store.create_event(
            {"title": "Rent", "date": "2024-05-01", "description": "Monthly"}
        )
        fake_provider.events = [
            _provider_event("g1", description="Monthly\nImported from Google Calendar")
        ]

        assert await engine.run_once() == 0
        assert await engine.store.find_by_provider_id("g1") is not None

    @pytest.mark.asyncio
    async def test_second_match_for_linked_event_is_a_conflict(self, engine, fake_provider):
        local = await engine.store.create_event({"title": "Rent", "date": "2024-05-01"})
        fake_provider.events = [_provider_event("g1"), _provider_event("g2")]

        assert await engine.run_once() == 0

        assert (await engine.store.get_event(local["id"]))["provider_id"] == "g1"
        assert await engine.store.find_by_provider_id("g2") is None
        assert engine.last_result["conflicts"] == 1

        conflicts = await _log_entries("conflict")
        assert len(conflicts) == 1
        assert conflicts[0]["provider_id"] == "g2"
        assert json.loads(conflicts[0]["details"])["linked_provider_id"] == "g1"


# =============================================================================
# Failures and concurrency
# =============================================================================

class TestCycleFailures:
    @pytest.mark.asyncio
    async def test_provider_unavailable_aborts_cycle(self, engine, fake_provider):
        fake_provider.list_error = ConnectionError("network down")

        assert await engine.run_once() == 0
        assert engine.last_result["status"] == "provider_unavailable"
        assert not engine.cycle_in_progress

        entries = await _log_entries("import")
        assert entries[-1]["status"] == "failure"

    @pytest.mark.asyncio
    async def test_one_failing_event_does_not_abort_the_rest(self, engine, fake_provider, monkeypatch):
        fake_provider.events = [
            _provider_event("bad", summary="Broken"),
            _provider_event("good", summary="Water"),
        ]
        original_create = engine.store.create_event

        async def flaky_create(fields):
            if fields.get("provider_id") == "bad":
                raise RuntimeError("boom")
            return await original_create(fields)

        monkeypatch.setattr(engine.store, "create_event", flaky_create)

        assert await engine.run_once() == 1
        assert engine.last_result["failed"] == 1
        assert await engine.store.find_by_provider_id("good") is not None

    @pytest.mark.asyncio
    async def test_event_deleted_before_link_counts_as_failed(self, engine, fake_provider, monkeypatch):
        local = await engine.store.create_event({"title": "Rent", "date": "2024-05-01"})
        fake_provider.events = [
            _provider_event("g1"),
            _provider_event("g2", summary="Water", day="2024-05-05"),
        ]
        original_list = engine.store.list_events_on_date
        original_delete = engine.store.delete_event

        async def list_then_delete(day):
            rows = await original_list(day)
            if any(row["id"] == local["id"] for row in rows):
                await original_delete(local["id"])
            return rows

        monkeypatch.setattr(engine.store, "list_events_on_date", list_then_delete)

        assert await engine.run_once() == 1
        assert engine.last_result["failed"] == 1
        assert engine.last_result["imported"] == 1

        assert await engine.store.get_event(local["id"]) is None
        assert await engine.store.find_by_provider_id("g1") is None
        assert await engine.store.find_by_provider_id("g2") is not None
        assert await engine.store.list_events("2024-05-01", "2024-05-01") == []

    @pytest.mark.asyncio
    async def test_cycle_is_skipped_while_another_runs(self, engine, fake_provider):
        fake_provider.events = [_provider_event("g1")]

        async with engine._cycle_lock:
            assert engine.cycle_in_progress
            assert await engine.run_once() == 0

        assert fake_provider.list_calls == []
        assert await engine.store.find_by_provider_id("g1") is None

    @pytest.mark.asyncio
    async def test_concurrent_cycles_import_once(self, engine, fake_provider):
        fake_provider.events = [_provider_event("g1")]

        results = await asyncio.gather(engine.run_once(), engine.run_once())

        assert sorted(results) == [0, 1]
        assert len(await engine.store.list_events("2024-05-01", "2024-05-01")) == 1

    @pytest.mark.asyncio
    async def test_no_provider_means_no_cycle(self, test_db):
        from finsync.sync.engine import SyncEngine

        engine = SyncEngine(provider=None)
        assert engine.integration_enabled is False
        assert await engine.run_once() == 0
        assert engine.last_result is None

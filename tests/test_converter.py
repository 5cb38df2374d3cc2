"""Tests for Google Calendar to local event conversion."""

import pytest

from finsync.sync.converter import (
    DEFAULT_TITLE,
    classify_event_type,
    convert_provider_event,
    provider_event_date,
)


class TestClassifyEventType:
    @pytest.mark.parametrize(
        "title,expected",
        [
            ("Pago tarjeta Visa", "payment"),
            ("Credit card bill", "payment"),
            ("Sueldo", "income"),
            ("Payday", "income"),
            ("Vencimiento monotributo", "deadline"),
            ("Recordatorio", "reminder"),
            ("Dentist", "reminder"),
        ],
    )
    def test_keywords(self, title, expected):
        assert classify_event_type(title, None) == expected

    def test_description_is_scanned(self):
        assert classify_event_type("Visa", "cuota 3 de 12") == "payment"

    def test_payment_wins_over_income(self):
        assert classify_event_type("Cobro y pago", None) == "payment"


class TestConvertProviderEvent:
    def test_all_day_event(self):
        converted = convert_provider_event(
            {"id": "g1", "summary": "Rent", "start": {"date": "2024-05-01"}}
        )
        assert converted == {
            "title": "Rent",
            "date": "2024-05-01",
            "time": None,
            "description": None,
            "type": "reminder",
        }

    def test_timed_event_keeps_wall_clock_time(self):
        converted = convert_provider_event(
            {
                "id": "g2",
                "summary": "Sueldo",
                "description": "  Monthly salary ",
                "start": {"dateTime": "2024-05-03T09:30:00-03:00"},
            }
        )
        assert converted["date"] == "2024-05-03"
        assert converted["time"] == "09:30"
        assert converted["description"] == "Monthly salary"
        assert converted["type"] == "income"

    def test_utc_suffix(self):
        converted = convert_provider_event(
            {"id": "g3", "summary": "Call", "start": {"dateTime": "2024-05-03T14:05:00Z"}}
        )
        assert converted["time"] == "14:05"

    def test_missing_title_gets_placeholder(self):
        converted = convert_provider_event({"id": "g4", "start": {"date": "2024-05-01"}})
        assert converted["title"] == DEFAULT_TITLE

    def test_converted_event_has_no_provider_id(self):
        converted = convert_provider_event(
            {"id": "g1", "summary": "Rent", "start": {"date": "2024-05-01"}}
        )
        assert "provider_id" not in converted

    def test_no_start_is_unmappable(self):
        assert convert_provider_event({"id": "g5", "summary": "Ghost"}) is None

    def test_malformed_start_is_unmappable(self):
        assert convert_provider_event({"id": "g6", "start": {"date": "not-a-date"}}) is None
        assert convert_provider_event({"id": "g7", "start": {"dateTime": "2024-05-01Tnoon"}}) is None

    def test_cancelled_event_is_skipped(self):
        assert convert_provider_event(
            {"id": "g8", "status": "cancelled", "start": {"date": "2024-05-01"}}
        ) is None


def test_provider_event_date():
    assert provider_event_date({"start": {"date": "2024-05-01"}}).isoformat() == "2024-05-01"
    assert provider_event_date({"start": {}}) is None

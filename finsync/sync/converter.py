"""Conversion of Google Calendar events into local events."""

import logging
from datetime import date, datetime
from typing import Optional

from finsync.sync.errors import UnmappableEvent

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "(No title)"
DEFAULT_TYPE = "reminder"

# Checked in order; the first vocabulary with a hit wins.
TYPE_KEYWORDS = (
    ("payment", ("pago", "tarjeta", "cuota", "payment", "installment", "bill")),
    ("income", ("cobro", "ingreso", "sueldo", "salary", "income", "payday")),
    ("deadline", ("cierre", "vencimiento", "deadline", "expiration")),
    ("reminder", ("recordatorio", "reminder")),
)


def classify_event_type(title: Optional[str], description: Optional[str]) -> str:
    """Guess the financial event type from its text. Advisory only."""
    combined = f"{title or ''} {description or ''}".lower()
    for event_type, keywords in TYPE_KEYWORDS:
        if any(keyword in combined for keyword in keywords):
            return event_type
    return DEFAULT_TYPE


def _start_date(provider_event: dict) -> date:
    start = provider_event.get("start") or {}
    raw = start.get("date") or start.get("dateTime")
    if not raw:
        raise UnmappableEvent(f"Event {provider_event.get('id')} has no start")
    try:
        return date.fromisoformat(str(raw)[:10])
    except ValueError as e:
        raise UnmappableEvent(f"Event {provider_event.get('id')} has a malformed start {raw!r}") from e


def _start_time(provider_event: dict) -> Optional[str]:
    """Wall-clock HH:MM of a timed event, as the provider wrote it."""
    start_dt = (provider_event.get("start") or {}).get("dateTime")
    if not start_dt or (provider_event.get("start") or {}).get("date"):
        return None
    text = str(start_dt)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise UnmappableEvent(f"Event {provider_event.get('id')} has a malformed dateTime {start_dt!r}") from e
    return parsed.strftime("%H:%M")


def provider_event_date(provider_event: dict) -> Optional[date]:
    """Effective calendar day of a provider event, or None if it has none."""
    try:
        return _start_date(provider_event)
    except UnmappableEvent:
        return None


def convert_provider_event(provider_event: dict) -> Optional[dict]:
    """
    Map a Google Calendar event onto the local event schema.

    Returns None when the event cannot be represented locally. The result does
    not carry the provider id; callers attach it when they persist the event.
    """
    if provider_event.get("status") == "cancelled":
        return None

    try:
        event_date = _start_date(provider_event)
        event_time = _start_time(provider_event)
    except UnmappableEvent as e:
        logger.debug(f"Skipping unmappable provider event: {e}")
        return None

    title = (provider_event.get("summary") or "").strip() or DEFAULT_TITLE
    description = (provider_event.get("description") or "").strip() or None

    return {
        "title": title,
        "date": event_date.isoformat(),
        "time": event_time,
        "description": description,
        "type": classify_event_type(title, description),
    }

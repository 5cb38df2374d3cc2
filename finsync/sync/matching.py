"""
Duplicate detection between provider events and local events.

Matching is exact after normalization: identity first, then a fixed set of
content checks. There is no fuzzy text similarity.
"""

import re
from datetime import date, datetime
from typing import Iterable, Optional

# Phrases the calendar apps inject into descriptions when copying events across.
PROVIDER_BOILERPLATE = (
    "Importado de Google Calendar",
    "Imported from Google Calendar",
    "Exportado a Google Calendar",
    "Exported to Google Calendar",
)

_NO_SPECIFIC_TIME = {"", "00:00", "00:00:00"}
_WHITESPACE = re.compile(r"\s+")


def _day(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()[:10] or None


def normalize_time(value: Optional[str]) -> Optional[str]:
    """Drop a seconds component: '09:30:00' -> '09:30'."""
    if value is None:
        return None
    text = str(value).strip()
    parts = text.split(":")
    if len(parts) >= 3:
        return ":".join(parts[:2])
    return text


def times_similar(time_a: Optional[str], time_b: Optional[str]) -> bool:
    """Compare two times of day, treating empty/midnight as 'no specific time'."""
    if time_a is None and time_b is None:
        return True
    if time_a is None or time_b is None:
        present = time_b if time_a is None else time_a
        return str(present).strip() in _NO_SPECIFIC_TIME
    return normalize_time(time_a) == normalize_time(time_b)


def clean_description(description: Optional[str]) -> str:
    """Strip provider boilerplate and collapse whitespace."""
    if not description:
        return ""
    cleaned = description
    for phrase in PROVIDER_BOILERPLATE:
        cleaned = cleaned.replace(phrase, "")
    return _WHITESPACE.sub(" ", cleaned).strip()


def descriptions_similar(desc_a: Optional[str], desc_b: Optional[str]) -> bool:
    if not desc_a and not desc_b:
        return True
    if not desc_a or not desc_b:
        return False
    return clean_description(desc_a) == clean_description(desc_b)


def types_compatible(type_a: Optional[str], type_b: Optional[str]) -> bool:
    if not type_a or not type_b:
        return True
    return type_a == type_b


def events_match(candidate: dict, existing: dict) -> bool:
    """Decide whether two events describe the same logical calendar entry."""
    candidate_pid = candidate.get("provider_id")
    existing_pid = existing.get("provider_id")

    # Identity beats content whenever both sides are linked.
    if candidate_pid and existing_pid:
        return candidate_pid == existing_pid
    if candidate_pid and candidate_pid == existing_pid:
        return True

    title_a = (candidate.get("title") or "").strip()
    title_b = (existing.get("title") or "").strip()
    if title_a != title_b:
        return False

    if _day(candidate.get("date")) != _day(existing.get("date")):
        return False

    if not times_similar(candidate.get("time"), existing.get("time")):
        return False

    if not descriptions_similar(candidate.get("description"), existing.get("description")):
        return False

    return types_compatible(candidate.get("type"), existing.get("type"))


def find_duplicate(candidate: dict, existing_events: Iterable[dict]) -> Optional[dict]:
    """
    Return the first existing event matching the candidate, or None.

    Callers pass only the events on the candidate's day; the date check inside
    events_match is a second line, not the filter.
    """
    for existing in existing_events:
        if events_match(candidate, existing):
            return existing
    return None

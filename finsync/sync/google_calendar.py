"""Google Calendar API wrapper."""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from finsync.config import get_settings
from finsync.database import get_setting

logger = logging.getLogger(__name__)

ACCESS_TOKEN_SETTING = "provider_access_token"


def _rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        return value.isoformat() + "Z"
    return value.isoformat()


class GoogleCalendarClient:
    """Wrapper around the events resource of one Google calendar."""

    def __init__(self, access_token: str, calendar_id: Optional[str] = None):
        """Initialize with an externally supplied access token."""
        self.settings = get_settings()
        self.calendar_id = calendar_id or self.settings.google_calendar_id
        self.credentials = Credentials(token=access_token)
        self.service = build("calendar", "v3", credentials=self.credentials, cache_discovery=False)

    def list_events(self, time_min: datetime, time_max: datetime) -> list[dict]:
        """
        List single event instances that start inside [time_min, time_max].

        Recurring series are expanded by the API and deleted events are left
        out. Results come back in start-time order across all pages.
        """
        request_params = {
            "calendarId": self.calendar_id,
            "timeMin": _rfc3339(time_min),
            "timeMax": _rfc3339(time_max),
            "maxResults": self.settings.provider_max_results,
            "singleEvents": True,
            "orderBy": "startTime",
            "showDeleted": False,
        }

        all_events = []
        page_token = None

        while True:
            if page_token:
                request_params["pageToken"] = page_token

            result = self.service.events().list(**request_params).execute()
            all_events.extend(result.get("items", []))

            page_token = result.get("nextPageToken")
            if not page_token:
                break

        return all_events

    def insert_event(self, event_data: dict) -> dict:
        """Create an event on the calendar."""
        return self.service.events().insert(
            calendarId=self.calendar_id,
            body=event_data,
        ).execute()

    def delete_event(self, event_id: str) -> bool:
        """Delete an event."""
        try:
            self.service.events().delete(
                calendarId=self.calendar_id,
                eventId=event_id,
            ).execute()
            return True
        except HttpError as e:
            if e.resp.status in (404, 410):
                # Already gone on the provider side
                logger.info(f"Provider event {event_id} already deleted")
                return True
            raise


def build_event_body(event: dict) -> dict:
    """
    Build a Google Calendar event body from a local event.

    Events without a time of day become all-day events; timed events get the
    configured default duration.
    """
    settings = get_settings()

    body = {
        "summary": event.get("title") or "",
        "description": event.get("description") or "",
    }

    event_day = date.fromisoformat(str(event["date"])[:10])
    event_time = (event.get("time") or "").strip()

    if not event_time:
        body["start"] = {"date": event_day.isoformat()}
        body["end"] = {"date": (event_day + timedelta(days=1)).isoformat()}
        return body

    hour, minute = (int(part) for part in event_time.split(":")[:2])
    start = datetime(event_day.year, event_day.month, event_day.day, hour, minute)
    end = start + timedelta(minutes=settings.default_event_duration_minutes)
    body["start"] = {"dateTime": start.isoformat(), "timeZone": settings.event_timezone}
    body["end"] = {"dateTime": end.isoformat(), "timeZone": settings.event_timezone}
    return body


async def get_access_token() -> Optional[str]:
    """Stored access token, falling back to the bootstrap token from settings."""
    stored = await get_setting(ACCESS_TOKEN_SETTING)
    if stored and stored.get("value_plain"):
        return stored["value_plain"]
    return get_settings().google_access_token


async def build_provider_client() -> Optional[GoogleCalendarClient]:
    """Create a client when integration is enabled and a token is available."""
    settings = get_settings()
    if not settings.provider_integration_enabled:
        logger.info("Provider integration disabled by configuration")
        return None

    token = await get_access_token()
    if not token:
        logger.info("No provider access token configured, integration inactive")
        return None

    return GoogleCalendarClient(token)

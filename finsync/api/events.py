"""Calendar event API endpoints."""

import logging
import datetime
from datetime import timedelta
from typing import Optional, Union

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from finsync.sync.engine import get_engine
from finsync.sync.errors import EventNotFound, StoreFailure

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/events", tags=["events"])


class EventCreate(BaseModel):
    """Request to add an event."""
    title: str
    date: datetime.date
    type: Optional[str] = None
    time: Optional[str] = None
    amount: Optional[float] = None
    description: Optional[str] = None
    export: bool = False


class EventUpdate(BaseModel):
    """Partial update of an event's user fields."""
    title: Optional[str] = None
    date: Optional[datetime.date] = None
    type: Optional[str] = None
    time: Optional[str] = None
    amount: Optional[float] = None
    description: Optional[str] = None


class EventResponse(BaseModel):
    """Calendar event."""
    id: str
    title: str
    type: Optional[str] = None
    date: str
    time: Optional[str] = None
    amount: Optional[Union[int, float]] = None
    description: Optional[str] = None
    provider_id: Optional[str] = None
    provider_calendar_id: Optional[str] = None
    sync_source: str
    sync_version: int
    last_synced_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


def _store_error(e: StoreFailure) -> HTTPException:
    logger.error(f"Event store failure: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Event store unavailable",
    )


@router.get("", response_model=list[EventResponse])
async def list_events(start: Optional[datetime.date] = None, end: Optional[datetime.date] = None):
    """List events in a date range (defaults to the current sync window)."""
    engine = get_engine()
    today = datetime.date.today()
    start = start or today - timedelta(days=engine.settings.sync_window_past_days)
    end = end or today + timedelta(days=engine.settings.sync_window_future_days)

    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end must not be before start",
        )

    try:
        events = await engine.store.list_events(start, end)
    except StoreFailure as e:
        raise _store_error(e)
    return [EventResponse(**event) for event in events]


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def add_event(request: EventCreate):
    """Add a native event, optionally exporting it to Google Calendar."""
    engine = get_engine()
    fields = request.model_dump(exclude={"export"})
    if not fields["title"].strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="title must not be empty",
        )

    try:
        event = await engine.add_event(fields, export=request.export)
    except StoreFailure as e:
        raise _store_error(e)
    return EventResponse(**event)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(event_id: str):
    """Get a single event."""
    engine = get_engine()
    try:
        event = await engine.store.get_event(event_id)
    except StoreFailure as e:
        raise _store_error(e)

    if not event:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event not found",
        )
    return EventResponse(**event)


@router.patch("/{event_id}", response_model=EventResponse)
async def update_event(event_id: str, request: EventUpdate):
    """Edit an event's user fields."""
    engine = get_engine()
    fields = request.model_dump(exclude_unset=True)
    if "title" in fields and not (fields["title"] or "").strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="title must not be empty",
        )
    if "date" in fields and fields["date"] is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="date must not be null",
        )

    try:
        event = await engine.edit_event(event_id, fields)
    except EventNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event not found",
        )
    except StoreFailure as e:
        raise _store_error(e)
    return EventResponse(**event)


@router.delete("/{event_id}")
async def delete_event(event_id: str):
    """Delete an event here and, if linked, in Google Calendar."""
    engine = get_engine()
    try:
        await engine.delete_event(event_id)
    except EventNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event not found",
        )
    except StoreFailure as e:
        raise _store_error(e)

    return {"status": "ok", "message": "Event deleted"}

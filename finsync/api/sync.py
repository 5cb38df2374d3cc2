"""Sync status and control API endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from finsync.database import delete_setting, get_database, is_sync_paused, set_setting
from finsync.jobs.scheduler import get_scheduler
from finsync.sync import signals
from finsync.sync.engine import configure_engine, get_engine
from finsync.sync.errors import StoreFailure
from finsync.sync.google_calendar import ACCESS_TOKEN_SETTING
from finsync.utils.tasks import create_background_task

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sync", tags=["sync"])


class SyncStatusResponse(BaseModel):
    """Overall sync status."""
    sync_paused: bool = False
    integration_enabled: bool
    cycle_in_progress: bool
    next_sync_at: Optional[str] = None
    events_native: int
    events_provider: int
    events_bidirectional: int
    last_result: Optional[dict] = None
    last_notification: Optional[dict] = None


class SyncLogEntry(BaseModel):
    """Sync log entry."""
    id: int
    event_id: Optional[str] = None
    provider_id: Optional[str] = None
    action: str
    status: str
    details: Optional[str] = None
    created_at: str


class SyncLogResponse(BaseModel):
    """Sync log response."""
    entries: list[SyncLogEntry]
    total: int
    page: int
    page_size: int


class CredentialsRequest(BaseModel):
    """Google Calendar access token."""
    access_token: str


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status():
    """Get overall sync status."""
    engine = get_engine()
    try:
        counts = await engine.store.count_linked()
    except StoreFailure as e:
        logger.error(f"Could not count events: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Event store unavailable",
        )

    scheduler = get_scheduler()
    job = scheduler.get_job("periodic_sync") if scheduler else None
    next_run = getattr(job, "next_run_time", None)

    return SyncStatusResponse(
        sync_paused=await is_sync_paused(),
        integration_enabled=engine.integration_enabled,
        cycle_in_progress=engine.cycle_in_progress,
        next_sync_at=next_run.isoformat() if next_run else None,
        events_native=counts["native"],
        events_provider=counts["provider"],
        events_bidirectional=counts["bidirectional"],
        last_result=engine.last_result,
        last_notification=signals.get_last_notification(),
    )


@router.get("/log", response_model=SyncLogResponse)
async def get_sync_log(
    page: int = 1,
    page_size: int = 50,
    action: Optional[str] = None,
    status_filter: Optional[str] = None,
):
    """Get sync activity log, newest first."""
    page = max(page, 1)
    page_size = min(max(page_size, 1), 500)
    db = await get_database()

    where = " WHERE 1 = 1"
    params = []

    if action:
        where += " AND action = ?"
        params.append(action)

    if status_filter:
        where += " AND status = ?"
        params.append(status_filter)

    cursor = await db.execute(f"SELECT COUNT(*) FROM sync_log{where}", params)
    total = (await cursor.fetchone())[0]

    cursor = await db.execute(
        f"SELECT * FROM sync_log{where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
        [*params, page_size, (page - 1) * page_size],
    )
    rows = await cursor.fetchall()

    entries = [
        SyncLogEntry(
            id=row["id"],
            event_id=row["event_id"],
            provider_id=row["provider_id"],
            action=row["action"],
            status=row["status"],
            details=row["details"],
            created_at=row["created_at"],
        )
        for row in rows
    ]

    return SyncLogResponse(
        entries=entries,
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("/run")
async def trigger_sync():
    """Trigger an import cycle in the background."""
    engine = get_engine()
    if not engine.integration_enabled:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Google Calendar integration is not configured",
        )

    if engine.cycle_in_progress:
        return {"status": "ok", "message": "Import already in progress"}

    create_background_task(engine.run_once(), "manual_import")
    return {"status": "ok", "message": "Import triggered"}


@router.post("/pause")
async def pause_sync():
    """Pause periodic imports."""
    await set_setting("sync_paused", "true")
    logger.warning("Periodic sync paused")
    return {"status": "ok", "sync_paused": True}


@router.post("/resume")
async def resume_sync():
    """Resume periodic imports."""
    await set_setting("sync_paused", "false")
    logger.info("Periodic sync resumed")
    return {"status": "ok", "sync_paused": False}


@router.put("/credentials")
async def set_credentials(request: CredentialsRequest):
    """Store a Google Calendar access token and reconnect the engine."""
    token = request.access_token.strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="access_token must not be empty",
        )

    await set_setting(ACCESS_TOKEN_SETTING, token)
    engine = await configure_engine()
    logger.info("Google Calendar credentials updated")
    return {"status": "ok", "integration_enabled": engine.integration_enabled}


@router.delete("/credentials")
async def clear_credentials():
    """Forget the stored access token."""
    await delete_setting(ACCESS_TOKEN_SETTING)
    engine = await configure_engine()
    logger.info("Google Calendar credentials cleared")
    return {"status": "ok", "integration_enabled": engine.integration_enabled}

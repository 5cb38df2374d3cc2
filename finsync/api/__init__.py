"""API endpoints module."""

from fastapi import APIRouter

from finsync.api.events import router as events_router
from finsync.api.sync import router as sync_router

api_router = APIRouter(prefix="/api")

api_router.include_router(events_router)
api_router.include_router(sync_router)

__all__ = ["api_router"]

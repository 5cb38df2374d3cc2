"""View-refresh signal emitted after a cycle imports events."""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from finsync.utils.tasks import create_background_task

logger = logging.getLogger(__name__)

_subscribers: list[Callable[[int], object]] = []
_last_notification: Optional[dict] = None


def subscribe(callback: Callable[[int], object]) -> None:
    """Register a callback receiving the imported count. May be sync or async."""
    if callback not in _subscribers:
        _subscribers.append(callback)


def unsubscribe(callback: Callable[[int], object]) -> None:
    if callback in _subscribers:
        _subscribers.remove(callback)


def clear_subscribers() -> None:
    global _last_notification
    _subscribers.clear()
    _last_notification = None


def get_last_notification() -> Optional[dict]:
    """The most recent transient success message, for the presentation layer."""
    return dict(_last_notification) if _last_notification else None


def emit_refresh(imported_count: int) -> None:
    """Notify subscribers without waiting for them."""
    global _last_notification

    _last_notification = {
        "message": f"{imported_count} events imported from Google Calendar",
        "imported": imported_count,
        "created_at": datetime.utcnow().isoformat(),
    }

    for callback in list(_subscribers):
        name = getattr(callback, "__name__", "refresh_subscriber")
        try:
            result = callback(imported_count)
        except Exception as e:
            logger.exception(f"Refresh subscriber {name} failed: {e}")
            continue
        if asyncio.iscoroutine(result):
            create_background_task(result, f"refresh_{name}")

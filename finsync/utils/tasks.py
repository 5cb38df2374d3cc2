"""Helpers for fire-and-forget background coroutines."""

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)

# Strong references so pending tasks are not garbage collected mid-flight.
_pending_tasks: set[asyncio.Task] = set()


def create_background_task(coro: Coroutine[Any, Any, Any], task_name: str = "background_task") -> asyncio.Task:
    """
    Schedule a coroutine on the running loop without awaiting it.

    Failures are logged rather than lost; the caller never sees them.
    """
    async def _guarded():
        try:
            await coro
        except Exception as e:
            logger.exception(f"Background task '{task_name}' failed: {e}")

    task = asyncio.create_task(_guarded(), name=task_name)
    _pending_tasks.add(task)
    task.add_done_callback(_pending_tasks.discard)
    return task


def pending_task_count() -> int:
    """Number of background tasks that have not finished yet."""
    return len(_pending_tasks)

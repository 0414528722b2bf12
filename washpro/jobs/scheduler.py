"""
Background Job Scheduler
========================

Runs the periodic maintenance jobs inside the API process:

  - ``autoRefund.run_auto_refund``     refund paid jobs nobody picked up
  - ``shiftTimeout.run_shift_timeout`` close shifts of silent cleaners

Started and stopped from the FastAPI lifespan when
``BACKGROUND_JOBS_ENABLED`` is set.  Each run gets its own session and
commits on success; a failing run is logged and retried on the next tick.

With several API instances, enable it on one of them only, or run the
jobs from cron through their CLI entry points instead.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from washpro.core.config import settings

from .autoRefund import run_auto_refund
from .shiftTimeout import run_shift_timeout

logger = logging.getLogger(__name__)

PERIODIC_JOBS: tuple[tuple[str, Callable[[AsyncSession], Awaitable[Any]]], ...] = (
    ("auto_refund", run_auto_refund),
    ("shift_timeout", run_shift_timeout),
)

# Internal state
_scheduler_task: asyncio.Task | None = None
_running: bool = False


async def run_once() -> None:
    """Run every periodic job once, each in its own session."""
    from washpro.api.deps import async_session_factory

    for name, job in PERIODIC_JOBS:
        async with async_session_factory() as db:
            try:
                await job(db)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.exception("Background job %s failed", name)


async def _run_scheduler(interval_seconds: int) -> None:
    logger.info("Background scheduler started (interval=%ds)", interval_seconds)
    while _running:
        await run_once()
        await asyncio.sleep(interval_seconds)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def start_scheduler(interval_seconds: int | None = None) -> None:
    """Start the background scheduler task."""
    global _scheduler_task, _running

    if _scheduler_task is not None:
        logger.warning("Background scheduler is already running")
        return

    _running = True
    _scheduler_task = asyncio.create_task(
        _run_scheduler(interval_seconds or settings.background_job_interval_seconds)
    )


async def stop_scheduler() -> None:
    """Stop the background scheduler task."""
    global _scheduler_task, _running

    _running = False

    if _scheduler_task is not None:
        _scheduler_task.cancel()
        try:
            await _scheduler_task
        except asyncio.CancelledError:
            pass
        _scheduler_task = None
        logger.info("Background scheduler stopped")

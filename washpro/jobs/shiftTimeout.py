"""
Shift Inactivity Timeout -- Scheduled Job.

Closes the shift of any on-duty cleaner whose app stopped reporting a
location for ``SHIFT_INACTIVITY_MINUTES`` (10 by default) and takes them
off duty, so forgotten shifts do not keep collecting pool jobs.

Busy cleaners are left alone: they finish or release their job first.

Usage::

    python -m washpro.jobs.shiftTimeout
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from washpro.core.config import settings
from washpro.events import jobEvents
from washpro.models import Cleaner, CleanerStatus
from washpro.models.base import utcnow
from washpro.services import cleanerService

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "inactivity_timeout"


@dataclass
class ShiftTimeoutResult:
    checked: int = 0
    closed: list[uuid.UUID] = field(default_factory=list)
    failed: list[uuid.UUID] = field(default_factory=list)


async def find_inactive_cleaners(db: AsyncSession, older_than: datetime) -> list[Cleaner]:
    result = await db.execute(
        select(Cleaner).where(
            Cleaner.status == CleanerStatus.ON_DUTY,
            or_(
                Cleaner.last_location_update.is_(None),
                Cleaner.last_location_update < older_than,
            ),
        )
    )
    return list(result.unique().scalars().all())


async def run_shift_timeout(
    db: AsyncSession,
    now: Optional[datetime] = None,
) -> ShiftTimeoutResult:
    """Take inactive on-duty cleaners off duty.

    Args:
        db: Async database session; the caller commits.
        now: Optional clock override (for testing).
    """
    cutoff = (now or utcnow()) - timedelta(minutes=settings.shift_inactivity_minutes)
    cleaners = await find_inactive_cleaners(db, cutoff)
    result = ShiftTimeoutResult(checked=len(cleaners))

    for cleaner in cleaners:
        cleaner_id = cleaner.id
        try:
            async with db.begin_nested():
                shift = await cleanerService.get_open_shift(db, cleaner_id)
                if shift is not None:
                    await cleanerService.close_shift(db, cleaner, shift, reason=TIMEOUT_REASON)
                cleaner.status = CleanerStatus.OFF_DUTY
                await db.flush()
        except Exception:
            logger.exception("Shift timeout failed for cleaner %s", cleaner_id)
            result.failed.append(cleaner_id)
            continue
        result.closed.append(cleaner_id)
        logger.info(
            "Cleaner %s taken off duty after %d min without a location update",
            cleaner_id,
            settings.shift_inactivity_minutes,
        )
        await jobEvents.publish_shift_change(db, cleaner, on_duty=False)

    return result


# ---------------------------------------------------------------------------
# CLI entry point (for manual runs / simple cron)
# ---------------------------------------------------------------------------

async def _cli_main() -> None:
    from washpro.api.deps import async_session_factory

    async with async_session_factory() as session:
        try:
            result = await run_shift_timeout(session)
            await session.commit()
            logger.info("Shift timeout completed: %s", result)
        except Exception:
            await session.rollback()
            logger.exception("Shift timeout failed")
            raise


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(_cli_main())

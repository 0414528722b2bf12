"""
Unattended Job Auto-Refund -- Scheduled Job.

A paid job that no cleaner has picked up within ``AUTO_REFUND_MINUTES``
(15 by default) is refunded in full:

1. Stripe refund of the whole PaymentIntent (reason ``requested_by_customer``).
2. Job moved to ``refunded_unattended`` with the refund id and reason.
3. ``refund`` ledger entry written and the financial record marked refunded.
4. ``job_update`` broadcast and the customer notified.

Each job is refunded inside its own savepoint.  A failure on one job rolls
back that job only, is logged, and the run continues with the next one;
the failed job stays ``paid`` and is retried on the next run.

Runs every minute from ``jobs.scheduler`` or by hand::

    python -m washpro.jobs.autoRefund
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from washpro.core.config import settings
from washpro.models.base import utcnow
from washpro.services import jobService

logger = logging.getLogger(__name__)


@dataclass
class AutoRefundResult:
    checked: int = 0
    refunded: list[uuid.UUID] = field(default_factory=list)
    failed: list[uuid.UUID] = field(default_factory=list)


async def run_auto_refund(
    db: AsyncSession,
    now: Optional[datetime] = None,
) -> AutoRefundResult:
    """Refund every paid, unassigned job older than the cut-off.

    Args:
        db: Async database session; the caller commits.
        now: Optional clock override (for testing).
    """
    cutoff = (now or utcnow()) - timedelta(minutes=settings.auto_refund_minutes)
    jobs = await jobService.find_expired_paid_jobs(db, cutoff)
    result = AutoRefundResult(checked=len(jobs))

    for job in jobs:
        job_id = job.id
        try:
            # Each job commits or rolls back on its own
            async with db.begin_nested():
                await jobService.refund_unattended_job(db, job)
        except Exception:
            logger.exception("Auto-refund failed for job %s", job_id)
            result.failed.append(job_id)
            continue
        result.refunded.append(job_id)
        logger.info(
            "Auto-refunded job %s (%s, AED %s)",
            job_id,
            job.car_plate_number,
            job.total_amount,
        )

    if result.checked:
        logger.info(
            "Auto-refund run: checked=%d refunded=%d failed=%d",
            result.checked,
            len(result.refunded),
            len(result.failed),
        )
    return result


# ---------------------------------------------------------------------------
# CLI entry point (for manual runs / simple cron)
# ---------------------------------------------------------------------------

async def _cli_main() -> None:
    from washpro.api.deps import async_session_factory

    async with async_session_factory() as session:
        try:
            result = await run_auto_refund(session)
            await session.commit()
            logger.info("Auto-refund completed: %s", result)
        except Exception:
            await session.rollback()
            logger.exception("Auto-refund failed")
            raise


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(_cli_main())

"""
Job and Cleaner Events
======================

Fan-out layer between the job flow and the outside world.  Each publisher
pushes the change over the WebSocket (``job_update`` / ``cleaner_update``)
and, where a human should be alerted, through web push.

Delivery is best effort: the database change has already happened when a
publisher runs, so a Redis or FCM outage is logged and never raised back
into the request.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from washpro.models import Cleaner, Job, JobStatus
from washpro.models.base import as_utc
from washpro.services import notificationService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def _iso(value: Any) -> Optional[str]:
    return as_utc(value).isoformat() if value is not None else None


def _money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else f"{Decimal(value):.2f}"


def _float(value: Optional[Decimal]) -> Optional[float]:
    return None if value is None else float(value)


def build_job_payload(job: Job) -> dict[str, Any]:
    """Serialise a job the way the web app expects it on the socket."""
    cleaner = job.cleaner
    return {
        "id": str(job.id),
        "companyId": str(job.company_id),
        "customerId": str(job.customer_id) if job.customer_id else None,
        "cleanerId": str(job.cleaner_id) if job.cleaner_id else None,
        "cleanerName": cleaner.user.display_name if cleaner is not None else None,
        "status": job.status.value,
        "carPlateNumber": job.car_plate_number,
        "carPlateEmirate": job.car_plate_emirate,
        "carPlateCode": job.car_plate_code,
        "locationAddress": job.location_address,
        "locationLatitude": _float(job.location_latitude),
        "locationLongitude": _float(job.location_longitude),
        "parkingNumber": job.parking_number,
        "price": _money(job.price),
        "platformFee": _money(job.platform_fee),
        "taxAmount": _money(job.tax_amount),
        "tipAmount": _money(job.tip_amount),
        "totalAmount": _money(job.total_amount),
        "paymentMethod": job.payment_method.value,
        "assignmentMode": job.assignment_mode.value,
        "receiptNumber": job.receipt_number,
        "proofPhotoUrl": job.proof_photo_url,
        "rating": job.rating,
        "createdAt": _iso(job.created_at),
        "paidAt": _iso(job.paid_at),
        "assignedAt": _iso(job.assigned_at),
        "startedAt": _iso(job.started_at),
        "completedAt": _iso(job.completed_at),
        "cancelledAt": _iso(job.cancelled_at),
        "refundedAt": _iso(job.refunded_at),
    }


def build_cleaner_payload(cleaner: Cleaner) -> dict[str, Any]:
    return {
        "cleanerId": str(cleaner.id),
        "companyId": str(cleaner.company_id),
        "status": cleaner.status.value,
        "latitude": _float(cleaner.current_latitude),
        "longitude": _float(cleaner.current_longitude),
        "lastLocationUpdate": _iso(cleaner.last_location_update),
    }


# ---------------------------------------------------------------------------
# Publishers
# ---------------------------------------------------------------------------

async def publish_job_update(
    db: AsyncSession,
    job: Job,
    *,
    previous_status: Optional[JobStatus] = None,
    cleaner_name: Optional[str] = None,
) -> None:
    """Broadcast the job's new state and notify its customer."""
    from washpro.realtime.socketServer import broadcast_job_update

    logger.info(
        "Job %s: %s -> %s",
        job.id,
        previous_status.value if previous_status else None,
        job.status.value,
    )

    try:
        await broadcast_job_update(
            build_job_payload(job),
            job_id=job.id,
            customer_id=job.customer_id,
            cleaner_id=job.cleaner_id,
            company_id=job.company_id,
        )
    except Exception:
        logger.warning("job_update broadcast failed for job %s", job.id, exc_info=True)

    if previous_status == job.status:
        return
    try:
        await notificationService.notify_job_status_change(db, job, cleaner_name)
    except Exception:
        logger.warning("Status push failed for job %s", job.id, exc_info=True)


async def publish_new_job(
    db: AsyncSession,
    job: Job,
    cleaner_user_ids: Sequence[uuid.UUID],
) -> None:
    """Alert on-duty cleaners that a paid job is waiting in the pool."""
    if not cleaner_user_ids:
        logger.info("Job %s is waiting in the pool with no cleaner on duty", job.id)
        return
    try:
        await notificationService.notify_new_job(db, job, cleaner_user_ids)
    except Exception:
        logger.warning("New-job push failed for job %s", job.id, exc_info=True)


async def publish_job_assigned(db: AsyncSession, job: Job, cleaner: Cleaner) -> None:
    try:
        await notificationService.notify_job_assigned_to_cleaner(db, job, cleaner.user_id)
    except Exception:
        logger.warning("Assignment push failed for job %s", job.id, exc_info=True)


async def publish_cleaner_update(cleaner: Cleaner, *, skip_sid: Optional[str] = None) -> None:
    """Broadcast a cleaner's status and position to their company."""
    from washpro.realtime.socketServer import broadcast_cleaner_update

    try:
        await broadcast_cleaner_update(
            build_cleaner_payload(cleaner),
            cleaner_id=cleaner.id,
            company_id=cleaner.company_id,
            skip_sid=skip_sid,
        )
    except Exception:
        logger.warning("cleaner_update broadcast failed for cleaner %s", cleaner.id, exc_info=True)


async def publish_shift_change(db: AsyncSession, cleaner: Cleaner, on_duty: bool) -> None:
    await publish_cleaner_update(cleaner)
    try:
        await notificationService.notify_shift_change(db, cleaner, on_duty)
    except Exception:
        logger.warning("Shift push failed for cleaner %s", cleaner.id, exc_info=True)

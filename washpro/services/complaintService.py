"""
Complaint Service
=================

Customer complaints and refund requests about a job.

A complaint is filed by the customer who booked the job and is routed to
the job's company; the platform admin sees every complaint.  Staff move it
through ``pending -> in_progress -> resolved``; ``refund_complaint``
refunds the job through the normal refund path and closes the complaint as
``refunded``.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from washpro.models import Complaint, ComplaintStatus, ComplaintType, User, UserRole
from washpro.models.base import utcnow
from washpro.services import jobService
from washpro.services.jobStateManager import ActorType

logger = logging.getLogger(__name__)

_STAFF_STATUSES = {
    ComplaintStatus.PENDING,
    ComplaintStatus.IN_PROGRESS,
    ComplaintStatus.RESOLVED,
}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ComplaintNotFoundError(Exception):
    def __init__(self, complaint_id: object) -> None:
        self.complaint_id = complaint_id
        super().__init__(f"Complaint '{complaint_id}' not found.")


class ComplaintError(Exception):
    """Raised when a complaint action is not allowed."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def generate_reference_number(now: Optional[datetime] = None) -> str:
    """``CMP-YYYYMMDD-XXXXXX`` with a random hex suffix."""
    now = now or utcnow()
    return f"CMP-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


def _actor_type(user: User) -> ActorType:
    return ActorType.ADMIN if user.role == UserRole.ADMIN else ActorType.COMPANY_ADMIN


def _ensure_staff_access(complaint: Complaint, user: User) -> None:
    if user.role == UserRole.ADMIN:
        return
    if user.role == UserRole.COMPANY_ADMIN and user.company_id == complaint.company_id:
        return
    raise ComplaintError("Not authorized for this complaint")


# ---------------------------------------------------------------------------
# Customer side
# ---------------------------------------------------------------------------

async def create_complaint(
    db: AsyncSession,
    *,
    customer_id: uuid.UUID,
    job_id: uuid.UUID,
    complaint_type: ComplaintType,
    description: str,
) -> Complaint:
    """File a complaint about one of the customer's own jobs.

    Raises:
        JobNotFoundError: Unknown job.
        NotAuthorizedError: The job belongs to someone else.
        ValueError: Empty description.
    """
    description = (description or "").strip()
    if not description:
        raise ValueError("Description is required")

    job = await jobService.get_job(db, job_id)
    if job is None:
        raise jobService.JobNotFoundError(job_id)
    if job.customer_id != customer_id:
        raise jobService.NotAuthorizedError()

    complaint = Complaint(
        id=uuid.uuid4(),
        reference_number=generate_reference_number(),
        job_id=job.id,
        company_id=job.company_id,
        customer_id=customer_id,
        type=complaint_type,
        description=description,
        status=ComplaintStatus.PENDING,
        customer_email=job.customer_email,
        customer_phone=job.customer_phone,
    )
    db.add(complaint)
    await db.flush()

    logger.info(
        "Complaint %s (%s) filed for job %s",
        complaint.reference_number,
        complaint_type.value,
        job.id,
    )
    return complaint


async def list_customer_complaints(
    db: AsyncSession,
    customer_id: uuid.UUID,
) -> Sequence[Complaint]:
    result = await db.execute(
        select(Complaint)
        .where(Complaint.customer_id == customer_id)
        .order_by(Complaint.created_at.desc())
    )
    return result.scalars().all()


# ---------------------------------------------------------------------------
# Staff side
# ---------------------------------------------------------------------------

async def get_complaint(db: AsyncSession, complaint_id: uuid.UUID) -> Complaint:
    complaint = await db.get(Complaint, complaint_id)
    if complaint is None:
        raise ComplaintNotFoundError(complaint_id)
    return complaint


async def list_complaints(
    db: AsyncSession,
    *,
    company_id: Optional[uuid.UUID] = None,
    status: Optional[ComplaintStatus] = None,
) -> Sequence[Complaint]:
    """Newest first; ``company_id=None`` lists every company (admin view)."""
    stmt = select(Complaint)
    if company_id is not None:
        stmt = stmt.where(Complaint.company_id == company_id)
    if status is not None:
        stmt = stmt.where(Complaint.status == status)
    stmt = stmt.order_by(Complaint.created_at.desc())
    return (await db.execute(stmt)).scalars().all()


async def update_complaint_status(
    db: AsyncSession,
    complaint_id: uuid.UUID,
    *,
    status: ComplaintStatus,
    user: User,
    resolution: Optional[str] = None,
) -> Complaint:
    """Move a complaint between pending, in_progress and resolved.

    ``refunded`` is only reachable through ``refund_complaint`` and is
    final.

    Raises:
        ComplaintNotFoundError: Unknown complaint.
        ComplaintError: Not the complaint's company, target ``refunded``,
            or the complaint was already refunded.
    """
    complaint = await get_complaint(db, complaint_id)
    _ensure_staff_access(complaint, user)

    if status not in _STAFF_STATUSES:
        raise ComplaintError("Use the refund action to refund a complaint")
    if complaint.status == ComplaintStatus.REFUNDED:
        raise ComplaintError("Complaint has already been refunded")

    complaint.status = status
    if resolution is not None:
        complaint.resolution = resolution
    if status == ComplaintStatus.RESOLVED:
        complaint.resolved_at = utcnow()
        complaint.resolved_by = user.id
    await db.flush()

    logger.info(
        "Complaint %s -> %s by user %s",
        complaint.reference_number,
        status.value,
        user.id,
    )
    return complaint


async def refund_complaint(
    db: AsyncSession,
    complaint_id: uuid.UUID,
    *,
    user: User,
    resolution: Optional[str] = None,
) -> Complaint:
    """Refund the complained-about job and close the complaint.

    Raises:
        ComplaintNotFoundError: Unknown complaint.
        ComplaintError: Not the complaint's company, or already refunded.
        InvalidTransitionError: The job cannot be refunded from its state.
        PaymentError: Stripe refused the refund (nothing is changed).
    """
    complaint = await get_complaint(db, complaint_id)
    _ensure_staff_access(complaint, user)
    if complaint.status == ComplaintStatus.REFUNDED:
        raise ComplaintError("Complaint has already been refunded")

    job = await jobService.refund_job(
        db,
        complaint.job_id,
        actor_type=_actor_type(user),
        company_id=user.company_id,
        reason=f"Complaint {complaint.reference_number}",
    )

    now = utcnow()
    complaint.status = ComplaintStatus.REFUNDED
    complaint.refunded_at = now
    complaint.refunded_by = user.id
    complaint.stripe_refund_id = job.stripe_refund_id
    complaint.resolved_at = now
    complaint.resolved_by = user.id
    complaint.resolution = resolution or "Full refund issued"
    await db.flush()

    logger.info("Complaint %s refunded (job %s)", complaint.reference_number, job.id)
    return complaint

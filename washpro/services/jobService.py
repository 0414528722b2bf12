"""
Job Service
===========

Business logic for the car-wash job lifecycle.  All operations use async
SQLAlchemy sessions and enforce:

  - Fees computed server-side from the company's fee package (never
    trusted from the client)
  - State machine enforcement via jobStateManager
  - Cleaner ownership for start / complete / release
  - Ledger and financial records on payment and refund
  - A ``job_update`` event (socket + push) on every state change

Key functions:
  - create_job_for_payment -- job in pending_payment + Stripe PaymentIntent
  - mark_job_paid          -- idempotent paid transition, then auto-assign
  - auto_assign_job        -- direct request first, then closest cleaner
  - accept_job / start_job / complete_job / release_job
  - cancel_job / refund_job / refund_unattended_job
  - rate_job
  - listings for customers, cleaners, companies and plate tracking
"""

from __future__ import annotations

import logging
import math
import random
import string
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from washpro.core.config import settings
from washpro.events import jobEvents
from washpro.integrations.stripe import paymentService
from washpro.integrations.stripe.paymentService import PaymentIntentResult
from washpro.models import (
    AssignmentMode,
    Cleaner,
    CleanerStatus,
    Company,
    Job,
    JobStatus,
    PaymentMethod,
    TransactionDirection,
    TransactionType,
)
from washpro.models.base import as_utc, utcnow
from washpro.services import financialService
from washpro.services.cleanerService import list_company_cleaners, redeem_payment_token
from washpro.services.companyService import (
    CompanyNotFoundError,
    cleaner_serves_point,
    company_fees,
)
from washpro.services.feeCalculator import VAT_RATE, Number, round2
from washpro.services.geoService import find_closest, is_valid_coordinate
from washpro.services.jobStateManager import ActorType, validate_transition

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (JobStatus.ASSIGNED, JobStatus.IN_PROGRESS)


# ---------------------------------------------------------------------------
# Pagination helper
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PaginatedResult:
    """Generic container for a page of results plus metadata."""

    items: Sequence
    total_items: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.total_items == 0:
            return 0
        return math.ceil(self.total_items / self.page_size)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class JobNotFoundError(Exception):
    """Raised when a job cannot be found by ID or payment intent."""

    def __init__(self, job_id: object) -> None:
        self.job_id = job_id
        super().__init__(f"Job with id '{job_id}' not found.")


class InvalidTransitionError(Exception):
    """Raised when a job status transition is not allowed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class NotAuthorizedError(Exception):
    """Raised when the caller does not own the job it is acting on."""

    def __init__(self, message: str = "Not authorized for this job.") -> None:
        self.message = message
        super().__init__(message)


class RatingError(Exception):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def normalize_plate(plate: str) -> str:
    """Plates are stored upper-case without whitespace so tracking matches
    however the customer typed them."""
    return "".join(plate.split()).upper()


def generate_receipt_number() -> str:
    chars = string.ascii_uppercase + string.digits
    suffix = "".join(random.choices(chars, k=6))
    return f"WP-{utcnow():%Y%m%d}-{suffix}"


def to_minor_units(amount: Number) -> int:
    """AED amount to fils for Stripe."""
    return int((round2(amount) * 100).to_integral_value())


def _apply_transition(job: Job, target: JobStatus, actor_type: ActorType) -> JobStatus:
    old_status = job.status
    result = validate_transition(old_status, target, actor_type)
    if not result.allowed:
        raise InvalidTransitionError(result.reason or "Transition not allowed.")
    job.status = target
    logger.info(
        "Job %s transitioned: %s -> %s (actor=%s)",
        job.id,
        old_status.value,
        target.value,
        actor_type.value,
    )
    return old_status


def _cleaner_name(cleaner: Optional[Cleaner]) -> Optional[str]:
    if cleaner is None or cleaner.user is None:
        return None
    return cleaner.user.display_name


def _free_cleaner(cleaner: Optional[Cleaner]) -> None:
    if cleaner is not None and cleaner.status == CleanerStatus.BUSY:
        cleaner.status = CleanerStatus.ON_DUTY


def _running_average(current: Decimal, count: int, value: Number) -> Decimal:
    total = Decimal(str(current or 0)) * count + Decimal(str(value))
    return round2(total / (count + 1))


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_job(db: AsyncSession, job_id: uuid.UUID) -> Optional[Job]:
    """Fetch a single job with its company and cleaner loaded.

    Returns None if the job is not found.
    """
    result = await db.execute(select(Job).where(Job.id == job_id))
    return result.unique().scalar_one_or_none()


async def _lock_job(db: AsyncSession, job_id: uuid.UUID) -> Job:
    stmt = select(Job).where(Job.id == job_id).with_for_update(of=Job)
    job = (await db.execute(stmt)).unique().scalar_one_or_none()
    if job is None:
        raise JobNotFoundError(job_id)
    return job


async def get_job_by_payment_intent(
    db: AsyncSession,
    payment_intent_id: str,
) -> Optional[Job]:
    result = await db.execute(
        select(Job)
        .where(Job.stripe_payment_intent_id == payment_intent_id)
        .with_for_update(of=Job)
    )
    return result.unique().scalar_one_or_none()


# ---------------------------------------------------------------------------
# Booking and payment
# ---------------------------------------------------------------------------

async def create_job_for_payment(
    db: AsyncSession,
    *,
    company_id: uuid.UUID,
    car_plate_number: str,
    location_address: str,
    location_latitude: float,
    location_longitude: float,
    customer_id: Optional[uuid.UUID] = None,
    customer_phone: Optional[str] = None,
    customer_email: Optional[str] = None,
    parking_number: Optional[str] = None,
    car_plate_emirate: Optional[str] = None,
    car_plate_code: Optional[str] = None,
    tip_amount: Number = 0,
    requested_cleaner_email: Optional[str] = None,
    payment_token: Optional[str] = None,
) -> tuple[Job, PaymentIntentResult]:
    """Price a booking, open a Stripe PaymentIntent and store the job.

    The amount charged is the company's fee breakdown total plus the tip
    and 5% VAT on the tip.

    Args:
        db: Async database session.
        company_id: Company the customer picked.
        car_plate_number: Plate as typed by the customer.
        location_address: Human-readable address.
        location_latitude: Customer latitude.
        location_longitude: Customer longitude.
        customer_id: Logged-in customer, if any.
        tip_amount: Optional tip for the cleaner.
        requested_cleaner_email: Ask for a specific cleaner (direct mode).
        payment_token: Token from a cleaner's QR code; consumed here and
            routes the job to that cleaner like a direct request.

    Returns:
        ``(job, payment_intent)``; the client confirms the payment with
        ``payment_intent.client_secret``.

    Raises:
        CompanyNotFoundError: Unknown company.
        ValueError: Inactive company, bad coordinates, empty plate or
            negative tip.
        PaymentTokenError: QR token invalid, used, expired or issued by
            another company.
        PaymentError: Stripe refused to create the intent.
    """
    company = await db.get(Company, company_id)
    if company is None:
        raise CompanyNotFoundError(company_id)
    if not company.is_active:
        raise ValueError("This company is not accepting bookings")
    if not is_valid_coordinate(location_latitude, location_longitude):
        raise ValueError("Invalid coordinates")
    plate = normalize_plate(car_plate_number or "")
    if not plate:
        raise ValueError("Car plate number is required")
    tip = round2(tip_amount or 0)
    if tip < 0:
        raise ValueError("Tip cannot be negative")

    requested = (requested_cleaner_email or "").strip().lower() or None
    if payment_token:
        token_cleaner = await redeem_payment_token(db, payment_token, company.id)
        requested = token_cleaner.user.email.lower()

    fees = company_fees(company)
    tip_vat = round2(tip * VAT_RATE)
    total = round2(fees.total + tip + tip_vat)

    job_id = uuid.uuid4()
    intent = await paymentService.create_payment_intent(
        job_id,
        to_minor_units(total),
        currency=settings.stripe_currency,
        metadata={
            "company_id": str(company.id),
            "car_plate_number": plate,
        },
    )

    job = Job(
        id=job_id,
        customer_id=customer_id,
        company_id=company.id,
        car_plate_number=plate,
        car_plate_emirate=car_plate_emirate,
        car_plate_code=car_plate_code,
        location_address=location_address,
        location_latitude=Decimal(str(location_latitude)),
        location_longitude=Decimal(str(location_longitude)),
        parking_number=parking_number,
        customer_phone=customer_phone,
        customer_email=customer_email,
        price=fees.car_wash_price,
        platform_fee=fees.platform_fee,
        tax_amount=round2(fees.vat + tip_vat),
        tip_amount=tip,
        total_amount=total,
        payment_method=PaymentMethod.CARD,
        stripe_payment_intent_id=intent.id,
        status=JobStatus.PENDING_PAYMENT,
        assignment_mode=AssignmentMode.DIRECT if requested else AssignmentMode.POOL,
        requested_cleaner_email=requested,
    )
    job.company = company
    job.cleaner = None
    db.add(job)
    await db.flush()

    logger.info(
        "Job created: %s (plate=%s, company=%s, total=%s, intent=%s)",
        job.id,
        plate,
        company.id,
        total,
        intent.id,
    )
    return job, intent


async def mark_job_paid(
    db: AsyncSession,
    payment_intent_id: str,
    *,
    paid_at: Optional[datetime] = None,
) -> Optional[Job]:
    """Apply a successful payment to its job.

    Idempotent: a job already past ``pending_payment`` is returned as is,
    so webhook retries and the client-side confirm can race safely.

    Returns:
        The job, or ``None`` when no job carries the payment intent.
    """
    job = await get_job_by_payment_intent(db, payment_intent_id)
    if job is None:
        logger.warning("Payment %s does not match any job", payment_intent_id)
        return None
    if job.status == JobStatus.CANCELLED:
        await _refund_late_payment(db, job)
        return job
    if job.status != JobStatus.PENDING_PAYMENT:
        logger.info("Job %s already %s; payment ignored", job.id, job.status.value)
        return job

    old_status = _apply_transition(job, JobStatus.PAID, ActorType.SYSTEM)
    job.paid_at = paid_at or utcnow()
    job.receipt_number = job.receipt_number or generate_receipt_number()
    await db.flush()

    await financialService.create_job_financial_record(db, job, job.paid_at)
    await financialService.record_transaction(
        db,
        transaction_type=TransactionType.CUSTOMER_PAYMENT,
        direction=TransactionDirection.CREDIT,
        amount=job.total_amount,
        job_id=job.id,
        company_id=job.company_id,
        stripe_payment_intent_id=payment_intent_id,
        description=f"Payment for car wash {job.car_plate_number}",
    )
    await jobEvents.publish_job_update(db, job, previous_status=old_status)

    await auto_assign_job(db, job)
    return job


async def _refund_late_payment(db: AsyncSession, job: Job) -> None:
    """Give the money back when a payment lands on a cancelled booking.

    The job stays ``cancelled``; the payment and its refund are both
    written to the ledger.  Repeated deliveries refund only once.
    """
    if job.stripe_refund_id is not None:
        logger.info("Late payment for cancelled job %s already refunded", job.id)
        return

    refund = await paymentService.refund_payment(
        job.stripe_payment_intent_id,
        reason="requested_by_customer",
        metadata={"job_id": str(job.id), "note": "Paid after cancellation"},
    )
    job.refunded_at = utcnow()
    job.stripe_refund_id = refund.id
    await db.flush()

    for transaction_type, direction, description in (
        (
            TransactionType.CUSTOMER_PAYMENT,
            TransactionDirection.CREDIT,
            f"Payment for cancelled car wash {job.car_plate_number}",
        ),
        (
            TransactionType.REFUND,
            TransactionDirection.DEBIT,
            f"Refund for car wash {job.car_plate_number}: paid after cancellation",
        ),
    ):
        await financialService.record_transaction(
            db,
            transaction_type=transaction_type,
            direction=direction,
            amount=job.total_amount,
            job_id=job.id,
            company_id=job.company_id,
            stripe_payment_intent_id=job.stripe_payment_intent_id,
            stripe_refund_id=refund.id if transaction_type == TransactionType.REFUND else None,
            description=description,
        )
    logger.warning("Job %s was paid after cancellation; refunded %s", job.id, refund.id)


async def confirm_payment(
db: AsyncSession, payment_intent_id: str) -> Job:
    """Client-side confirmation after the Stripe redirect.

    Retrieves the intent and, when it has succeeded, applies the same
    transition as the webhook.

    Raises:
        JobNotFoundError: No job for the payment intent.
        PaymentError: Stripe lookup failed.
    """
    job = await get_job_by_payment_intent(db, payment_intent_id)
    if job is None:
        raise JobNotFoundError(payment_intent_id)
    intent = await paymentService.retrieve_payment_intent(payment_intent_id)
    if intent.status == "succeeded":
        return await mark_job_paid(db, payment_intent_id) or job
    logger.info("Payment %s not yet succeeded (status=%s)", payment_intent_id, intent.status)
    return job


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------

async def _assign(db: AsyncSession, job: Job, cleaner: Cleaner, actor_type: ActorType) -> None:
    old_status = _apply_transition(job, JobStatus.ASSIGNED, actor_type)
    job.cleaner = cleaner
    job.assigned_at = utcnow()
    cleaner.status = CleanerStatus.BUSY
    await db.flush()
    await jobEvents.publish_job_update(
        db, job, previous_status=old_status, cleaner_name=_cleaner_name(cleaner)
    )
    await jobEvents.publish_cleaner_update(cleaner)


async def auto_assign_job(db: AsyncSession, job: Job) -> Optional[Cleaner]:
    """Assign a freshly paid job to a cleaner if one is at hand.

    Direct bookings go to the requested cleaner when they are on duty.
    Otherwise the closest on-duty cleaner of the company within the
    nearby radius (50 m) whose geofences cover the job wins.  When nobody
    qualifies the job stays ``paid`` in the pool and the company's on-duty
    cleaners are alerted.

    Returns:
        The assigned cleaner, or ``None``.
    """
    if job.status != JobStatus.PAID:
        return None

    lat = float(job.location_latitude)
    lng = float(job.location_longitude)
    on_duty = await list_company_cleaners(db, job.company_id, CleanerStatus.ON_DUTY)
    eligible = [
        c for c in on_duty
        if c.is_active and await cleaner_serves_point(db, c, lat, lng)
    ]

    chosen: Optional[Cleaner] = None
    if job.assignment_mode == AssignmentMode.DIRECT and job.requested_cleaner_email:
        chosen = next(
            (
                c for c in eligible
                if c.user is not None
                and c.user.email.lower() == job.requested_cleaner_email
            ),
            None,
        )
        if chosen is None:
            logger.info(
                "Requested cleaner %s unavailable for job %s; falling back to pool",
                job.requested_cleaner_email,
                job.id,
            )

    if chosen is None:
        closest = find_closest(eligible, lat, lng, settings.nearby_radius_meters)
        if closest is not None:
            chosen = closest.item

    if chosen is None:
        logger.info("No cleaner in range for job %s; left in pool", job.id)
        await jobEvents.publish_new_job(db, job, [c.user_id for c in eligible])
        return None

    await _assign(db, job, chosen, ActorType.SYSTEM)
    await jobEvents.publish_job_assigned(db, job, chosen)
    logger.info("Job %s auto-assigned to cleaner %s", job.id, chosen.id)
    return chosen


# ---------------------------------------------------------------------------
# Cleaner actions
# ---------------------------------------------------------------------------

def _ensure_own_job(job: Job, cleaner: Cleaner) -> None:
    if job.cleaner_id != cleaner.id:
        raise NotAuthorizedError("This job is not assigned to you.")


async def accept_job(db: AsyncSession, job_id: uuid.UUID, cleaner: Cleaner) -> Job:
    """A cleaner takes a pool job.

    Raises:
        JobNotFoundError: Unknown job.
        NotAuthorizedError: Job belongs to another company or lies outside
            the cleaner's geofences.
        InvalidTransitionError: Job is no longer in the pool, or the
            cleaner is off duty or already busy.
    """
    job = await _lock_job(db, job_id)
    if job.company_id != cleaner.company_id:
        raise NotAuthorizedError("This job belongs to another company.")
    if job.cleaner_id is not None:
        raise InvalidTransitionError("Job has already been taken.")
    if cleaner.status != CleanerStatus.ON_DUTY:
        raise InvalidTransitionError(
            "You must be on duty and free to accept a job."
        )
    if not await cleaner_serves_point(
        db, cleaner, float(job.location_latitude), float(job.location_longitude)
    ):
        raise NotAuthorizedError("This job is outside your service area.")
    await _assign(db, job, cleaner, ActorType.CLEANER)
    return job


async def start_job(db: AsyncSession, job_id: uuid.UUID, cleaner: Cleaner) -> Job:
    job = await _lock_job(db, job_id)
    _ensure_own_job(job, cleaner)
    old_status = _apply_transition(job, JobStatus.IN_PROGRESS, ActorType.CLEANER)
    job.started_at = utcnow()
    await db.flush()
    await jobEvents.publish_job_update(
        db, job, previous_status=old_status, cleaner_name=_cleaner_name(cleaner)
    )
    return job


async def complete_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    cleaner: Cleaner,
    proof_photo_url: Optional[str] = None,
) -> Job:
    """Finish a wash.

    The cleaner goes back on duty, cleaner and company totals are bumped
    and the wash price is added to the company's revenue.
    """
    job = await _lock_job(db, job_id)
    _ensure_own_job(job, cleaner)
    old_status = _apply_transition(job, JobStatus.COMPLETED, ActorType.CLEANER)
    now = utcnow()
    job.completed_at = now
    job.proof_photo_url = proof_photo_url

    if job.started_at is not None:
        minutes = int((now - as_utc(job.started_at)).total_seconds() // 60)
        done = cleaner.total_jobs_completed or 0
        previous = cleaner.average_completion_time or 0
        cleaner.average_completion_time = round((previous * done + minutes) / (done + 1))
    cleaner.total_jobs_completed = (cleaner.total_jobs_completed or 0) + 1
    _free_cleaner(cleaner)

    company = job.company
    company.total_jobs_completed = (company.total_jobs_completed or 0) + 1
    company.total_revenue = round2((company.total_revenue or 0) + job.price)
    await db.flush()

    await jobEvents.publish_job_update(
        db, job, previous_status=old_status, cleaner_name=_cleaner_name(cleaner)
    )
    await jobEvents.publish_cleaner_update(cleaner)
    return job


async def release_job(db: AsyncSession, job_id: uuid.UUID, cleaner: Cleaner) -> Job:
    """Give an assigned (not yet started) job back to the pool."""
    job = await _lock_job(db, job_id)
    _ensure_own_job(job, cleaner)
    old_status = _apply_transition(job, JobStatus.PAID, ActorType.CLEANER)
    job.cleaner = None
    job.assigned_at = None
    _free_cleaner(cleaner)
    await db.flush()

    await jobEvents.publish_job_update(db, job, previous_status=old_status)
    await jobEvents.publish_cleaner_update(cleaner)
    others = await list_company_cleaners(db, job.company_id, CleanerStatus.ON_DUTY)
    await jobEvents.publish_new_job(
        db, job, [c.user_id for c in others if c.id != cleaner.id]
    )
    return job


# ---------------------------------------------------------------------------
# Cancellation and refunds
# ---------------------------------------------------------------------------

def _ensure_party(
    job: Job,
    actor_type: ActorType,
    customer_id: Optional[uuid.UUID],
    company_id: Optional[uuid.UUID],
) -> None:
    if actor_type == ActorType.CUSTOMER and (
        customer_id is None or job.customer_id != customer_id
    ):
        raise NotAuthorizedError()
    if actor_type == ActorType.COMPANY_ADMIN and job.company_id != company_id:
        raise NotAuthorizedError()


async def cancel_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    *,
    actor_type: ActorType,
    customer_id: Optional[uuid.UUID] = None,
    company_id: Optional[uuid.UUID] = None,
    reason: Optional[str] = None,
) -> Job:
    """Cancel a job without moving money.

    Customers may only cancel before paying; paid jobs that should be
    reimbursed go through ``refund_job``.  An unpaid card booking also has
    its PaymentIntent cancelled so the client secret can no longer charge.

    Raises:
        JobNotFoundError: Unknown job.
        NotAuthorizedError: Customer or company does not own the job.
        InvalidTransitionError: Cancellation not allowed in this state.
        PaymentError: Stripe refused to cancel the intent (the job is
            unchanged).
    """
    job = await _lock_job(db, job_id)
    _ensure_party(job, actor_type, customer_id, company_id)
    result = validate_transition(job.status, JobStatus.CANCELLED, actor_type)
    if not result.allowed:
        raise InvalidTransitionError(result.reason or "Cancellation not allowed.")

    if (
        job.status == JobStatus.PENDING_PAYMENT
        and job.payment_method == PaymentMethod.CARD
        and job.stripe_payment_intent_id
    ):
        await paymentService.cancel_payment(job.stripe_payment_intent_id)

    old_status = _apply_transition(job, JobStatus.CANCELLED, actor_type)
    job.cancelled_at = utcnow()
    job.refund_reason = reason
    cleaner = job.cleaner
    _free_cleaner(cleaner)
    await db.flush()

    await jobEvents.publish_job_update(db, job, previous_status=old_status)
    if cleaner is not None:
        await jobEvents.publish_cleaner_update(cleaner)
    return job


async def _refund(
    db: AsyncSession,
    job: Job,
    *,
    target: JobStatus,
    actor_type: ActorType,
    reason: str,
    stripe_reason: str,
) -> Job:
    # Validate before touching Stripe so an illegal refund never moves money
    result = validate_transition(job.status, target, actor_type)
    if not result.allowed:
        raise InvalidTransitionError(result.reason or "Refund not allowed.")

    refund_id: Optional[str] = None
    if job.payment_method == PaymentMethod.CARD and job.stripe_payment_intent_id:
        refund = await paymentService.refund_payment(
            job.stripe_payment_intent_id,
            reason=stripe_reason,
            metadata={"job_id": str(job.id), "note": reason},
        )
        refund_id = refund.id

    old_status = _apply_transition(job, target, actor_type)
    now = utcnow()
    job.refunded_at = now
    job.refund_reason = reason
    job.stripe_refund_id = refund_id
    cleaner = job.cleaner
    _free_cleaner(cleaner)
    await db.flush()

    await financialService.record_transaction(
        db,
        transaction_type=TransactionType.REFUND,
        direction=TransactionDirection.DEBIT,
        amount=job.total_amount,
        job_id=job.id,
        company_id=job.company_id,
        stripe_payment_intent_id=job.stripe_payment_intent_id,
        stripe_refund_id=refund_id,
        description=f"Refund for car wash {job.car_plate_number}: {reason}",
    )
    await financialService.mark_financials_refunded(db, job.id, job.total_amount)

    await jobEvents.publish_job_update(db, job, previous_status=old_status)
    if cleaner is not None:
        await jobEvents.publish_cleaner_update(cleaner)
    logger.info("Job %s refunded (%s): %s", job.id, target.value, reason)
    return job


async def refund_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    *,
    actor_type: ActorType,
    company_id: Optional[uuid.UUID] = None,
    reason: str = "Refund issued",
) -> Job:
    """Fully refund a job through Stripe and mark it ``refunded``.

    Raises:
        JobNotFoundError: Unknown job.
        NotAuthorizedError: Company admin acting on another company's job.
        InvalidTransitionError: Job cannot be refunded from its state.
        PaymentError: Stripe refused the refund (the job is unchanged).
    """
    job = await _lock_job(db, job_id)
    _ensure_party(job, actor_type, None, company_id)
    return await _refund(
        db,
        job,
        target=JobStatus.REFUNDED,
        actor_type=actor_type,
        reason=reason,
        stripe_reason="requested_by_customer",
    )


async def refund_unattended_job(db: AsyncSession, job: Job) -> Job:
    """Refund a paid job nobody picked up in time."""
    return await _refund(
        db,
        job,
        target=JobStatus.REFUNDED_UNATTENDED,
        actor_type=ActorType.SYSTEM,
        reason=(
            f"No cleaner accepted within {settings.auto_refund_minutes} minutes. "
            "Full refund issued."
        ),
        stripe_reason="requested_by_customer",
    )


# ---------------------------------------------------------------------------
# Rating
# ---------------------------------------------------------------------------

async def rate_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    *,
    customer_id: uuid.UUID,
    rating: int,
    review: Optional[str] = None,
) -> Job:
    """Rate a completed wash (1-5, once) and fold the score into the
    cleaner's and company's averages."""
    if not 1 <= rating <= 5:
        raise ValueError("Rating must be between 1 and 5")
    job = await _lock_job(db, job_id)
    if job.customer_id != customer_id:
        raise NotAuthorizedError()
    if job.status != JobStatus.COMPLETED:
        raise RatingError("Only completed jobs can be rated")
    if job.rating is not None:
        raise RatingError("This job has already been rated")

    job.rating = rating
    job.review = review
    job.rated_at = utcnow()

    cleaner = job.cleaner
    if cleaner is not None:
        cleaner.rating = _running_average(cleaner.rating, cleaner.total_ratings or 0, rating)
        cleaner.total_ratings = (cleaner.total_ratings or 0) + 1
    company = job.company
    company.rating = _running_average(company.rating, company.total_ratings or 0, rating)
    company.total_ratings = (company.total_ratings or 0) + 1
    await db.flush()

    logger.info("Job %s rated %d", job.id, rating)
    return job


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------

async def _paginate(db: AsyncSession, filters: list, page: int, page_size: int) -> PaginatedResult:
    count_stmt = select(func.count(Job.id)).where(*filters)
    total_items: int = (await db.execute(count_stmt)).scalar_one()

    data_stmt = (
        select(Job)
        .where(*filters)
        .order_by(Job.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    jobs = (await db.execute(data_stmt)).unique().scalars().all()
    return PaginatedResult(
        items=jobs,
        total_items=total_items,
        page=page,
        page_size=page_size,
    )


async def track_jobs_by_plate(
    db: AsyncSession,
    plate: str,
    *,
    limit: int = 20,
) -> Sequence[Job]:
    """Latest jobs for a plate, used by the public tracking page."""
    normalized = normalize_plate(plate)
    if not normalized:
        return []
    result = await db.execute(
        select(Job)
        .where(Job.car_plate_number == normalized)
        .order_by(Job.created_at.desc())
        .limit(limit)
    )
    return result.unique().scalars().all()


async def list_customer_jobs(
    db: AsyncSession,
    customer_id: uuid.UUID,
    *,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResult:
    return await _paginate(db, [Job.customer_id == customer_id], page, page_size)


async def list_cleaner_jobs(
    db: AsyncSession,
    cleaner_id: uuid.UUID,
    *,
    active_only: bool = False,
    limit: int = 100,
) -> Sequence[Job]:
    filters = [Job.cleaner_id == cleaner_id]
    if active_only:
        filters.append(Job.status.in_(ACTIVE_STATUSES))
    result = await db.execute(
        select(Job).where(*filters).order_by(Job.created_at.desc()).limit(limit)
    )
    return result.unique().scalars().all()


async def list_available_jobs(db: AsyncSession, cleaner: Cleaner) -> list[Job]:
    """Paid, unassigned jobs of the cleaner's company inside the cleaner's
    geofences, oldest first."""
    result = await db.execute(
        select(Job)
        .where(
            Job.company_id == cleaner.company_id,
            Job.status == JobStatus.PAID,
            Job.cleaner_id.is_(None),
        )
        .order_by(Job.created_at.asc())
    )
    jobs = result.unique().scalars().all()
    return [
        job for job in jobs
        if await cleaner_serves_point(
            db, cleaner, float(job.location_latitude), float(job.location_longitude)
        )
    ]


async def list_company_jobs(
    db: AsyncSession,
    company_id: uuid.UUID,
    *,
    status: Optional[JobStatus] = None,
    payment_method: Optional[PaymentMethod] = None,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResult:
    filters = [Job.company_id == company_id]
    if status is not None:
        filters.append(Job.status == status)
    if payment_method is not None:
        filters.append(Job.payment_method == payment_method)
    return await _paginate(db, filters, page, page_size)


async def find_expired_paid_jobs(
    db: AsyncSession,
    older_than: datetime,
) -> Sequence[Job]:
    """Paid jobs still without a cleaner created before ``older_than``."""
    result = await db.execute(
        select(Job).where(
            Job.status == JobStatus.PAID,
            Job.cleaner_id.is_(None),
            Job.created_at < older_than,
        )
        .order_by(Job.created_at.asc())
    )
    return result.unique().scalars().all()


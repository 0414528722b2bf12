"""
Cleaner Service
===============

Cleaner availability, shifts, live location and company-side staff
management.

Availability rules:
  - a cleaner toggles between ``on_duty`` and ``off_duty``; ``busy`` is set
    by the job flow only and a busy cleaner cannot go off duty
  - going on duty opens a ``ShiftSession``; going off duty closes it
  - every location update stamps ``last_location_update``, which the shift
    timeout job uses to close forgotten shifts

A cleaner can also hand out a QR code backed by a single-use payment token;
the booking made with it is routed straight to that cleaner.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from washpro.core.config import settings
from washpro.models import (
    Cleaner,
    CleanerInvitation,
    CleanerPaymentToken,
    CleanerStatus,
    Company,
    InvitationStatus,
    Job,
    JobStatus,
    ShiftSession,
    User,
    UserRole,
)
from washpro.models.base import as_utc, utcnow
from washpro.services.geoService import is_valid_coordinate

logger = logging.getLogger(__name__)

ACTIVE_JOB_STATUSES = (JobStatus.ASSIGNED, JobStatus.IN_PROGRESS)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class CleanerNotFoundError(Exception):
    """Raised when a cleaner profile cannot be found."""

    def __init__(self, identifier: object) -> None:
        self.identifier = identifier
        super().__init__(f"Cleaner '{identifier}' not found.")


class CleanerStatusError(Exception):
    """Raised when a status change or shift action is not allowed."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvitationError(Exception):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class PaymentTokenError(ValueError):
    """Raised for unknown, used or expired QR payment tokens."""

    def __init__(self, message: str = "This payment link is invalid or has expired.") -> None:
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PaymentTokenInfo:
    token: CleanerPaymentToken
    company: Company
    cleaner: Cleaner


@dataclass(frozen=True)
class LiveCleaner:
    cleaner: Cleaner
    display_name: str
    active_job: Optional[Job]
    open_shift: Optional[ShiftSession]


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

async def get_cleaner(db: AsyncSession, cleaner_id: uuid.UUID) -> Cleaner:
    result = await db.execute(select(Cleaner).where(Cleaner.id == cleaner_id))
    cleaner = result.scalar_one_or_none()
    if cleaner is None:
        raise CleanerNotFoundError(cleaner_id)
    return cleaner


async def get_cleaner_by_user(db: AsyncSession, user_id: uuid.UUID) -> Cleaner:
    result = await db.execute(select(Cleaner).where(Cleaner.user_id == user_id))
    cleaner = result.scalar_one_or_none()
    if cleaner is None:
        raise CleanerNotFoundError(user_id)
    return cleaner


async def list_company_cleaners(
    db: AsyncSession,
    company_id: uuid.UUID,
    status: Optional[CleanerStatus] = None,
) -> Sequence[Cleaner]:
    stmt = select(Cleaner).where(Cleaner.company_id == company_id)
    if status is not None:
        stmt = stmt.where(Cleaner.status == status)
    stmt = stmt.order_by(Cleaner.created_at)
    return (await db.execute(stmt)).scalars().all()


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

async def _get_invitation_by_phone(
    db: AsyncSession,
    phone: str,
) -> Optional[CleanerInvitation]:
    result = await db.execute(
        select(CleanerInvitation).where(CleanerInvitation.phone == phone)
    )
    return result.scalar_one_or_none()


async def invite_cleaner(
    db: AsyncSession,
    company_id: uuid.UUID,
    phone: str,
    invited_by: Optional[uuid.UUID] = None,
) -> CleanerInvitation:
    """Whitelist a phone number for cleaner registration.

    A phone can only be invited once across the platform; a revoked
    invitation of the same company is re-opened.

    Raises:
        InvitationError: Phone already invited or already registered.
    """
    phone = "".join(ch for ch in phone.strip() if ch not in " -()")
    if not phone:
        raise InvitationError("Phone number is required")

    registered = await db.execute(
        select(User.id).where(User.phone == phone, User.role == UserRole.CLEANER)
    )
    if registered.first() is not None:
        raise InvitationError("A cleaner with this phone number is already registered")

    invitation = await _get_invitation_by_phone(db, phone)
    if invitation is not None:
        if invitation.company_id == company_id and invitation.status == InvitationStatus.REVOKED:
            invitation.status = InvitationStatus.PENDING
            invitation.invited_by = invited_by
            await db.flush()
            return invitation
        raise InvitationError("This phone number has already been invited")

    invitation = CleanerInvitation(
        id=uuid.uuid4(),
        company_id=company_id,
        phone=phone,
        status=InvitationStatus.PENDING,
        invited_by=invited_by,
    )
    db.add(invitation)
    await db.flush()
    logger.info("Cleaner invitation %s created for company %s", invitation.id, company_id)
    return invitation


async def list_invitations(
    db: AsyncSession,
    company_id: uuid.UUID,
) -> Sequence[CleanerInvitation]:
    result = await db.execute(
        select(CleanerInvitation)
        .where(CleanerInvitation.company_id == company_id)
        .order_by(CleanerInvitation.created_at.desc())
    )
    return result.scalars().all()


async def revoke_invitation(
    db: AsyncSession,
    company_id: uuid.UUID,
    invitation_id: uuid.UUID,
) -> CleanerInvitation:
    result = await db.execute(
        select(CleanerInvitation).where(
            CleanerInvitation.id == invitation_id,
            CleanerInvitation.company_id == company_id,
        )
    )
    invitation = result.scalar_one_or_none()
    if invitation is None:
        raise InvitationError("Invitation not found")
    if invitation.status != InvitationStatus.PENDING:
        raise InvitationError(f"Invitation is already {invitation.status.value}")
    invitation.status = InvitationStatus.REVOKED
    await db.flush()
    logger.info("Cleaner invitation %s revoked", invitation_id)
    return invitation


async def validate_cleaner_phone(db: AsyncSession, phone: str) -> dict[str, Any]:
    """Tell the registration form whether a phone has a usable invitation."""
    phone = "".join(ch for ch in phone.strip() if ch not in " -()")
    invitation = await _get_invitation_by_phone(db, phone)
    if invitation is None or invitation.status != InvitationStatus.PENDING:
        return {
            "valid": False,
            "company_id": None,
            "company_name": None,
            "message": "No pending invitation for this phone number",
        }
    company = await db.get(Company, invitation.company_id)
    return {
        "valid": True,
        "company_id": invitation.company_id,
        "company_name": company.name if company else None,
        "message": "Invitation found",
    }


async def consume_invitation_for_registration(
    db: AsyncSession,
    phone: str,
    company_id: uuid.UUID,
) -> Optional[CleanerInvitation]:
    """Mark the phone's invitation as used.

    Registration without an invitation is allowed; an invitation that
    exists must be pending and belong to the chosen company.

    Raises:
        ValueError: Invitation is revoked, consumed or for another company.
    """
    invitation = await _get_invitation_by_phone(db, phone)
    if invitation is None:
        return None
    if invitation.status != InvitationStatus.PENDING:
        raise ValueError("This invitation is no longer valid")
    if invitation.company_id != company_id:
        raise ValueError("This phone number was invited by a different company")
    invitation.status = InvitationStatus.CONSUMED
    invitation.consumed_at = utcnow()
    await db.flush()
    return invitation


# ---------------------------------------------------------------------------
# Shifts
# ---------------------------------------------------------------------------

async def get_open_shift(db: AsyncSession, cleaner_id: uuid.UUID) -> Optional[ShiftSession]:
    result = await db.execute(
        select(ShiftSession)
        .where(ShiftSession.cleaner_id == cleaner_id, ShiftSession.shift_end.is_(None))
        .order_by(ShiftSession.shift_start.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


def _coordinate(value: Optional[float]) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


async def start_shift(
    db: AsyncSession,
    cleaner: Cleaner,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> ShiftSession:
    """Open a shift and put the cleaner on duty.

    Raises:
        CleanerStatusError: A shift is already open.
    """
    if await get_open_shift(db, cleaner.id) is not None:
        raise CleanerStatusError("A shift is already in progress")

    now = utcnow()
    shift = ShiftSession(
        id=uuid.uuid4(),
        cleaner_id=cleaner.id,
        company_id=cleaner.company_id,
        shift_start=now,
        start_latitude=_coordinate(latitude),
        start_longitude=_coordinate(longitude),
    )
    db.add(shift)

    if cleaner.status == CleanerStatus.OFF_DUTY:
        cleaner.status = CleanerStatus.ON_DUTY
    if latitude is not None and longitude is not None:
        cleaner.current_latitude = _coordinate(latitude)
        cleaner.current_longitude = _coordinate(longitude)
    # Shift start counts as a location ping so the timeout clock starts now
    cleaner.last_location_update = now
    await db.flush()

    logger.info("Shift %s started for cleaner %s", shift.id, cleaner.id)
    return shift


async def close_shift(
    db: AsyncSession,
    cleaner: Cleaner,
    shift: ShiftSession,
    *,
    reason: str = "manual",
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> ShiftSession:
    """Close ``shift`` and record its duration in whole minutes."""
    now = utcnow()
    shift.shift_end = now
    shift.duration_minutes = max(
        int((now - as_utc(shift.shift_start)).total_seconds() // 60), 0
    )
    shift.end_latitude = (
        _coordinate(latitude) if latitude is not None else cleaner.current_latitude
    )
    shift.end_longitude = (
        _coordinate(longitude) if longitude is not None else cleaner.current_longitude
    )
    shift.end_reason = reason
    await db.flush()
    logger.info(
        "Shift %s closed for cleaner %s after %d min (%s)",
        shift.id,
        cleaner.id,
        shift.duration_minutes,
        reason,
    )
    return shift


async def end_shift(
    db: AsyncSession,
    cleaner: Cleaner,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> ShiftSession:
    """Close the open shift and take the cleaner off duty.

    Raises:
        CleanerStatusError: No open shift, or the cleaner is on a job.
    """
    if cleaner.status == CleanerStatus.BUSY:
        raise CleanerStatusError("Finish your active job before ending the shift")
    shift = await get_open_shift(db, cleaner.id)
    if shift is None:
        raise CleanerStatusError("No shift in progress")

    await close_shift(db, cleaner, shift, latitude=latitude, longitude=longitude)
    cleaner.status = CleanerStatus.OFF_DUTY
    await db.flush()
    return shift


async def toggle_status(
    db: AsyncSession,
    cleaner: Cleaner,
    status: CleanerStatus,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> Cleaner:
    """Switch a cleaner on or off duty, opening or closing the shift.

    Raises:
        CleanerStatusError: Requested ``busy``, or tried to go off duty
            while busy.
    """
    if status == CleanerStatus.BUSY:
        raise CleanerStatusError("Busy status is set automatically when a job is assigned")

    if status == CleanerStatus.ON_DUTY:
        if cleaner.status != CleanerStatus.OFF_DUTY:
            return cleaner
        if await get_open_shift(db, cleaner.id) is None:
            await start_shift(db, cleaner, latitude, longitude)
        else:
            cleaner.status = CleanerStatus.ON_DUTY
            cleaner.last_location_update = utcnow()
            await db.flush()
        return cleaner

    if cleaner.status == CleanerStatus.BUSY:
        raise CleanerStatusError("Finish your active job before going off duty")
    shift = await get_open_shift(db, cleaner.id)
    if shift is not None:
        await close_shift(db, cleaner, shift, latitude=latitude, longitude=longitude)
    cleaner.status = CleanerStatus.OFF_DUTY
    await db.flush()
    return cleaner


async def update_location(
    db: AsyncSession,
    cleaner: Cleaner,
    latitude: float,
    longitude: float,
) -> Cleaner:
    if not is_valid_coordinate(latitude, longitude):
        raise ValueError("Invalid coordinates")
    cleaner.current_latitude = _coordinate(latitude)
    cleaner.current_longitude = _coordinate(longitude)
    cleaner.last_location_update = utcnow()
    await db.flush()
    logger.debug("Cleaner %s at (%s, %s)", cleaner.id, latitude, longitude)
    return cleaner


async def get_shift_history(
    db: AsyncSession,
    cleaner_id: uuid.UUID,
    *,
    limit: int = 50,
) -> Sequence[ShiftSession]:
    result = await db.execute(
        select(ShiftSession)
        .where(ShiftSession.cleaner_id == cleaner_id)
        .order_by(ShiftSession.shift_start.desc())
        .limit(limit)
    )
    return result.scalars().all()


async def get_company_shift_history(
    db: AsyncSession,
    company_id: uuid.UUID,
    *,
    cleaner_id: Optional[uuid.UUID] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 200,
) -> list[tuple[ShiftSession, Cleaner]]:
    filters = [ShiftSession.company_id == company_id]
    if cleaner_id is not None:
        filters.append(ShiftSession.cleaner_id == cleaner_id)
    if start is not None:
        filters.append(ShiftSession.shift_start >= start)
    if end is not None:
        filters.append(ShiftSession.shift_start <= end)
    result = await db.execute(
        select(ShiftSession, Cleaner)
        .join(Cleaner, Cleaner.id == ShiftSession.cleaner_id)
        .where(*filters)
        .order_by(ShiftSession.shift_start.desc())
        .limit(limit)
    )
    return [(shift, cleaner) for shift, cleaner in result.unique().all()]


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

async def _active_job(db: AsyncSession, cleaner_id: uuid.UUID) -> Optional[Job]:
    result = await db.execute(
        select(Job)
        .where(Job.cleaner_id == cleaner_id, Job.status.in_(ACTIVE_JOB_STATUSES))
        .order_by(Job.assigned_at.desc())
        .limit(1)
    )
    return result.unique().scalar_one_or_none()


async def get_live_report(db: AsyncSession, company_id: uuid.UUID) -> list[LiveCleaner]:
    """Every cleaner of the company with status, position and active job."""
    cleaners = await list_company_cleaners(db, company_id)
    report: list[LiveCleaner] = []
    for cleaner in cleaners:
        report.append(
            LiveCleaner(
                cleaner=cleaner,
                display_name=cleaner.user.display_name if cleaner.user else "",
                active_job=await _active_job(db, cleaner.id),
                open_shift=await get_open_shift(db, cleaner.id),
            )
        )
    return report


async def get_cleaner_dashboard(db: AsyncSession, cleaner: Cleaner) -> dict[str, Any]:
    now = utcnow()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

    today = (
        await db.execute(
            select(func.count(Job.id), func.coalesce(func.sum(Job.tip_amount), 0)).where(
                Job.cleaner_id == cleaner.id,
                Job.status == JobStatus.COMPLETED,
                Job.completed_at >= day_start,
            )
        )
    ).one()

    open_shift = await get_open_shift(db, cleaner.id)
    shift_minutes = None
    if open_shift is not None:
        shift_minutes = int((now - as_utc(open_shift.shift_start)).total_seconds() // 60)

    return {
        "cleaner_id": cleaner.id,
        "status": cleaner.status,
        "total_jobs_completed": cleaner.total_jobs_completed,
        "rating": cleaner.rating,
        "total_ratings": cleaner.total_ratings,
        "jobs_completed_today": int(today[0]),
        "tips_today": Decimal(str(today[1])).quantize(Decimal("0.01")),
        "active_job": await _active_job(db, cleaner.id),
        "shift_started_at": open_shift.shift_start if open_shift else None,
        "shift_minutes": shift_minutes,
    }


async def get_cleaner_tips(
    db: AsyncSession,
    cleaner: Cleaner,
    *,
    days: Optional[int] = None,
) -> dict[str, Any]:
    filters = [
        Job.cleaner_id == cleaner.id,
        Job.status == JobStatus.COMPLETED,
        Job.tip_amount > 0,
    ]
    if days is not None:
        filters.append(Job.completed_at >= utcnow() - timedelta(days=days))
    jobs = (
        await db.execute(
            select(Job).where(*filters).order_by(Job.completed_at.desc())
        )
    ).unique().scalars().all()

    total = sum((Decimal(str(job.tip_amount)) for job in jobs), Decimal("0.00"))
    return {
        "total_tips": total.quantize(Decimal("0.01")),
        "tip_count": len(jobs),
        "jobs": jobs,
    }


# ---------------------------------------------------------------------------
# QR payment tokens
# ---------------------------------------------------------------------------

async def create_payment_token(
    db: AsyncSession,
    cleaner: Cleaner,
    *,
    ttl_minutes: Optional[int] = None,
) -> CleanerPaymentToken:
    """Issue a single-use token for the cleaner's QR code."""
    if not cleaner.is_active:
        raise CleanerStatusError("Deactivated cleaners cannot take payments")
    minutes = ttl_minutes or settings.payment_token_ttl_minutes
    payment_token = CleanerPaymentToken(
        id=uuid.uuid4(),
        cleaner_id=cleaner.id,
        company_id=cleaner.company_id,
        token=secrets.token_urlsafe(24),
        is_used=False,
        expires_at=utcnow() + timedelta(minutes=minutes),
    )
    payment_token.cleaner = cleaner
    db.add(payment_token)
    await db.flush()
    logger.info(
        "Payment token issued for cleaner %s (expires %s)",
        cleaner.id,
        payment_token.expires_at,
    )
    return payment_token


async def get_payment_token(
    db: AsyncSession,
    token: str,
    *,
    now: Optional[datetime] = None,
) -> PaymentTokenInfo:
    """Resolve a scanned token to the company and cleaner behind it.

    Raises:
        PaymentTokenError: Unknown, already used or expired token.
    """
    result = await db.execute(
        select(CleanerPaymentToken).where(CleanerPaymentToken.token == token)
    )
    payment_token = result.unique().scalar_one_or_none()
    now = now or utcnow()
    if (
        payment_token is None
        or payment_token.is_used
        or as_utc(payment_token.expires_at) <= now
    ):
        raise PaymentTokenError()
    company = await db.get(Company, payment_token.company_id)
    if company is None or not company.is_active or not payment_token.cleaner.is_active:
        raise PaymentTokenError()
    return PaymentTokenInfo(
        token=payment_token,
        company=company,
        cleaner=payment_token.cleaner,
    )


async def redeem_payment_token(
    db: AsyncSession,
    token: str,
    company_id: uuid.UUID,
) -> Cleaner:
    """Mark a token used by a booking with ``company_id``.

    Raises:
        PaymentTokenError: Token not valid, or issued by another company.
    """
    info = await get_payment_token(db, token)
    if info.company.id != company_id:
        raise PaymentTokenError("This payment link belongs to another company.")
    info.token.is_used = True
    info.token.used_at = utcnow()
    await db.flush()
    logger.info("Payment token of cleaner %s redeemed", info.cleaner.id)
    return info.cleaner

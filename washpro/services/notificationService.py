"""
Notification Service
====================

High-level notification layer between the job flow and the low-level FCM
push service.  Each ``notify_*`` function:

  1. Builds the payload (title, body, tag, click-through URL, data).
  2. Resolves the target's push subscriptions (staff user or customer).
  3. Sends through FCM, honouring each subscription's ``sound_enabled``.
  4. Deletes subscriptions FCM reports as no longer registered.

Subscription management (subscribe / unsubscribe / sound toggle) lives
here as well.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from washpro.integrations.fcm import pushService
from washpro.integrations.fcm.pushService import PushPayload
from washpro.models import (
    Cleaner,
    Job,
    JobStatus,
    PushPlatform,
    PushSubscription,
    User,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

async def subscribe(
    db: AsyncSession,
    token: str,
    *,
    user_id: Optional[uuid.UUID] = None,
    customer_id: Optional[uuid.UUID] = None,
    platform: PushPlatform = PushPlatform.WEB,
    sound_enabled: bool = True,
) -> PushSubscription:
    """Register (or move) a push token to a user or customer.

    Tokens are unique: re-subscribing an existing token re-assigns it to
    the caller, since a browser can be shared between logins.
    """
    if (user_id is None) == (customer_id is None):
        raise ValueError("Exactly one of user_id or customer_id is required")
    token = token.strip()
    if not token:
        raise ValueError("Push token is required")

    result = await db.execute(
        select(PushSubscription).where(PushSubscription.token == token)
    )
    subscription = result.scalar_one_or_none()
    if subscription is None:
        subscription = PushSubscription(id=uuid.uuid4(), token=token)
        db.add(subscription)

    subscription.user_id = user_id
    subscription.customer_id = customer_id
    subscription.platform = platform
    subscription.sound_enabled = sound_enabled
    await db.flush()
    logger.info(
        "Push subscription %s saved for %s %s",
        subscription.id,
        "user" if user_id else "customer",
        user_id or customer_id,
    )
    return subscription


async def unsubscribe(
    db: AsyncSession,
    token: str,
    *,
    user_id: Optional[uuid.UUID] = None,
    customer_id: Optional[uuid.UUID] = None,
) -> bool:
    filters = [PushSubscription.token == token.strip()]
    if user_id is not None:
        filters.append(PushSubscription.user_id == user_id)
    if customer_id is not None:
        filters.append(PushSubscription.customer_id == customer_id)
    result = await db.execute(delete(PushSubscription).where(*filters))
    return (result.rowcount or 0) > 0


async def update_sound(
    db: AsyncSession,
    sound_enabled: bool,
    *,
    user_id: Optional[uuid.UUID] = None,
    customer_id: Optional[uuid.UUID] = None,
) -> int:
    """Set ``sound_enabled`` on every subscription of the owner.

    Staff users also get the flag stored on their account so new devices
    inherit it.
    """
    if user_id is not None:
        stmt = select(PushSubscription).where(PushSubscription.user_id == user_id)
        user = await db.get(User, user_id)
        if user is not None:
            user.sound_enabled = sound_enabled
    elif customer_id is not None:
        stmt = select(PushSubscription).where(PushSubscription.customer_id == customer_id)
    else:
        raise ValueError("Exactly one of user_id or customer_id is required")

    subscriptions = (await db.execute(stmt)).scalars().all()
    for subscription in subscriptions:
        subscription.sound_enabled = sound_enabled
    await db.flush()
    return len(subscriptions)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

async def _get_subscriptions(
    db: AsyncSession,
    *,
    user_ids: Sequence[uuid.UUID] = (),
    customer_id: Optional[uuid.UUID] = None,
) -> Sequence[PushSubscription]:
    if customer_id is not None:
        stmt = select(PushSubscription).where(PushSubscription.customer_id == customer_id)
    elif user_ids:
        stmt = select(PushSubscription).where(PushSubscription.user_id.in_(list(user_ids)))
    else:
        return []
    return (await db.execute(stmt)).scalars().all()


async def _delete_invalid_tokens(db: AsyncSession, invalid_tokens: list[str]) -> None:
    """Drop subscriptions FCM reported as unregistered."""
    if not invalid_tokens:
        return
    logger.info("Deleting %d invalid push subscriptions", len(invalid_tokens))
    await db.execute(
        delete(PushSubscription).where(PushSubscription.token.in_(invalid_tokens))
    )
    await db.flush()


async def _send(
    db: AsyncSession,
    subscriptions: Sequence[PushSubscription],
    payload: PushPayload,
) -> int:
    """Deliver ``payload`` to the given subscriptions.

    Returns:
        Number of devices that accepted the message.
    """
    if not subscriptions:
        logger.debug("No push subscriptions for %r", payload.title)
        return 0
    if not pushService.is_configured():
        logger.debug("FCM not configured; skipping push %r", payload.title)
        return 0

    delivered = 0
    invalid: list[str] = []
    for sound_enabled in (True, False):
        tokens = [s.token for s in subscriptions if bool(s.sound_enabled) == sound_enabled]
        if not tokens:
            continue
        if len(tokens) == 1:
            result = await pushService.send_notification(tokens[0], payload, sound_enabled)
            if result.invalid_token:
                invalid.append(tokens[0])
            delivered += int(result.success)
        else:
            batch = await pushService.send_to_multiple(tokens, payload, sound_enabled)
            invalid.extend(batch.invalid_tokens)
            delivered += batch.success_count

    await _delete_invalid_tokens(db, invalid)
    return delivered


def _plate(job: Job) -> str:
    return job.car_plate_number


# ---------------------------------------------------------------------------
# Public notification functions
# ---------------------------------------------------------------------------

_CUSTOMER_STATUS_MESSAGES: dict[JobStatus, tuple[str, str]] = {
    JobStatus.PAID: (
        "Payment Received",
        "Your payment for {plate} has been confirmed. Looking for available cleaners...",
    ),
    JobStatus.ASSIGNED: (
        "Cleaner Assigned!",
        "{cleaner} will wash your car {plate}",
    ),
    JobStatus.IN_PROGRESS: (
        "Wash Started",
        "{cleaner} has started washing your car",
    ),
    JobStatus.COMPLETED: (
        "Wash Complete!",
        "Your car {plate} is ready! Please rate your experience",
    ),
    JobStatus.CANCELLED: (
        "Job Cancelled",
        "Your car wash for {plate} has been cancelled",
    ),
    JobStatus.REFUNDED: (
        "Refund Processed",
        "Your payment for {plate} has been refunded",
    ),
    JobStatus.REFUNDED_UNATTENDED: (
        "Refund Processed",
        "No cleaner was available. Your payment has been refunded",
    ),
}


def build_job_status_payload(
    job: Job,
    status: JobStatus,
    cleaner_name: Optional[str] = None,
) -> Optional[PushPayload]:
    """Customer-facing message for a status change, or ``None`` when the
    status has no customer notification."""
    message = _CUSTOMER_STATUS_MESSAGES.get(status)
    if message is None:
        return None
    title, template = message
    return PushPayload(
        title=title,
        body=template.format(plate=_plate(job), cleaner=cleaner_name or "Your cleaner"),
        tag=f"job-{job.id}",
        url=f"/customer/track/{_plate(job)}",
        data={"jobId": str(job.id), "type": "job_status_change", "status": status.value},
        require_interaction=status in (JobStatus.ASSIGNED, JobStatus.COMPLETED),
    )


async def notify_job_status_change(
    db: AsyncSession,
    job: Job,
    cleaner_name: Optional[str] = None,
) -> int:
    """Tell the job's customer about its current status."""
    if job.customer_id is None:
        return 0
    payload = build_job_status_payload(job, job.status, cleaner_name)
    if payload is None:
        return 0
    subscriptions = await _get_subscriptions(db, customer_id=job.customer_id)
    return await _send(db, subscriptions, payload)


async def notify_new_job(
    db: AsyncSession,
    job: Job,
    cleaner_user_ids: Sequence[uuid.UUID],
) -> int:
    """Alert cleaners that a paid job is waiting in the pool."""
    payload = PushPayload(
        title="New Job Available!",
        body=f"Car wash needed for {_plate(job)} - {job.location_address}",
        tag=f"new-job-{job.id}",
        url="/cleaner",
        data={"jobId": str(job.id), "type": "new_job"},
        require_interaction=True,
    )
    subscriptions = await _get_subscriptions(db, user_ids=cleaner_user_ids)
    return await _send(db, subscriptions, payload)


async def notify_job_assigned_to_cleaner(
    db: AsyncSession,
    job: Job,
    cleaner_user_id: uuid.UUID,
) -> int:
    payload = PushPayload(
        title="New Job Assigned",
        body=f"Car wash for {_plate(job)} at {job.location_address}",
        tag=f"job-{job.id}",
        url="/cleaner",
        data={"jobId": str(job.id), "type": "job_assigned"},
        require_interaction=True,
    )
    subscriptions = await _get_subscriptions(db, user_ids=[cleaner_user_id])
    return await _send(db, subscriptions, payload)


async def notify_shift_change(
    db: AsyncSession,
    cleaner: Cleaner,
    on_duty: bool,
) -> int:
    payload = PushPayload(
        title="You're On Duty" if on_duty else "Shift Ended",
        body=(
            "You'll receive job notifications now"
            if on_duty
            else "You're now off-duty. Great work today!"
        ),
        tag="shift-change",
        url="/cleaner",
        data={"type": "shift_change", "onDuty": str(on_duty).lower()},
    )
    subscriptions = await _get_subscriptions(db, user_ids=[cleaner.user_id])
    return await _send(db, subscriptions, payload)

"""
Subscription Handler
====================

Clients choose what they want to follow by sending::

    subscribe   { "jobId": "..." }        any client, the job must exist
    subscribe   { "customerId": "..." }   that customer (or the admin)
    subscribe   { "cleanerId": "..." }    that cleaner, their company admin, the admin
    subscribe   { "companyId": "..." }    that company's admin (or the admin)

and the matching ``unsubscribe``.  Each subscription is a Socket.IO room
(``job_<id>``, ``customer_<id>``, ...) that the broadcast helpers in
``socketServer`` address.

Job rooms stay open to anonymous clients: the public tracking page looks
jobs up by plate number and only knows the job ids it was shown.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from washpro.api.deps import async_session_factory
from washpro.models import Cleaner, Job, User, UserRole

from ..socketServer import CHANNELS, channel_room, get_sid_meta, sio

logger = logging.getLogger(__name__)

_PAYLOAD_KEYS = {f"{channel}Id": channel for channel in CHANNELS}


def parse_subscription(data: Any) -> tuple[str, uuid.UUID]:
    """Pick the channel and entity id out of a subscribe payload.

    Raises:
        ValueError: No (or more than one) channel key, or a malformed id.
    """
    if not isinstance(data, dict):
        raise ValueError("Payload must be an object")
    found = [(key, channel) for key, channel in _PAYLOAD_KEYS.items() if data.get(key)]
    if len(found) != 1:
        raise ValueError("Exactly one of jobId, customerId, cleanerId, companyId is required")
    key, channel = found[0]
    try:
        entity_id = uuid.UUID(str(data[key]))
    except ValueError as exc:
        raise ValueError(f"{key} is not a valid id") from exc
    return channel, entity_id


async def _staff_user(db: AsyncSession, user_id: Optional[str]) -> Optional[User]:
    if not user_id:
        return None
    try:
        uid = uuid.UUID(user_id)
    except ValueError:
        return None
    user = await db.get(User, uid)
    if user is None or not user.is_active:
        return None
    return user


async def authorize_subscription(
    db: AsyncSession,
    meta: dict[str, Any],
    channel: str,
    entity_id: uuid.UUID,
) -> Optional[str]:
    """Return an error message, or ``None`` when the subscription is allowed."""
    role = meta.get("role")
    user_id = meta.get("user_id")

    if channel == "job":
        exists = await db.scalar(select(Job.id).where(Job.id == entity_id))
        return None if exists else "Job not found"

    if role == UserRole.ADMIN.value:
        return None

    if channel == "customer":
        if role == UserRole.CUSTOMER.value and user_id == str(entity_id):
            return None
        return "Not allowed to follow this customer"

    user = await _staff_user(db, user_id)
    if user is None:
        return "Not authenticated"

    if channel == "company":
        if user.role == UserRole.COMPANY_ADMIN and user.company_id == entity_id:
            return None
        return "Not allowed to follow this company"

    # cleaner
    cleaner = (
        await db.execute(select(Cleaner).where(Cleaner.id == entity_id))
    ).unique().scalar_one_or_none()
    if cleaner is None:
        return "Cleaner not found"
    if user.role == UserRole.CLEANER and cleaner.user_id == user.id:
        return None
    if user.role == UserRole.COMPANY_ADMIN and user.company_id == cleaner.company_id:
        return None
    return "Not allowed to follow this cleaner"


# ---------------------------------------------------------------------------
# Inbound event handlers
# ---------------------------------------------------------------------------

@sio.on("subscribe")
async def handle_subscribe(sid: str, data: dict[str, Any]) -> dict[str, Any]:
    meta = get_sid_meta(sid)
    if meta is None:
        return {"ok": False, "error": "Not connected"}

    try:
        channel, entity_id = parse_subscription(data)
    except ValueError as exc:
        return {"ok": False, "error": str(exc)}

    async with async_session_factory() as db:
        error = await authorize_subscription(db, meta, channel, entity_id)
    if error is not None:
        logger.info("Subscription refused: sid=%s %s=%s (%s)", sid, channel, entity_id, error)
        return {"ok": False, "error": error}

    room = channel_room(channel, entity_id)
    await sio.enter_room(sid, room)
    logger.info("sid=%s subscribed to %s", sid, room)
    return {"ok": True, "room": room}


@sio.on("unsubscribe")
async def handle_unsubscribe(sid: str, data: dict[str, Any]) -> dict[str, Any]:
    try:
        channel, entity_id = parse_subscription(data)
    except ValueError as exc:
        return {"ok": False, "error": str(exc)}

    room = channel_room(channel, entity_id)
    await sio.leave_room(sid, room)
    logger.info("sid=%s unsubscribed from %s", sid, room)
    return {"ok": True, "room": room}

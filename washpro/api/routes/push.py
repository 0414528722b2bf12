"""
Push notification API routes
============================

Browsers and apps register their FCM registration token here.  Staff
users and customers both subscribe; the token is linked to whichever one
the Bearer token identifies.

Routes:
  GET  /api/push/config        -- whether push is enabled, plus the web VAPID key
  POST /api/push/subscribe     -- register a device token
  POST /api/push/unsubscribe   -- forget a device token
  POST /api/push/update-sound  -- toggle notification sound on all devices
"""

from __future__ import annotations

import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from washpro.api.deps import DBSession, OptionalCustomer, OptionalUser
from washpro.api.schemas.common import MessageOut
from washpro.api.schemas.notification import (
    PushConfigOut,
    PushSoundRequest,
    PushSubscribeOut,
    PushSubscribeRequest,
    PushUnsubscribeRequest,
)
from washpro.core.config import settings
from washpro.integrations.fcm import pushService
from washpro.services import notificationService

router = APIRouter(prefix="/push", tags=["Push"])


async def _get_owner(
    user: OptionalUser,
    customer: OptionalCustomer,
) -> tuple[Optional[uuid.UUID], Optional[uuid.UUID]]:
    """``(user_id, customer_id)`` of the caller; exactly one is set."""
    if user is not None:
        return user.id, None
    if customer is not None:
        return None, customer.id
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
        headers={"WWW-Authenticate": "Bearer"},
    )


PushOwner = Annotated[tuple[Optional[uuid.UUID], Optional[uuid.UUID]], Depends(_get_owner)]


# ---------------------------------------------------------------------------
# GET /push/config
# ---------------------------------------------------------------------------

@router.get(
    "/config",
    response_model=PushConfigOut,
    response_model_by_alias=True,
    summary="Push notification configuration",
)
async def push_config() -> PushConfigOut:
    enabled = pushService.is_configured()
    return PushConfigOut(
        enabled=enabled,
        vapid_key=settings.firebase_web_vapid_key if enabled else None,
    )


# ---------------------------------------------------------------------------
# POST /push/subscribe
# ---------------------------------------------------------------------------

@router.post(
    "/subscribe",
    response_model=PushSubscribeOut,
    response_model_by_alias=True,
    summary="Register a device token",
)
async def subscribe(
    db: DBSession,
    body: PushSubscribeRequest,
    owner: PushOwner,
) -> PushSubscribeOut:
    user_id, customer_id = owner
    try:
        subscription = await notificationService.subscribe(
            db,
            body.token,
            user_id=user_id,
            customer_id=customer_id,
            platform=body.platform,
            sound_enabled=body.sound_enabled,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return PushSubscribeOut(subscribed=True, sound_enabled=subscription.sound_enabled)


# ---------------------------------------------------------------------------
# POST /push/unsubscribe
# ---------------------------------------------------------------------------

@router.post(
    "/unsubscribe",
    response_model=MessageOut,
    summary="Forget a device token",
)
async def unsubscribe(
    db: DBSession,
    body: PushUnsubscribeRequest,
    owner: PushOwner,
) -> MessageOut:
    user_id, customer_id = owner
    removed = await notificationService.unsubscribe(
        db, body.token, user_id=user_id, customer_id=customer_id
    )
    return MessageOut(message="Unsubscribed" if removed else "Token was not subscribed")


# ---------------------------------------------------------------------------
# POST /push/update-sound
# ---------------------------------------------------------------------------

@router.post(
    "/update-sound",
    response_model=MessageOut,
    summary="Toggle notification sound",
)
async def update_sound(
    db: DBSession,
    body: PushSoundRequest,
    owner: PushOwner,
) -> MessageOut:
    user_id, customer_id = owner
    count = await notificationService.update_sound(
        db, body.sound_enabled, user_id=user_id, customer_id=customer_id
    )
    state = "on" if body.sound_enabled else "off"
    return MessageOut(message=f"Sound {state} for {count} device(s)")

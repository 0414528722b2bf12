"""
Pydantic v2 schemas for push notification subscriptions.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from washpro.models import PushPlatform

from .common import CamelModel


class PushConfigOut(CamelModel):
    """What the web app needs to obtain an FCM registration token."""

    enabled: bool
    vapid_key: Optional[str] = None


class PushSubscribeRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=512)
    platform: PushPlatform = PushPlatform.WEB
    sound_enabled: bool = True


class PushUnsubscribeRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=512)


class PushSoundRequest(CamelModel):
    sound_enabled: bool


class PushSubscribeOut(CamelModel):
    subscribed: bool
    sound_enabled: bool

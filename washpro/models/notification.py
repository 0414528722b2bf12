"""
SQLAlchemy model for push subscriptions.

A subscription is an FCM registration token owned either by a staff user
(cleaner, company admin, admin) or by an app customer.
"""

from __future__ import annotations

import enum
import uuid
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_column


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class PushPlatform(str, enum.Enum):
    """Client platforms that can receive push notifications."""
    WEB = "web"
    ANDROID = "android"
    IOS = "ios"


# ---------------------------------------------------------------------------
# PushSubscription
# ---------------------------------------------------------------------------

class PushSubscription(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Stores FCM registration tokens per user or customer.

    Exactly one of ``user_id`` / ``customer_id`` is set.  Rows are deleted
    when FCM reports the token as unregistered or when the owner
    unsubscribes.
    """
    __tablename__ = "push_subscriptions"

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
    )
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=True,
    )
    token: Mapped[str] = mapped_column(String(512), unique=True, nullable=False)
    platform: Mapped[PushPlatform] = mapped_column(
        enum_column(PushPlatform, "push_platform"),
        nullable=False,
        default=PushPlatform.WEB,
    )
    sound_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_push_subscriptions_user_id", "user_id"),
        Index("ix_push_subscriptions_customer_id", "customer_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<PushSubscription(id={self.id}, user_id={self.user_id}, "
            f"customer_id={self.customer_id}, platform={self.platform})>"
        )

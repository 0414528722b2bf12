"""
SQLAlchemy models for cleaners, their invitations, geofence assignments and
shift sessions.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_column, utcnow


class CleanerStatus(str, enum.Enum):
    ON_DUTY = "on_duty"
    OFF_DUTY = "off_duty"
    BUSY = "busy"


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    CONSUMED = "consumed"
    REVOKED = "revoked"


class Cleaner(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "cleaners"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )

    status: Mapped[CleanerStatus] = mapped_column(
        enum_column(CleanerStatus, "cleaner_status"),
        nullable=False,
        default=CleanerStatus.OFF_DUTY,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Live location
    current_latitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 7), nullable=True)
    current_longitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 7), nullable=True)
    last_location_update: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Running totals
    total_jobs_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_completion_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rating: Mapped[Decimal] = mapped_column(
        Numeric(3, 2), nullable=False, default=Decimal("0.00")
    )
    total_ratings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    user: Mapped["User"] = relationship("User", lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<Cleaner(id={self.id}, company={self.company_id}, "
            f"status={self.status})>"
        )


class CleanerInvitation(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "cleaner_invitations"

    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    phone: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    status: Mapped[InvitationStatus] = mapped_column(
        enum_column(InvitationStatus, "invitation_status"),
        nullable=False,
        default=InvitationStatus.PENDING,
    )
    invited_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    consumed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<CleanerInvitation(id={self.id}, phone={self.phone}, "
            f"status={self.status})>"
        )


class CleanerGeofenceAssignment(UUIDPrimaryKeyMixin, Base):
    """Restricts a cleaner to some of the company's geofences.

    A row with ``assign_all=True`` (and no geofence) means the cleaner
    serves every geofence of the company.
    """
    __tablename__ = "cleaner_geofence_assignments"

    cleaner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("cleaners.id", ondelete="CASCADE"),
        nullable=False,
    )
    geofence_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("company_geofences.id", ondelete="CASCADE"),
        nullable=True,
    )
    assign_all: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<CleanerGeofenceAssignment(cleaner={self.cleaner_id}, "
            f"geofence={self.geofence_id}, all={self.assign_all})>"
        )


class ShiftSession(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "shift_sessions"

    cleaner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("cleaners.id", ondelete="CASCADE"),
        nullable=False,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    shift_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # NULL while the shift is open
    shift_end: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    start_latitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 7), nullable=True)
    start_longitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 7), nullable=True)
    end_latitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 7), nullable=True)
    end_longitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 7), nullable=True)

    # "manual" or "inactivity_timeout"
    end_reason: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ShiftSession(id={self.id}, cleaner={self.cleaner_id}, "
            f"start={self.shift_start}, end={self.shift_end})>"
        )


class CleanerPaymentToken(UUIDPrimaryKeyMixin, Base):
    """Single-use token behind a cleaner's QR code.

    Scanning it opens the booking page preset to the cleaner's company, and
    the paid job goes straight to that cleaner.
    """
    __tablename__ = "cleaner_payment_tokens"

    cleaner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("cleaners.id", ondelete="CASCADE"),
        nullable=False,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    cleaner: Mapped["Cleaner"] = relationship("Cleaner", lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<CleanerPaymentToken(cleaner={self.cleaner_id}, "
            f"used={self.is_used}, expires={self.expires_at})>"
        )

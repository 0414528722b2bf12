"""
SQLAlchemy model for car-wash jobs.

A job is created in ``pending_payment`` together with its Stripe
PaymentIntent and moves through the lifecycle enforced by
``washpro.services.jobStateManager``.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_column


class JobStatus(str, enum.Enum):
    PENDING_PAYMENT = "pending_payment"
    PAID = "paid"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    REFUNDED_UNATTENDED = "refunded_unattended"  # nobody picked it up in time


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"


class AssignmentMode(str, enum.Enum):
    POOL = "pool"        # any on-duty cleaner of the company
    DIRECT = "direct"    # customer asked for a specific cleaner


class Job(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "jobs"

    # Parties
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="RESTRICT"),
        nullable=False,
    )
    cleaner_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("cleaners.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Car
    car_plate_number: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    car_plate_emirate: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    car_plate_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    # Location
    location_address: Mapped[str] = mapped_column(Text, nullable=False)
    location_latitude: Mapped[Decimal] = mapped_column(Numeric(10, 7), nullable=False)
    location_longitude: Mapped[Decimal] = mapped_column(Numeric(10, 7), nullable=False)
    parking_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Contact (copied at booking time)
    customer_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    # Money (AED, 2 decimals)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    tip_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Payment
    payment_method: Mapped[PaymentMethod] = mapped_column(
        enum_column(PaymentMethod, "payment_method"),
        nullable=False,
        default=PaymentMethod.CARD,
    )
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True
    )
    stripe_refund_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    refunded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    refund_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    receipt_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Lifecycle
    status: Mapped[JobStatus] = mapped_column(
        enum_column(JobStatus, "job_status"),
        nullable=False,
        default=JobStatus.PENDING_PAYMENT,
        index=True,
    )
    assignment_mode: Mapped[AssignmentMode] = mapped_column(
        enum_column(AssignmentMode, "assignment_mode"),
        nullable=False,
        default=AssignmentMode.POOL,
    )
    requested_cleaner_email: Mapped[Optional[str]] = mapped_column(
        String(320), nullable=True
    )

    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    proof_photo_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Rating
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    review: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    company: Mapped["Company"] = relationship("Company", lazy="joined")
    cleaner: Mapped[Optional["Cleaner"]] = relationship("Cleaner", lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<Job(id={self.id}, plate={self.car_plate_number}, "
            f"status={self.status}, total={self.total_amount})>"
        )


class OfflineJobStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class OfflineJob(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A wash paid in cash to the cleaner, outside Stripe.

    Only companies on the offline fee package (``package2``) record these;
    the customer pays the wash price plus VAT and no platform fee.
    """
    __tablename__ = "offline_jobs"

    cleaner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("cleaners.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    car_plate_number: Mapped[str] = mapped_column(String(20), nullable=False)
    car_plate_emirate: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    car_plate_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    service_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    vat_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[OfflineJobStatus] = mapped_column(
        enum_column(OfflineJobStatus, "offline_job_status"),
        nullable=False,
        default=OfflineJobStatus.IN_PROGRESS,
    )
    completion_photo_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    cleaner: Mapped["Cleaner"] = relationship("Cleaner", lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<OfflineJob(id={self.id}, plate={self.car_plate_number}, "
            f"status={self.status}, total={self.total_amount})>"
        )

"""
SQLAlchemy models for the money side of the platform: per-job fee
breakdowns, the transaction ledger and company withdrawals.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_column, utcnow


class WithdrawalStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TransactionType(str, enum.Enum):
    CUSTOMER_PAYMENT = "customer_payment"
    ADMIN_PAYMENT = "admin_payment"
    REFUND = "refund"
    WITHDRAWAL = "withdrawal"


class TransactionDirection(str, enum.Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class JobFinancials(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Immutable fee breakdown captured when a job is paid.  One row per job."""
    __tablename__ = "job_financials"

    job_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("jobs.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    cleaner_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("cleaners.id", ondelete="SET NULL"),
        nullable=True,
    )

    base_job_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    base_tax: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tip_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tip_tax: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    platform_fee_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    platform_fee_tax: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_processing_fee_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False
    )
    gross_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    net_payable_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    platform_revenue: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="AED")

    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    refunded_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    refunded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<JobFinancials(job={self.job_id}, gross={self.gross_amount}, "
            f"net={self.net_payable_amount})>"
        )


class CompanyWithdrawal(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "company_withdrawals"

    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[WithdrawalStatus] = mapped_column(
        enum_column(WithdrawalStatus, "withdrawal_status"),
        nullable=False,
        default=WithdrawalStatus.PENDING,
    )
    # Bank transfer reference, filled in by the admin on completion
    reference_number: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    invoice_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    job_count_requested: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tips_requested: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    base_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    vat_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )

    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    processed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<CompanyWithdrawal(id={self.id}, company={self.company_id}, "
            f"amount={self.amount}, status={self.status})>"
        )


class Transaction(UUIDPrimaryKeyMixin, Base):
    """Append-only ledger row.  No updated_at: entries are never edited."""
    __tablename__ = "transactions"

    reference_number: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        enum_column(TransactionType, "transaction_type"),
        nullable=False,
    )
    direction: Mapped[TransactionDirection] = mapped_column(
        enum_column(TransactionDirection, "transaction_direction"),
        nullable=False,
        default=TransactionDirection.DEBIT,
    )

    job_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("jobs.id", ondelete="SET NULL"),
        nullable=True,
    )
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
    )
    withdrawal_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("company_withdrawals.id", ondelete="SET NULL"),
        nullable=True,
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="AED")

    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stripe_refund_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction(ref={self.reference_number}, type={self.type}, "
            f"{self.direction} {self.amount})>"
        )

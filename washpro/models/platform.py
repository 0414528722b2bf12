"""
SQLAlchemy models for platform-wide settings: company letterhead used on
receipts, and the fee rates in effect.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow


class PlatformSetting(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Single-row table holding the platform operator's details."""
    __tablename__ = "platform_settings"

    company_name: Mapped[str] = mapped_column(
        String(255), nullable=False, default="Washapp.ae"
    )
    company_address: Mapped[str] = mapped_column(
        Text, nullable=False, default="Dubai, United Arab Emirates"
    )
    vat_registration_number: Mapped[str] = mapped_column(
        String(100), nullable=False, default=""
    )
    logo_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<PlatformSetting(company_name={self.company_name})>"


class FeeSetting(UUIDPrimaryKeyMixin, Base):
    """Versioned fee rates.  The row with the latest ``effective_from`` that
    is not in the future is the one in force."""
    __tablename__ = "fee_settings"

    platform_fee_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 4), nullable=False, default=Decimal("0.10")
    )
    stripe_percent_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 4), nullable=False, default=Decimal("0.029")
    )
    stripe_fixed_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.30")
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="AED")
    effective_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<FeeSetting(rate={self.platform_fee_rate}, "
            f"stripe={self.stripe_percent_rate}+{self.stripe_fixed_fee})>"
        )

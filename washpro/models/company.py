"""
SQLAlchemy models for car-wash companies and their service-area geofences.
"""

import enum
import uuid
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_column


class FeePackageType(str, enum.Enum):
    CUSTOM = "custom"        # flat platform fee set per company
    PACKAGE1 = "package1"    # 2 AED + 5% of the wash price
    PACKAGE2 = "package2"    # offline payment, no platform fee


class CompanyPackageType(str, enum.Enum):
    PAY_PER_WASH = "pay_per_wash"
    SUBSCRIPTION = "subscription"


class Company(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Pricing
    price_per_wash: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("3.00")
    )
    fee_package_type: Mapped[FeePackageType] = mapped_column(
        enum_column(FeePackageType, "fee_package_type"),
        nullable=False,
        default=FeePackageType.CUSTOM,
    )
    package_type: Mapped[CompanyPackageType] = mapped_column(
        enum_column(CompanyPackageType, "company_package_type"),
        nullable=False,
        default=CompanyPackageType.PAY_PER_WASH,
    )
    subscription_cleaner_slots: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    # Owner
    admin_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Licensing (companies stay inactive until an admin approves them)
    trade_license_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    trade_license_document_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Running totals
    total_jobs_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_revenue: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    rating: Mapped[Decimal] = mapped_column(
        Numeric(3, 2), nullable=False, default=Decimal("0.00")
    )
    total_ratings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Legacy single service area: list of [lat, lng] pairs
    geofence_area: Mapped[Optional[Any]] = mapped_column(JSONB, nullable=True)

    geofences: Mapped[list["CompanyGeofence"]] = relationship(
        "CompanyGeofence",
        back_populates="company",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<Company(id={self.id}, name={self.name}, "
            f"active={self.is_active}, package={self.fee_package_type})>"
        )


class CompanyGeofence(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "company_geofences"

    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Closed ring of [lat, lng] vertices; the closing edge is implicit
    polygon: Mapped[Any] = mapped_column(JSONB, nullable=False)

    company: Mapped["Company"] = relationship("Company", back_populates="geofences")

    def __repr__(self) -> str:
        return f"<CompanyGeofence(id={self.id}, company={self.company_id}, name={self.name})>"

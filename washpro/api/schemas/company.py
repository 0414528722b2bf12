"""
Pydantic v2 schemas for companies, their geofences, cleaners, invitations,
shifts and dashboards.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import Field

from washpro.models import (
    Cleaner,
    CleanerStatus,
    CompanyPackageType,
    FeePackageType,
    InvitationStatus,
)
from washpro.services.feeCalculator import FeeBreakdown

from .common import CamelModel


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------

class FeesOut(CamelModel):
    """Customer-facing price breakdown of one wash."""

    car_wash_price: Decimal
    platform_fee: Decimal
    service_price: Decimal
    vat: Decimal
    total: Decimal
    fee_package_type: str
    display_breakdown: str

    @classmethod
    def from_breakdown(cls, fees: FeeBreakdown) -> "FeesOut":
        return cls(
            car_wash_price=fees.car_wash_price,
            platform_fee=fees.platform_fee,
            service_price=fees.service_price,
            vat=fees.vat,
            total=fees.total,
            fee_package_type=fees.fee_package_type.value,
            display_breakdown=fees.display_breakdown,
        )


class CompanyOut(CamelModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    price_per_wash: Decimal
    platform_fee: Decimal
    fee_package_type: FeePackageType
    package_type: CompanyPackageType
    admin_id: Optional[uuid.UUID] = None
    trade_license_number: Optional[str] = None
    trade_license_document_url: Optional[str] = None
    is_active: bool
    total_jobs_completed: int
    total_revenue: Decimal
    rating: Decimal
    total_ratings: int
    geofence_area: Optional[Any] = None
    created_at: datetime


class NearbyCompanyOut(CompanyOut):
    on_duty_cleaners_count: int
    distance_in_meters: float
    fees: FeesOut


class CompanySettingsUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    price_per_wash: Optional[Decimal] = Field(None, gt=0)
    trade_license_number: Optional[str] = Field(None, max_length=100)
    trade_license_document_url: Optional[str] = None
    geofence_area: Optional[list[list[float]]] = Field(None, min_length=3)


class FeePackageUpdate(CamelModel):
    fee_package_type: str = Field(..., pattern=r"^(custom|package1|package2)$")
    platform_fee: Optional[Decimal] = Field(None, ge=0)


class CompanyFinancialSummaryOut(CamelModel):
    company_id: uuid.UUID
    company_name: str
    total_jobs: int
    gross_revenue: Decimal
    net_payable: Decimal
    platform_fees: Decimal
    total_withdrawn: Decimal
    pending_withdrawals: Decimal
    available_balance: Decimal


# ---------------------------------------------------------------------------
# Geofences
# ---------------------------------------------------------------------------

class GeofenceIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    polygon: list[list[float]] = Field(
        ..., min_length=3, description="[[lat, lng], ...], at least 3 points"
    )


class GeofenceUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    polygon: Optional[list[list[float]]] = Field(None, min_length=3)


class GeofenceOut(CamelModel):
    id: uuid.UUID
    company_id: uuid.UUID
    name: str
    polygon: list[list[float]]
    created_at: datetime


class CleanerGeofenceAssignmentIn(CamelModel):
    geofence_ids: list[uuid.UUID] = Field(default_factory=list)
    assign_all: bool = False


# ---------------------------------------------------------------------------
# Cleaners
# ---------------------------------------------------------------------------

class CleanerOut(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    company_id: uuid.UUID
    display_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: CleanerStatus
    is_active: bool
    current_latitude: Optional[float] = None
    current_longitude: Optional[float] = None
    last_location_update: Optional[datetime] = None
    total_jobs_completed: int
    average_completion_time: Optional[int] = None
    rating: Decimal
    total_ratings: int

    @classmethod
    def from_cleaner(cls, cleaner: Cleaner) -> "CleanerOut":
        user = cleaner.user
        return cls(
            id=cleaner.id,
            user_id=cleaner.user_id,
            company_id=cleaner.company_id,
            display_name=user.display_name if user else None,
            email=user.email if user else None,
            phone=user.phone if user else None,
            status=cleaner.status,
            is_active=cleaner.is_active,
            current_latitude=cleaner.current_latitude,
            current_longitude=cleaner.current_longitude,
            last_location_update=cleaner.last_location_update,
            total_jobs_completed=cleaner.total_jobs_completed or 0,
            average_completion_time=cleaner.average_completion_time,
            rating=cleaner.rating,
            total_ratings=cleaner.total_ratings or 0,
        )


class InvitationIn(CamelModel):
    phone_number: str = Field(..., min_length=3, max_length=30)


class InvitationOut(CamelModel):
    id: uuid.UUID
    company_id: uuid.UUID
    phone: str
    status: InvitationStatus
    invited_by: Optional[uuid.UUID] = None
    consumed_at: Optional[datetime] = None
    created_at: datetime


class ShiftOut(CamelModel):
    id: uuid.UUID
    cleaner_id: uuid.UUID
    company_id: uuid.UUID
    shift_start: datetime
    shift_end: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    start_latitude: Optional[float] = None
    start_longitude: Optional[float] = None
    end_latitude: Optional[float] = None
    end_longitude: Optional[float] = None
    end_reason: Optional[str] = None


class CompanyShiftOut(ShiftOut):
    cleaner_name: Optional[str] = None


class LiveCleanerOut(CamelModel):
    cleaner: CleanerOut
    active_job_id: Optional[uuid.UUID] = None
    active_job_status: Optional[str] = None
    active_job_plate: Optional[str] = None
    shift_started_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

class CompanyAnalyticsOut(CamelModel):
    total_jobs_completed: int
    total_revenue: Decimal
    average_rating: Decimal
    active_cleaners: int
    jobs_this_month: int
    revenue_this_month: Decimal


class AdminAnalyticsOut(CamelModel):
    total_companies: int
    total_cleaners: int
    active_jobs: int
    completed_jobs: int
    total_revenue: Decimal
    revenue_this_month: Decimal

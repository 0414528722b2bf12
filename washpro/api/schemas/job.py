"""
Pydantic v2 schemas for booking, payment, tracking and the cleaner job
actions.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator

from washpro.models import AssignmentMode, JobStatus, OfflineJob, OfflineJobStatus, PaymentMethod

from .common import CamelModel, PaginationMeta


# ---------------------------------------------------------------------------
# Booking / payment
# ---------------------------------------------------------------------------

class CreatePaymentIntentRequest(CamelModel):
    """Request body for POST /create-payment-intent."""

    company_id: uuid.UUID
    car_plate_number: str = Field(..., min_length=1, max_length=20)
    car_plate_emirate: Optional[str] = Field(None, max_length=50)
    car_plate_code: Optional[str] = Field(None, max_length=10)
    location_address: str = Field(..., min_length=1)
    location_latitude: float = Field(..., ge=-90, le=90)
    location_longitude: float = Field(..., ge=-180, le=180)
    parking_number: Optional[str] = Field(None, max_length=50)
    customer_phone: Optional[str] = Field(None, max_length=30)
    customer_email: Optional[str] = Field(None, max_length=320)
    tip_amount: Decimal = Field(Decimal("0"), ge=0)
    requested_cleaner_email: Optional[str] = Field(None, max_length=320)
    payment_token: Optional[str] = Field(None, max_length=64)

    @field_validator("car_plate_number")
    @classmethod
    def _plate_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("car plate number is required")
        return value


class PaymentIntentOut(CamelModel):
    client_secret: str
    payment_intent_id: str
    job_id: uuid.UUID
    amount: Decimal
    currency: str
    publishable_key: Optional[str] = None


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

class JobOut(CamelModel):
    id: uuid.UUID
    customer_id: Optional[uuid.UUID] = None
    company_id: uuid.UUID
    cleaner_id: Optional[uuid.UUID] = None
    car_plate_number: str
    car_plate_emirate: Optional[str] = None
    car_plate_code: Optional[str] = None
    location_address: str
    location_latitude: float
    location_longitude: float
    parking_number: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    price: Decimal
    platform_fee: Decimal
    tax_amount: Decimal
    tip_amount: Decimal
    total_amount: Decimal
    payment_method: PaymentMethod
    status: JobStatus
    assignment_mode: AssignmentMode
    receipt_number: Optional[str] = None
    refund_reason: Optional[str] = None
    proof_photo_url: Optional[str] = None
    rating: Optional[int] = None
    review: Optional[str] = None
    created_at: datetime
    paid_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None


class JobListResponse(CamelModel):
    data: list[JobOut]
    meta: PaginationMeta


class RateJobRequest(CamelModel):
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(None, max_length=2000)


class CancelJobRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)


class RefundJobRequest(CamelModel):
    reason: str = Field("Refund issued", min_length=1, max_length=500)


class CompleteJobRequest(CamelModel):
    proof_photo_url: Optional[str] = None


class WebhookResultOut(CamelModel):
    event_type: str
    processed: bool
    message: str


# ---------------------------------------------------------------------------
# Offline (cash) jobs
# ---------------------------------------------------------------------------

class OfflineJobIn(CamelModel):
    car_plate_number: str = Field(..., min_length=1, max_length=20)
    car_plate_emirate: Optional[str] = Field(None, max_length=50)
    car_plate_code: Optional[str] = Field(None, max_length=10)
    service_price: Optional[Decimal] = Field(None, gt=0)
    notes: Optional[str] = Field(None, max_length=2000)


class OfflineJobCompleteIn(CamelModel):
    completion_photo_url: Optional[str] = None


class OfflineJobOut(CamelModel):
    id: uuid.UUID
    cleaner_id: uuid.UUID
    company_id: uuid.UUID
    cleaner_name: Optional[str] = None
    car_plate_number: str
    car_plate_emirate: Optional[str] = None
    car_plate_code: Optional[str] = None
    service_price: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    notes: Optional[str] = None
    status: OfflineJobStatus
    completion_photo_url: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_job(cls, job: OfflineJob) -> "OfflineJobOut":
        user = job.cleaner.user if job.cleaner else None
        return cls.model_validate(job).model_copy(
            update={"cleaner_name": user.display_name if user else None}
        )


class OfflineJobListResponse(CamelModel):
    data: list[OfflineJobOut]
    meta: PaginationMeta

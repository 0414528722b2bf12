"""
Pydantic v2 schemas for the cleaner app: availability, location, shifts,
dashboard, tips and QR payment tokens.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from washpro.models import CleanerStatus

from .common import CamelModel
from .job import JobOut


class LocationIn(CamelModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class ShiftActionIn(CamelModel):
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class ToggleStatusIn(ShiftActionIn):
    status: CleanerStatus


class DashboardOut(CamelModel):
    cleaner_id: uuid.UUID
    status: CleanerStatus
    total_jobs_completed: int
    rating: Decimal
    total_ratings: int
    jobs_completed_today: int
    tips_today: Decimal
    active_job: Optional[JobOut] = None
    shift_started_at: Optional[datetime] = None
    shift_minutes: Optional[int] = None


class TipsOut(CamelModel):
    total_tips: Decimal
    tip_count: int
    jobs: list[JobOut]


class PaymentTokenOut(CamelModel):
    token: str
    expires_at: datetime
    payment_url: str


class PaymentTokenInfoOut(CamelModel):
    token: str
    company_id: uuid.UUID
    company_name: str
    cleaner_id: uuid.UUID
    cleaner_name: Optional[str] = None
    expires_at: datetime

"""
Pydantic v2 schemas for platform settings and fee settings (admin only).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from .common import CamelModel


class PlatformSettingsOut(CamelModel):
    id: uuid.UUID
    company_name: str
    company_address: str
    vat_registration_number: str
    logo_url: Optional[str] = None
    updated_at: datetime


class PlatformSettingsUpdate(CamelModel):
    company_name: Optional[str] = Field(None, min_length=1, max_length=255)
    company_address: Optional[str] = None
    vat_registration_number: Optional[str] = Field(None, max_length=100)
    logo_url: Optional[str] = None


class FeeSettingIn(CamelModel):
    platform_fee_rate: Decimal = Field(..., ge=0, le=1)
    stripe_percent_rate: Decimal = Field(..., ge=0, le=1)
    stripe_fixed_fee: Decimal = Field(..., ge=0)
    currency: str = Field("AED", min_length=3, max_length=3)
    effective_from: Optional[datetime] = None


class FeeSettingOut(CamelModel):
    id: uuid.UUID
    platform_fee_rate: Decimal
    stripe_percent_rate: Decimal
    stripe_fixed_fee: Decimal
    currency: str
    effective_from: datetime
    created_at: datetime

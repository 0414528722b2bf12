"""
Pydantic v2 schemas for complaints and refund requests.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field

from washpro.models import ComplaintStatus, ComplaintType

from .common import CamelModel


class ComplaintCreateRequest(CamelModel):
    job_id: uuid.UUID
    type: ComplaintType
    description: str = Field(..., min_length=1, max_length=5000)


class ComplaintStatusUpdate(CamelModel):
    status: ComplaintStatus
    resolution: Optional[str] = Field(None, max_length=5000)


class ComplaintRefundRequest(CamelModel):
    resolution: Optional[str] = Field(None, max_length=5000)


class ComplaintOut(CamelModel):
    id: uuid.UUID
    reference_number: str
    job_id: uuid.UUID
    company_id: uuid.UUID
    customer_id: Optional[uuid.UUID] = None
    type: ComplaintType
    description: str
    status: ComplaintStatus
    resolution: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[uuid.UUID] = None
    refunded_at: Optional[datetime] = None
    refunded_by: Optional[uuid.UUID] = None
    stripe_refund_id: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    created_at: datetime

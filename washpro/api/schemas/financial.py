"""
Pydantic v2 schemas for company financials, the ledger and withdrawals.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from washpro.models import TransactionDirection, TransactionType, WithdrawalStatus

from .common import CamelModel, PaginationMeta


class FinancialOverviewOut(CamelModel):
    company_id: uuid.UUID
    total_jobs: int
    gross_revenue: Decimal
    net_payable: Decimal
    total_tax: Decimal
    total_tips: Decimal
    platform_fees: Decimal
    processing_fees: Decimal
    refunded_amount: Decimal
    total_withdrawn: Decimal
    pending_withdrawals: Decimal
    available_balance: Decimal


class JobFinancialsOut(CamelModel):
    id: uuid.UUID
    job_id: uuid.UUID
    company_id: uuid.UUID
    cleaner_id: Optional[uuid.UUID] = None
    base_job_amount: Decimal
    base_tax: Decimal
    tip_amount: Decimal
    tip_tax: Decimal
    platform_fee_amount: Decimal
    platform_fee_tax: Decimal
    payment_processing_fee_amount: Decimal
    gross_amount: Decimal
    net_payable_amount: Decimal
    tax_amount: Decimal
    platform_revenue: Decimal
    currency: str
    paid_at: datetime
    refunded_amount: Decimal
    refunded_at: Optional[datetime] = None


class JobFinancialsListResponse(CamelModel):
    data: list[JobFinancialsOut]
    meta: PaginationMeta


class WithdrawalBalanceOut(CamelModel):
    price_per_wash: Decimal
    total_completed_jobs: int
    requested_jobs: int
    available_jobs: int
    available_job_value: Decimal
    total_tips: Decimal
    requested_tips: Decimal
    available_tips: Decimal


class WithdrawalRequestIn(CamelModel):
    job_count: int = Field(..., ge=0)
    tips: Decimal = Field(Decimal("0"), ge=0)
    note: Optional[str] = Field(None, max_length=1000)


class ProcessWithdrawalIn(CamelModel):
    status: WithdrawalStatus
    reference_number: Optional[str] = Field(None, max_length=255)
    note: Optional[str] = Field(None, max_length=1000)
    invoice_url: Optional[str] = None


class WithdrawalOut(CamelModel):
    id: uuid.UUID
    company_id: uuid.UUID
    amount: Decimal
    status: WithdrawalStatus
    reference_number: Optional[str] = None
    note: Optional[str] = None
    invoice_url: Optional[str] = None
    job_count_requested: int
    tips_requested: Decimal
    base_amount: Decimal
    vat_amount: Decimal
    processed_at: Optional[datetime] = None
    processed_by: Optional[uuid.UUID] = None
    created_at: datetime


class TransactionOut(CamelModel):
    id: uuid.UUID
    reference_number: str
    type: TransactionType
    direction: TransactionDirection
    job_id: Optional[uuid.UUID] = None
    company_id: Optional[uuid.UUID] = None
    withdrawal_id: Optional[uuid.UUID] = None
    amount: Decimal
    currency: str
    stripe_payment_intent_id: Optional[str] = None
    stripe_refund_id: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime

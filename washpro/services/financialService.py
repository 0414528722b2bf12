"""
Financial Service
=================

Money bookkeeping for jobs and companies:

  - ``calculate_job_fees``          -- per-job fee / tax / processing split
  - ``create_job_financial_record`` -- immutable breakdown, one per paid job
  - ``record_transaction``          -- append-only ledger
  - company overview, financial job list and withdrawal balance
  - ``request_withdrawal`` / ``process_withdrawal``

Every tax is 5%.  The platform keeps 5% of the platform fee; the other 95%
of the fee goes to the company.  Stripe's processing fee is charged on the
total the customer pays.
"""

from __future__ import annotations

import logging
import random
import string
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from washpro.models import (
    Company,
    CompanyWithdrawal,
    Job,
    JobFinancials,
    JobStatus,
    Transaction,
    TransactionDirection,
    TransactionType,
    WithdrawalStatus,
)
from washpro.models.base import utcnow
from washpro.services.companyService import CompanyNotFoundError
from washpro.services.feeCalculator import VAT_RATE, Number, round2
from washpro.services.settingsService import get_current_fee_setting

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TAX_RATE = VAT_RATE
PLATFORM_REVENUE_RATE = Decimal("0.05")
DEFAULT_PLATFORM_FEE = Decimal("3.00")
DEFAULT_STRIPE_PERCENT_RATE = Decimal("0.029")
DEFAULT_STRIPE_FIXED_FEE = Decimal("1.00")

_ZERO = Decimal("0.00")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class WithdrawalError(Exception):
    """Raised when a withdrawal request or processing step is invalid."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class WithdrawalNotFoundError(Exception):
    def __init__(self, withdrawal_id: uuid.UUID) -> None:
        self.withdrawal_id = withdrawal_id
        super().__init__(f"Withdrawal with id '{withdrawal_id}' not found.")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class JobFeeBreakdown:
    base_job_amount: Decimal
    base_tax: Decimal
    tip_amount: Decimal
    tip_tax: Decimal
    platform_fee_amount: Decimal
    platform_fee_tax: Decimal
    platform_fee_to_company: Decimal
    platform_revenue: Decimal
    total_amount: Decimal                  # what the customer pays
    payment_processing_fee_amount: Decimal
    gross_amount: Decimal
    net_payable_amount: Decimal            # what the company is owed
    tax_amount: Decimal                    # base + tip + fee taxes


@dataclass(frozen=True)
class CompanyFinancialOverview:
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


@dataclass(frozen=True)
class WithdrawalBalance:
    price_per_wash: Decimal
    total_completed_jobs: int
    requested_jobs: int
    available_jobs: int
    available_job_value: Decimal
    total_tips: Decimal
    requested_tips: Decimal
    available_tips: Decimal


# ---------------------------------------------------------------------------
# Fee calculation
# ---------------------------------------------------------------------------

def calculate_job_fees(
    base_amount: Number,
    tip_amount: Number = 0,
    platform_fee: Number = DEFAULT_PLATFORM_FEE,
    *,
    stripe_percent_rate: Number = DEFAULT_STRIPE_PERCENT_RATE,
    stripe_fixed_fee: Number = DEFAULT_STRIPE_FIXED_FEE,
) -> JobFeeBreakdown:
    """Split what a customer pays for one job into its accounting parts.

    Each component is rounded to two decimals before it is summed, so the
    parts always add up to the stored totals.

    Args:
        base_amount: The company's price for the wash.
        tip_amount: Tip for the cleaner (taxed like everything else).
        platform_fee: Flat platform fee charged to the customer.
        stripe_percent_rate: Card processing percentage.
        stripe_fixed_fee: Card processing fixed fee per charge.

    Returns:
        A ``JobFeeBreakdown``.
    """
    base = round2(base_amount)
    tip = round2(tip_amount)
    fee = round2(platform_fee)

    base_tax = round2(base * TAX_RATE)
    tip_tax = round2(tip * TAX_RATE)
    fee_tax = round2(fee * TAX_RATE)
    tax_amount = round2(base_tax + tip_tax + fee_tax)

    platform_revenue = round2(fee * PLATFORM_REVENUE_RATE)
    fee_to_company = round2(fee * (1 - PLATFORM_REVENUE_RATE))

    total = round2(base + base_tax + tip + tip_tax + fee + fee_tax)
    processing = round2(
        total * Decimal(str(stripe_percent_rate)) + Decimal(str(stripe_fixed_fee))
    )
    gross = round2(total + processing)
    net = round2(gross - fee - fee_tax - processing)

    return JobFeeBreakdown(
        base_job_amount=base,
        base_tax=base_tax,
        tip_amount=tip,
        tip_tax=tip_tax,
        platform_fee_amount=fee,
        platform_fee_tax=fee_tax,
        platform_fee_to_company=fee_to_company,
        platform_revenue=platform_revenue,
        total_amount=total,
        payment_processing_fee_amount=processing,
        gross_amount=gross,
        net_payable_amount=net,
        tax_amount=tax_amount,
    )


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

def generate_transaction_reference(transaction_type: str, entity_id: object) -> str:
    """Build a unique ledger reference: ``TYPE-id-epochms-RAND6``."""
    chars = string.ascii_uppercase + string.digits
    suffix = "".join(random.choices(chars, k=6))
    epoch_ms = int(time.time() * 1000)
    return f"{transaction_type.upper()}-{entity_id}-{epoch_ms}-{suffix}"


async def record_transaction(
    db: AsyncSession,
    *,
    transaction_type: TransactionType,
    amount: Number,
    direction: TransactionDirection = TransactionDirection.DEBIT,
    job_id: Optional[uuid.UUID] = None,
    company_id: Optional[uuid.UUID] = None,
    withdrawal_id: Optional[uuid.UUID] = None,
    stripe_payment_intent_id: Optional[str] = None,
    stripe_refund_id: Optional[str] = None,
    description: Optional[str] = None,
    currency: str = "AED",
) -> Transaction:
    """Append one entry to the transaction ledger."""
    entity_id = job_id or withdrawal_id or company_id or uuid.uuid4()
    txn = Transaction(
        id=uuid.uuid4(),
        reference_number=generate_transaction_reference(transaction_type.value, entity_id),
        type=transaction_type,
        direction=direction,
        job_id=job_id,
        company_id=company_id,
        withdrawal_id=withdrawal_id,
        amount=round2(amount),
        currency=currency,
        stripe_payment_intent_id=stripe_payment_intent_id,
        stripe_refund_id=stripe_refund_id,
        description=description,
    )
    db.add(txn)
    await db.flush()
    logger.info(
        "Ledger entry %s: %s %s %s",
        txn.reference_number,
        transaction_type.value,
        direction.value,
        txn.amount,
    )
    return txn


async def list_transactions(
    db: AsyncSession,
    *,
    company_id: Optional[uuid.UUID] = None,
    job_id: Optional[uuid.UUID] = None,
    limit: int = 100,
) -> Sequence[Transaction]:
    filters = []
    if company_id is not None:
        filters.append(Transaction.company_id == company_id)
    if job_id is not None:
        filters.append(Transaction.job_id == job_id)
    result = await db.execute(
        select(Transaction)
        .where(*filters)
        .order_by(Transaction.created_at.desc())
        .limit(limit)
    )
    return result.scalars().all()


# ---------------------------------------------------------------------------
# Job financial records
# ---------------------------------------------------------------------------

async def get_job_financials(
    db: AsyncSession,
    job_id: uuid.UUID,
) -> Optional[JobFinancials]:
    result = await db.execute(
        select(JobFinancials).where(JobFinancials.job_id == job_id)
    )
    return result.scalar_one_or_none()


async def create_job_financial_record(
    db: AsyncSession,
    job: Job,
    paid_at: Optional[datetime] = None,
) -> JobFinancials:
    """Capture the fee breakdown of a paid job.

    Idempotent: if a record already exists for the job it is returned
    unchanged.  Card processing rates come from the fee setting in force,
    falling back to 2.9% + 1.00 AED.
    """
    existing = await get_job_financials(db, job.id)
    if existing is not None:
        return existing

    percent_rate = DEFAULT_STRIPE_PERCENT_RATE
    fixed_fee = DEFAULT_STRIPE_FIXED_FEE
    fee_setting = await get_current_fee_setting(db)
    if fee_setting is not None:
        percent_rate = fee_setting.stripe_percent_rate
        fixed_fee = fee_setting.stripe_fixed_fee

    fees = calculate_job_fees(
        job.price,
        job.tip_amount or _ZERO,
        job.platform_fee if job.platform_fee is not None else DEFAULT_PLATFORM_FEE,
        stripe_percent_rate=percent_rate,
        stripe_fixed_fee=fixed_fee,
    )

    record = JobFinancials(
        id=uuid.uuid4(),
        job_id=job.id,
        company_id=job.company_id,
        cleaner_id=job.cleaner_id,
        base_job_amount=fees.base_job_amount,
        base_tax=fees.base_tax,
        tip_amount=fees.tip_amount,
        tip_tax=fees.tip_tax,
        platform_fee_amount=fees.platform_fee_amount,
        platform_fee_tax=fees.platform_fee_tax,
        payment_processing_fee_amount=fees.payment_processing_fee_amount,
        gross_amount=fees.gross_amount,
        net_payable_amount=fees.net_payable_amount,
        tax_amount=fees.tax_amount,
        platform_revenue=fees.platform_revenue,
        currency="AED",
        paid_at=paid_at or utcnow(),
        refunded_amount=_ZERO,
    )
    db.add(record)
    await db.flush()
    logger.info(
        "Financial record created for job %s: gross=%s net=%s",
        job.id,
        fees.gross_amount,
        fees.net_payable_amount,
    )
    return record


async def mark_financials_refunded(
    db: AsyncSession,
    job_id: uuid.UUID,
    amount: Number,
) -> Optional[JobFinancials]:
    record = await get_job_financials(db, job_id)
    if record is None:
        return None
    record.refunded_amount = round2((record.refunded_amount or _ZERO) + round2(amount))
    record.refunded_at = utcnow()
    await db.flush()
    return record


# ---------------------------------------------------------------------------
# Company views
# ---------------------------------------------------------------------------

async def _sum_withdrawals(
    db: AsyncSession,
    company_id: uuid.UUID,
    status: WithdrawalStatus,
) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(CompanyWithdrawal.amount), 0)).where(
            CompanyWithdrawal.company_id == company_id,
            CompanyWithdrawal.status == status,
        )
    )
    return round2(result.scalar_one())


async def get_company_financial_overview(
    db: AsyncSession,
    company_id: uuid.UUID,
) -> CompanyFinancialOverview:
    """Aggregate the company's financial records and withdrawals."""
    totals = (
        await db.execute(
            select(
                func.count(JobFinancials.id),
                func.coalesce(func.sum(JobFinancials.gross_amount), 0),
                func.coalesce(func.sum(JobFinancials.net_payable_amount), 0),
                func.coalesce(func.sum(JobFinancials.tax_amount), 0),
                func.coalesce(func.sum(JobFinancials.tip_amount), 0),
                func.coalesce(func.sum(JobFinancials.platform_fee_amount), 0),
                func.coalesce(func.sum(JobFinancials.payment_processing_fee_amount), 0),
                func.coalesce(func.sum(JobFinancials.refunded_amount), 0),
            ).where(JobFinancials.company_id == company_id)
        )
    ).one()

    total_withdrawn = await _sum_withdrawals(db, company_id, WithdrawalStatus.COMPLETED)
    pending = await _sum_withdrawals(db, company_id, WithdrawalStatus.PENDING)

    net = round2(totals[2])
    refunded = round2(totals[7])
    available = round2(max(net - refunded - total_withdrawn - pending, _ZERO))

    return CompanyFinancialOverview(
        company_id=company_id,
        total_jobs=int(totals[0]),
        gross_revenue=round2(totals[1]),
        net_payable=net,
        total_tax=round2(totals[3]),
        total_tips=round2(totals[4]),
        platform_fees=round2(totals[5]),
        processing_fees=round2(totals[6]),
        refunded_amount=refunded,
        total_withdrawn=total_withdrawn,
        pending_withdrawals=pending,
        available_balance=available,
    )


async def list_company_financial_jobs(
    db: AsyncSession,
    company_id: uuid.UUID,
    *,
    page: int = 1,
    page_size: int = 20,
):
    """Paginated financial records of the company, newest payment first."""
    from washpro.services.jobService import PaginatedResult

    count_stmt = select(func.count(JobFinancials.id)).where(
        JobFinancials.company_id == company_id
    )
    total_items: int = (await db.execute(count_stmt)).scalar_one()

    data_stmt = (
        select(JobFinancials)
        .where(JobFinancials.company_id == company_id)
        .order_by(JobFinancials.paid_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    records = (await db.execute(data_stmt)).scalars().all()

    return PaginatedResult(
        items=records,
        total_items=total_items,
        page=page,
        page_size=page_size,
    )


async def _get_company(db: AsyncSession, company_id: uuid.UUID) -> Company:
    result = await db.execute(select(Company).where(Company.id == company_id))
    company = result.scalar_one_or_none()
    if company is None:
        raise CompanyNotFoundError(company_id)
    return company


async def get_withdrawal_balance(
    db: AsyncSession,
    company_id: uuid.UUID,
) -> WithdrawalBalance:
    """What the company may still withdraw.

    Completed, paid jobs minus the jobs already claimed by non-cancelled
    withdrawals, valued at the current price per wash, plus unclaimed tips.
    """
    company = await _get_company(db, company_id)

    completed = (
        await db.execute(
            select(
                func.count(Job.id),
                func.coalesce(func.sum(Job.tip_amount), 0),
            ).where(
                Job.company_id == company_id,
                Job.status == JobStatus.COMPLETED,
                Job.paid_at.is_not(None),
            )
        )
    ).one()

    requested = (
        await db.execute(
            select(
                func.coalesce(func.sum(CompanyWithdrawal.job_count_requested), 0),
                func.coalesce(func.sum(CompanyWithdrawal.tips_requested), 0),
            ).where(
                CompanyWithdrawal.company_id == company_id,
                CompanyWithdrawal.status != WithdrawalStatus.CANCELLED,
            )
        )
    ).one()

    total_jobs = int(completed[0])
    requested_jobs = int(requested[0])
    available_jobs = max(total_jobs - requested_jobs, 0)

    total_tips = round2(completed[1])
    requested_tips = round2(requested[1])
    available_tips = round2(max(total_tips - requested_tips, _ZERO))

    price = round2(company.price_per_wash)

    return WithdrawalBalance(
        price_per_wash=price,
        total_completed_jobs=total_jobs,
        requested_jobs=requested_jobs,
        available_jobs=available_jobs,
        available_job_value=round2(price * available_jobs),
        total_tips=total_tips,
        requested_tips=requested_tips,
        available_tips=available_tips,
    )


async def request_withdrawal(
    db: AsyncSession,
    company_id: uuid.UUID,
    *,
    job_count: int,
    tips: Number = 0,
    note: Optional[str] = None,
) -> CompanyWithdrawal:
    """Create a pending withdrawal for some completed jobs and tips.

    ``amount = job_count * price_per_wash + 5% VAT + tips``.

    Raises:
        WithdrawalError: If the request is empty or exceeds what is
            available.
    """
    tips_value = round2(tips)
    if job_count < 0 or tips_value < 0:
        raise WithdrawalError("Job count and tips must not be negative.")
    if job_count == 0 and tips_value == 0:
        raise WithdrawalError("Withdrawal must include at least one job or some tips.")

    balance = await get_withdrawal_balance(db, company_id)
    if job_count > balance.available_jobs:
        raise WithdrawalError(
            f"Only {balance.available_jobs} completed jobs are available for withdrawal."
        )
    if tips_value > balance.available_tips:
        raise WithdrawalError(
            f"Only {balance.available_tips} AED in tips is available for withdrawal."
        )

    base = round2(balance.price_per_wash * job_count)
    vat = round2(base * TAX_RATE)
    amount = round2(base + vat + tips_value)

    withdrawal = CompanyWithdrawal(
        id=uuid.uuid4(),
        company_id=company_id,
        amount=amount,
        status=WithdrawalStatus.PENDING,
        note=note,
        job_count_requested=job_count,
        tips_requested=tips_value,
        base_amount=base,
        vat_amount=vat,
    )
    db.add(withdrawal)
    await db.flush()
    logger.info(
        "Withdrawal %s requested by company %s: jobs=%d tips=%s amount=%s",
        withdrawal.id,
        company_id,
        job_count,
        tips_value,
        amount,
    )
    return withdrawal


async def list_withdrawals(
    db: AsyncSession,
    *,
    company_id: Optional[uuid.UUID] = None,
    status: Optional[WithdrawalStatus] = None,
) -> Sequence[CompanyWithdrawal]:
    filters = []
    if company_id is not None:
        filters.append(CompanyWithdrawal.company_id == company_id)
    if status is not None:
        filters.append(CompanyWithdrawal.status == status)
    result = await db.execute(
        select(CompanyWithdrawal)
        .where(*filters)
        .order_by(CompanyWithdrawal.created_at.desc())
    )
    return result.scalars().all()


async def process_withdrawal(
    db: AsyncSession,
    withdrawal_id: uuid.UUID,
    *,
    new_status: WithdrawalStatus,
    processed_by: Optional[uuid.UUID] = None,
    reference_number: Optional[str] = None,
    note: Optional[str] = None,
    invoice_url: Optional[str] = None,
) -> CompanyWithdrawal:
    """Complete or cancel a pending withdrawal (admin action).

    Completing writes a ``withdrawal`` debit to the ledger.  Cancelling
    releases the claimed jobs and tips back to the company's balance.

    Raises:
        WithdrawalNotFoundError: Unknown withdrawal.
        WithdrawalError: Withdrawal is not pending or the status is not a
            final one.
    """
    if new_status not in (WithdrawalStatus.COMPLETED, WithdrawalStatus.CANCELLED):
        raise WithdrawalError("Withdrawals can only be completed or cancelled.")

    result = await db.execute(
        select(CompanyWithdrawal).where(CompanyWithdrawal.id == withdrawal_id)
    )
    withdrawal = result.scalar_one_or_none()
    if withdrawal is None:
        raise WithdrawalNotFoundError(withdrawal_id)
    if withdrawal.status != WithdrawalStatus.PENDING:
        raise WithdrawalError(
            f"Withdrawal is already {withdrawal.status.value}."
        )

    withdrawal.status = new_status
    withdrawal.processed_at = utcnow()
    withdrawal.processed_by = processed_by
    if reference_number:
        withdrawal.reference_number = reference_number
    if note:
        withdrawal.note = note
    if invoice_url:
        withdrawal.invoice_url = invoice_url
    await db.flush()

    if new_status == WithdrawalStatus.COMPLETED:
        await record_transaction(
            db,
            transaction_type=TransactionType.WITHDRAWAL,
            direction=TransactionDirection.DEBIT,
            amount=withdrawal.amount,
            company_id=withdrawal.company_id,
            withdrawal_id=withdrawal.id,
            description=f"Withdrawal paid out (ref {withdrawal.reference_number or '-'})",
        )

    logger.info(
        "Withdrawal %s %s by %s",
        withdrawal.id,
        new_status.value,
        processed_by,
    )
    return withdrawal


async def get_company_financial_summaries(db: AsyncSession) -> list[dict]:
    """One row per company for the admin financial dashboard."""
    companies = (
        await db.execute(select(Company).order_by(Company.name))
    ).scalars().all()

    summaries: list[dict] = []
    for company in companies:
        overview = await get_company_financial_overview(db, company.id)
        summaries.append({
            "company_id": company.id,
            "company_name": company.name,
            "total_jobs": overview.total_jobs,
            "gross_revenue": overview.gross_revenue,
            "net_payable": overview.net_payable,
            "platform_fees": overview.platform_fees,
            "total_withdrawn": overview.total_withdrawn,
            "pending_withdrawals": overview.pending_withdrawals,
            "available_balance": overview.available_balance,
        })
    return summaries

"""
Dashboard analytics for the platform admin and for company admins.

Revenue figures sum the wash ``price`` of completed jobs (tips, VAT and
platform fees are excluded).  "This month" starts at midnight UTC on the
first day of the current month and is keyed on the job's creation time.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from washpro.models import Cleaner, CleanerStatus, Company, Job, JobStatus
from washpro.models.base import utcnow
from washpro.services.feeCalculator import round2


@dataclass(frozen=True)
class AdminAnalytics:
    total_companies: int
    total_cleaners: int
    active_jobs: int
    completed_jobs: int
    total_revenue: Decimal
    revenue_this_month: Decimal


@dataclass(frozen=True)
class CompanyAnalytics:
    total_jobs_completed: int
    total_revenue: Decimal
    average_rating: Decimal
    active_cleaners: int
    jobs_this_month: int
    revenue_this_month: Decimal


def start_of_month(now: Optional[datetime] = None) -> datetime:
    now = now or utcnow()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def _count(db: AsyncSession, stmt) -> int:
    return int((await db.execute(stmt)).scalar_one() or 0)


async def _sum_price(db: AsyncSession, *filters) -> Decimal:
    total = (
        await db.execute(select(func.coalesce(func.sum(Job.price), 0)).where(*filters))
    ).scalar_one()
    return round2(total or 0)


async def get_admin_analytics(
    db: AsyncSession,
    now: Optional[datetime] = None,
) -> AdminAnalytics:
    month_start = start_of_month(now)
    completed = Job.status == JobStatus.COMPLETED
    return AdminAnalytics(
        total_companies=await _count(db, select(func.count(Company.id))),
        total_cleaners=await _count(db, select(func.count(Cleaner.id))),
        active_jobs=await _count(
            db, select(func.count(Job.id)).where(Job.status == JobStatus.IN_PROGRESS)
        ),
        completed_jobs=await _count(db, select(func.count(Job.id)).where(completed)),
        total_revenue=await _sum_price(db, completed),
        revenue_this_month=await _sum_price(db, completed, Job.created_at >= month_start),
    )


async def get_company_analytics(
    db: AsyncSession,
    company_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> CompanyAnalytics:
    """Company dashboard figures.

    Lifetime totals come from the counters kept on the company row; the
    monthly figures are computed from the jobs table.
    """
    month_start = start_of_month(now)
    company = await db.get(Company, company_id)

    active_cleaners = await _count(
        db,
        select(func.count(Cleaner.id)).where(
            Cleaner.company_id == company_id,
            Cleaner.status == CleanerStatus.ON_DUTY,
        ),
    )
    jobs_this_month = await _count(
        db,
        select(func.count(Job.id)).where(
            Job.company_id == company_id,
            Job.created_at >= month_start,
        ),
    )
    revenue_this_month = await _sum_price(
        db,
        Job.company_id == company_id,
        Job.status == JobStatus.COMPLETED,
        Job.created_at >= month_start,
    )

    return CompanyAnalytics(
        total_jobs_completed=(company.total_jobs_completed or 0) if company else 0,
        total_revenue=round2(company.total_revenue or 0) if company else Decimal("0.00"),
        average_rating=Decimal(company.rating or 0) if company else Decimal("0.00"),
        active_cleaners=active_cleaners,
        jobs_this_month=jobs_this_month,
        revenue_this_month=revenue_this_month,
    )

"""
Offline Job Service
===================

Cash washes recorded by cleaners of companies on the offline fee package
(``package2``).  These never touch Stripe or the platform ledger: the
customer pays the cleaner the wash price plus VAT and the company settles
platform fees separately.

Lifecycle: ``in_progress`` when the cleaner logs the car, ``completed``
once the after-wash photo is uploaded.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from washpro.models import (
    Cleaner,
    Company,
    FeePackageType,
    OfflineJob,
    OfflineJobStatus,
)
from washpro.models.base import utcnow
from washpro.services import feeCalculator
from washpro.services.companyService import CompanyNotFoundError
from washpro.services.feeCalculator import Number, round2
from washpro.services.jobService import PaginatedResult, normalize_plate

logger = logging.getLogger(__name__)


class OfflineJobNotFoundError(Exception):
    def __init__(self, job_id: object) -> None:
        self.job_id = job_id
        super().__init__(f"Offline job '{job_id}' not found.")


class OfflineJobError(ValueError):
    """Raised when an offline job cannot be recorded or completed."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


async def create_offline_job(
    db: AsyncSession,
    cleaner: Cleaner,
    *,
    car_plate_number: str,
    car_plate_emirate: Optional[str] = None,
    car_plate_code: Optional[str] = None,
    service_price: Optional[Number] = None,
    notes: Optional[str] = None,
) -> OfflineJob:
    """Log a cash wash.

    ``service_price`` defaults to the company's price per wash; VAT is added
    on top and no platform fee is charged.

    Raises:
        CompanyNotFoundError: The cleaner's company is gone.
        OfflineJobError: Company not on the offline package, cleaner
            deactivated, empty plate or non-positive price.
    """
    company = await db.get(Company, cleaner.company_id)
    if company is None:
        raise CompanyNotFoundError(cleaner.company_id)
    if company.fee_package_type != FeePackageType.PACKAGE2:
        raise OfflineJobError("Offline jobs need the offline payment package")
    if not cleaner.is_active:
        raise OfflineJobError("Deactivated cleaners cannot record jobs")

    plate = normalize_plate(car_plate_number or "")
    if not plate:
        raise OfflineJobError("Car plate number is required")
    price = round2(service_price if service_price is not None else company.price_per_wash)
    if price <= 0:
        raise OfflineJobError("Service price must be positive")
    vat = round2(price * feeCalculator.VAT_RATE)

    job = OfflineJob(
        id=uuid.uuid4(),
        cleaner_id=cleaner.id,
        company_id=company.id,
        car_plate_number=plate,
        car_plate_emirate=car_plate_emirate,
        car_plate_code=car_plate_code,
        service_price=price,
        vat_amount=vat,
        total_amount=round2(price + vat),
        notes=notes,
        status=OfflineJobStatus.IN_PROGRESS,
    )
    job.cleaner = cleaner
    db.add(job)
    await db.flush()
    logger.info(
        "Offline job %s recorded by cleaner %s (plate=%s, total=%s)",
        job.id,
        cleaner.id,
        plate,
        job.total_amount,
    )
    return job


async def complete_offline_job(
    db: AsyncSession,
    cleaner: Cleaner,
    job_id: uuid.UUID,
    *,
    photo_url: Optional[str] = None,
) -> OfflineJob:
    job = await db.get(OfflineJob, job_id)
    if job is None or job.cleaner_id != cleaner.id:
        raise OfflineJobNotFoundError(job_id)
    if job.status != OfflineJobStatus.IN_PROGRESS:
        raise OfflineJobError("Offline job is already completed")
    job.status = OfflineJobStatus.COMPLETED
    job.completion_photo_url = photo_url
    job.completed_at = utcnow()
    await db.flush()
    logger.info("Offline job %s completed", job.id)
    return job


async def list_cleaner_offline_jobs(
    db: AsyncSession,
    cleaner: Cleaner,
    *,
    limit: int = 50,
) -> Sequence[OfflineJob]:
    result = await db.execute(
        select(OfflineJob)
        .where(OfflineJob.cleaner_id == cleaner.id)
        .order_by(OfflineJob.created_at.desc())
        .limit(limit)
    )
    return result.unique().scalars().all()


async def list_company_offline_jobs(
    db: AsyncSession,
    company_id: uuid.UUID,
    *,
    cleaner_id: Optional[uuid.UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResult:
    """Offline jobs of a company, newest first.

    ``start_date`` and ``end_date`` are inclusive calendar days in UTC.
    """
    if start_date and end_date and start_date > end_date:
        raise OfflineJobError("startDate must not be after endDate")

    filters = [OfflineJob.company_id == company_id]
    if cleaner_id is not None:
        filters.append(OfflineJob.cleaner_id == cleaner_id)
    if start_date is not None:
        filters.append(OfflineJob.created_at >= _day_start(start_date))
    if end_date is not None:
        filters.append(OfflineJob.created_at < _day_start(end_date + timedelta(days=1)))

    total_items: int = (
        await db.execute(select(func.count(OfflineJob.id)).where(*filters))
    ).scalar_one()
    jobs = (
        await db.execute(
            select(OfflineJob)
            .where(*filters)
            .order_by(OfflineJob.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).unique().scalars().all()
    return PaginatedResult(
        items=jobs,
        total_items=total_items,
        page=page,
        page_size=page_size,
    )

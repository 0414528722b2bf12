"""
Company Service
===============

Company lookup, customer-facing matching and territory management.

Key functions:
  - find_nearby_companies -- active companies with on-duty cleaners close
    to the customer, restricted by each company's geofences
  - get_company_fees      -- fee breakdown a customer would pay
  - approve_company / reject_company / set_company_fee_package (admin)
  - geofence CRUD and cleaner geofence assignments
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from washpro.core.config import settings
from washpro.models import (
    Cleaner,
    CleanerGeofenceAssignment,
    CleanerStatus,
    Company,
    CompanyGeofence,
    FeePackageType,
    User,
)
from washpro.services.feeCalculator import (
    FeeBreakdown,
    calculate_fees,
    normalize_package_type,
    round2,
)
from washpro.services.geoService import (
    haversine_distance_m,
    is_valid_coordinate,
    point_in_polygon,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class CompanyNotFoundError(Exception):
    """Raised when a company cannot be found by ID."""

    def __init__(self, company_id: uuid.UUID) -> None:
        self.company_id = company_id
        super().__init__(f"Company with id '{company_id}' not found.")


class GeofenceNotFoundError(Exception):
    def __init__(self, geofence_id: uuid.UUID) -> None:
        self.geofence_id = geofence_id
        super().__init__(f"Geofence with id '{geofence_id}' not found.")


class GeofenceValidationError(ValueError):
    """Raised for malformed polygons."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NearbyCompany:
    company: Company
    on_duty_cleaners_count: int
    distance_in_meters: float
    fees: FeeBreakdown


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

async def get_company(db: AsyncSession, company_id: uuid.UUID) -> Company:
    result = await db.execute(select(Company).where(Company.id == company_id))
    company = result.scalar_one_or_none()
    if company is None:
        raise CompanyNotFoundError(company_id)
    return company


async def list_companies(
    db: AsyncSession,
    *,
    active_only: bool = True,
) -> Sequence[Company]:
    stmt = select(Company).order_by(Company.name)
    if active_only:
        stmt = stmt.where(Company.is_active.is_(True))
    return (await db.execute(stmt)).scalars().all()


def company_fees(company: Company) -> FeeBreakdown:
    return calculate_fees(
        company.price_per_wash,
        company.fee_package_type,
        company.platform_fee,
    )


async def get_company_fees(db: AsyncSession, company_id: uuid.UUID) -> FeeBreakdown:
    return company_fees(await get_company(db, company_id))


# ---------------------------------------------------------------------------
# Geofence containment
# ---------------------------------------------------------------------------

def company_serves_point(
    company: Company,
    geofences: Sequence[CompanyGeofence],
    lat: float,
    lng: float,
) -> bool:
    """Whether a customer location is inside the company's territory.

    Companies without any geofence serve everywhere.  The per-company
    ``geofence_area`` polygon is only consulted when no named geofences
    exist.
    """
    if geofences:
        return any(point_in_polygon(lat, lng, g.polygon) for g in geofences)
    if company.geofence_area:
        return point_in_polygon(lat, lng, company.geofence_area)
    return True


async def cleaner_serves_point(
    db: AsyncSession,
    cleaner: Cleaner,
    lat: float,
    lng: float,
) -> bool:
    """Cleaners without geofence assignments, or with ``assign_all``, serve
    the whole company territory."""
    rows = (
        await db.execute(
            select(CleanerGeofenceAssignment, CompanyGeofence)
            .outerjoin(
                CompanyGeofence,
                CompanyGeofence.id == CleanerGeofenceAssignment.geofence_id,
            )
            .where(CleanerGeofenceAssignment.cleaner_id == cleaner.id)
        )
    ).all()
    if not rows:
        return True
    for assignment, geofence in rows:
        if assignment.assign_all:
            return True
        if geofence is not None and point_in_polygon(lat, lng, geofence.polygon):
            return True
    return False


# ---------------------------------------------------------------------------
# Nearby matching
# ---------------------------------------------------------------------------

async def find_nearby_companies(
    db: AsyncSession,
    lat: float,
    lon: float,
    max_distance_m: Optional[float] = None,
) -> list[NearbyCompany]:
    """Find active companies with on-duty cleaners near a customer.

    A company qualifies when at least one of its on-duty cleaners is within
    ``max_distance_m`` (default 50 m) and the customer point lies inside the
    company's territory.

    Returns:
        One ``NearbyCompany`` per company, closest first.
    """
    if not is_valid_coordinate(lat, lon):
        raise ValueError("Invalid coordinates")
    radius = settings.nearby_radius_meters if max_distance_m is None else max_distance_m

    stmt = (
        select(Cleaner, Company)
        .join(Company, Company.id == Cleaner.company_id)
        .where(
            Company.is_active.is_(True),
            Cleaner.is_active.is_(True),
            Cleaner.status == CleanerStatus.ON_DUTY,
            Cleaner.current_latitude.is_not(None),
            Cleaner.current_longitude.is_not(None),
        )
    )
    rows = (await db.execute(stmt)).unique().all()

    companies: dict[uuid.UUID, Company] = {}
    distances: dict[uuid.UUID, list[float]] = defaultdict(list)
    for cleaner, company in rows:
        distance = haversine_distance_m(
            lat,
            lon,
            float(cleaner.current_latitude),
            float(cleaner.current_longitude),
        )
        if distance <= radius:
            companies[company.id] = company
            distances[company.id].append(distance)

    geofences_by_company: dict[uuid.UUID, list[CompanyGeofence]] = defaultdict(list)
    if companies:
        geofence_rows = await db.execute(
            select(CompanyGeofence).where(
                CompanyGeofence.company_id.in_(list(companies))
            )
        )
        for geofence in geofence_rows.scalars().all():
            geofences_by_company[geofence.company_id].append(geofence)

    results: list[NearbyCompany] = []
    for company_id, company in companies.items():
        if not company_serves_point(company, geofences_by_company[company_id], lat, lon):
            continue
        results.append(
            NearbyCompany(
                company=company,
                on_duty_cleaners_count=len(distances[company_id]),
                distance_in_meters=min(distances[company_id]),
                fees=company_fees(company),
            )
        )

    results.sort(key=lambda nc: nc.distance_in_meters)
    logger.info(
        "Nearby search at (%.6f, %.6f) r=%sm: %d companies",
        lat,
        lon,
        radius,
        len(results),
    )
    return results


# ---------------------------------------------------------------------------
# Company settings
# ---------------------------------------------------------------------------

_EDITABLE_FIELDS = (
    "name",
    "description",
    "price_per_wash",
    "trade_license_number",
    "trade_license_document_url",
    "geofence_area",
)


async def update_company_settings(
    db: AsyncSession,
    company_id: uuid.UUID,
    updates: dict[str, Any],
) -> Company:
    """Update the fields a company admin controls.

    Fee package and platform fee are admin-only; see
    ``set_company_fee_package``.
    """
    company = await get_company(db, company_id)
    for field_name in _EDITABLE_FIELDS:
        if field_name not in updates or updates[field_name] is None:
            continue
        value = updates[field_name]
        if field_name == "price_per_wash":
            value = round2(value)
            if value <= 0:
                raise ValueError("price_per_wash must be positive")
        if field_name == "geofence_area":
            value = validate_polygon(value)
        setattr(company, field_name, value)
    await db.flush()
    logger.info("Company %s settings updated", company_id)
    return company


# ---------------------------------------------------------------------------
# Admin actions
# ---------------------------------------------------------------------------

async def list_pending_companies(db: AsyncSession) -> Sequence[Company]:
    result = await db.execute(
        select(Company)
        .where(Company.is_active.is_(False))
        .order_by(Company.created_at)
    )
    return result.scalars().all()


async def approve_company(db: AsyncSession, company_id: uuid.UUID) -> Company:
    company = await get_company(db, company_id)
    company.is_active = True
    if company.admin_id is not None:
        owner = await db.get(User, company.admin_id)
        if owner is not None:
            owner.is_active = True
    await db.flush()
    logger.info("Company %s approved", company_id)
    return company


async def reject_company(db: AsyncSession, company_id: uuid.UUID) -> Company:
    """Keep the company inactive and lock its owner out."""
    company = await get_company(db, company_id)
    company.is_active = False
    if company.admin_id is not None:
        owner = await db.get(User, company.admin_id)
        if owner is not None:
            owner.is_active = False
    await db.flush()
    logger.info("Company %s rejected", company_id)
    return company


async def set_company_fee_package(
    db: AsyncSession,
    company_id: uuid.UUID,
    fee_package_type: FeePackageType | str,
    platform_fee: Optional[Decimal] = None,
) -> Company:
    company = await get_company(db, company_id)
    company.fee_package_type = normalize_package_type(fee_package_type)
    if platform_fee is not None:
        fee = round2(platform_fee)
        if fee < 0:
            raise ValueError("platform_fee must not be negative")
        company.platform_fee = fee
    await db.flush()
    logger.info(
        "Company %s fee package set to %s (fee=%s)",
        company_id,
        company.fee_package_type.value,
        company.platform_fee,
    )
    return company


# ---------------------------------------------------------------------------
# Geofences
# ---------------------------------------------------------------------------

def validate_polygon(polygon: Any) -> list[list[float]]:
    """Normalise a polygon to ``[[lat, lng], ...]``.

    Raises:
        GeofenceValidationError: Fewer than three vertices or a vertex that
            is not a valid coordinate.
    """
    if not isinstance(polygon, (list, tuple)) or len(polygon) < 3:
        raise GeofenceValidationError("A geofence needs at least 3 points")
    normalised: list[list[float]] = []
    for vertex in polygon:
        if not isinstance(vertex, (list, tuple)) or len(vertex) != 2:
            raise GeofenceValidationError("Each point must be a [lat, lng] pair")
        if not is_valid_coordinate(vertex[0], vertex[1]):
            raise GeofenceValidationError(f"Invalid coordinate: {vertex}")
        normalised.append([float(vertex[0]), float(vertex[1])])
    return normalised


async def list_geofences(
    db: AsyncSession,
    company_id: uuid.UUID,
) -> Sequence[CompanyGeofence]:
    result = await db.execute(
        select(CompanyGeofence)
        .where(CompanyGeofence.company_id == company_id)
        .order_by(CompanyGeofence.created_at)
    )
    return result.scalars().all()


async def _get_geofence(
    db: AsyncSession,
    company_id: uuid.UUID,
    geofence_id: uuid.UUID,
) -> CompanyGeofence:
    result = await db.execute(
        select(CompanyGeofence).where(
            CompanyGeofence.id == geofence_id,
            CompanyGeofence.company_id == company_id,
        )
    )
    geofence = result.scalar_one_or_none()
    if geofence is None:
        raise GeofenceNotFoundError(geofence_id)
    return geofence


async def create_geofence(
    db: AsyncSession,
    company_id: uuid.UUID,
    name: str,
    polygon: Any,
) -> CompanyGeofence:
    await get_company(db, company_id)
    geofence = CompanyGeofence(
        id=uuid.uuid4(),
        company_id=company_id,
        name=name.strip() or "Service area",
        polygon=validate_polygon(polygon),
    )
    db.add(geofence)
    await db.flush()
    logger.info("Geofence %s created for company %s", geofence.id, company_id)
    return geofence


async def update_geofence(
    db: AsyncSession,
    company_id: uuid.UUID,
    geofence_id: uuid.UUID,
    *,
    name: Optional[str] = None,
    polygon: Any = None,
) -> CompanyGeofence:
    geofence = await _get_geofence(db, company_id, geofence_id)
    if name:
        geofence.name = name.strip()
    if polygon is not None:
        geofence.polygon = validate_polygon(polygon)
    await db.flush()
    return geofence


async def delete_geofence(
    db: AsyncSession,
    company_id: uuid.UUID,
    geofence_id: uuid.UUID,
) -> None:
    geofence = await _get_geofence(db, company_id, geofence_id)
    await db.execute(
        delete(CleanerGeofenceAssignment).where(
            CleanerGeofenceAssignment.geofence_id == geofence.id
        )
    )
    await db.delete(geofence)
    await db.flush()
    logger.info("Geofence %s deleted from company %s", geofence_id, company_id)


async def assign_cleaner_geofences(
    db: AsyncSession,
    company_id: uuid.UUID,
    cleaner_id: uuid.UUID,
    *,
    geofence_ids: Sequence[uuid.UUID] = (),
    assign_all: bool = False,
) -> list[CleanerGeofenceAssignment]:
    """Replace a cleaner's geofence assignments."""
    cleaner = await db.get(Cleaner, cleaner_id)
    if cleaner is None or cleaner.company_id != company_id:
        raise ValueError("Cleaner does not belong to this company")

    valid_ids: set[uuid.UUID] = set()
    if geofence_ids:
        rows = await db.execute(
            select(CompanyGeofence.id).where(
                CompanyGeofence.company_id == company_id,
                CompanyGeofence.id.in_(list(geofence_ids)),
            )
        )
        valid_ids = set(rows.scalars().all())
        missing = set(geofence_ids) - valid_ids
        if missing:
            raise GeofenceNotFoundError(next(iter(missing)))

    await db.execute(
        delete(CleanerGeofenceAssignment).where(
            CleanerGeofenceAssignment.cleaner_id == cleaner_id
        )
    )

    assignments: list[CleanerGeofenceAssignment] = []
    if assign_all:
        assignments.append(
            CleanerGeofenceAssignment(id=uuid.uuid4(), cleaner_id=cleaner_id, assign_all=True)
        )
    else:
        for geofence_id in valid_ids:
            assignments.append(
                CleanerGeofenceAssignment(
                    id=uuid.uuid4(),
                    cleaner_id=cleaner_id,
                    geofence_id=geofence_id,
                    assign_all=False,
                )
            )
    db.add_all(assignments)
    await db.flush()
    return assignments


async def count_companies(db: AsyncSession) -> int:
    return (await db.execute(select(func.count(Company.id)))).scalar_one()

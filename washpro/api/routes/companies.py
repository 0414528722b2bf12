"""
Public company API routes
=========================

What the booking page needs before a customer pays: which companies can
wash a car at this spot, and what a wash costs.

Routes:
  GET /api/companies/all                -- every approved company
  GET /api/companies/nearby?lat&lon     -- companies with an on-duty cleaner close by
  GET /api/companies/{company_id}/fees  -- price breakdown of one wash
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, HTTPException, Query, status

from washpro.api.deps import DBSession
from washpro.api.schemas.company import CompanyOut, FeesOut, NearbyCompanyOut
from washpro.services import companyService

router = APIRouter(prefix="/companies", tags=["Companies"])


# ---------------------------------------------------------------------------
# GET /companies/all
# ---------------------------------------------------------------------------

@router.get(
    "/all",
    response_model=list[CompanyOut],
    response_model_by_alias=True,
    summary="List approved companies",
)
async def list_all_companies(db: DBSession) -> list[CompanyOut]:
    companies = await companyService.list_companies(db, active_only=True)
    return [CompanyOut.model_validate(company) for company in companies]


# ---------------------------------------------------------------------------
# GET /companies/nearby
# ---------------------------------------------------------------------------

@router.get(
    "/nearby",
    response_model=list[NearbyCompanyOut],
    response_model_by_alias=True,
    summary="Companies that can serve a location right now",
    description=(
        "Approved companies with at least one on-duty cleaner within 50 m "
        "whose service area contains the point, closest first."
    ),
)
async def nearby_companies(
    db: DBSession,
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
) -> list[NearbyCompanyOut]:
    try:
        nearby = await companyService.find_nearby_companies(db, lat, lon)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    return [
        NearbyCompanyOut(
            **CompanyOut.model_validate(item.company).model_dump(),
            on_duty_cleaners_count=item.on_duty_cleaners_count,
            distance_in_meters=round(item.distance_in_meters, 1),
            fees=FeesOut.from_breakdown(item.fees),
        )
        for item in nearby
    ]


# ---------------------------------------------------------------------------
# GET /companies/{company_id}/fees
# ---------------------------------------------------------------------------

@router.get(
    "/{company_id}/fees",
    response_model=FeesOut,
    response_model_by_alias=True,
    summary="Price breakdown for one wash",
)
async def company_fees(db: DBSession, company_id: uuid.UUID) -> FeesOut:
    try:
        fees = await companyService.get_company_fees(db, company_id)
    except companyService.CompanyNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return FeesOut.from_breakdown(fees)

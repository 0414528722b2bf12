"""
Customer API routes
===================

Customers log in with their phone number only; the returned token links
bookings, complaints and push subscriptions to the customer.

Routes:
  POST /api/customer/login       -- get-or-create the customer, issue a token
  GET  /api/customer/profile     -- the logged-in customer
  GET  /api/customer/jobs        -- the customer's jobs (paginated)
  GET  /api/customer/complaints  -- the customer's complaints
  GET  /api/customer/payment-token/{token}  -- resolve a cleaner's QR link (public)
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from washpro.api.deps import CurrentCustomer, DBSession
from washpro.api.schemas.auth import (
    CustomerAuthResponse,
    CustomerLoginRequest,
    CustomerOut,
    TokensOut,
)
from washpro.api.schemas.cleaner import PaymentTokenInfoOut
from washpro.api.schemas.common import PaginationMeta
from washpro.api.schemas.complaint import ComplaintOut
from washpro.api.schemas.job import JobListResponse, JobOut
from washpro.core.config import settings
from washpro.services import auth_service, cleanerService, complaintService, jobService

router = APIRouter(prefix="/customer", tags=["Customer"])


# ---------------------------------------------------------------------------
# POST /customer/login
# ---------------------------------------------------------------------------

@router.post(
    "/login",
    response_model=CustomerAuthResponse,
    response_model_by_alias=True,
    summary="Log in (or sign up) with a phone number",
)
async def customer_login(db: DBSession, body: CustomerLoginRequest) -> CustomerAuthResponse:
    try:
        customer, tokens = await auth_service.login_customer(
            db,
            body.phone_number,
            display_name=body.display_name,
            email=body.email,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return CustomerAuthResponse(
        customer=CustomerOut.model_validate(customer),
        tokens=TokensOut(**tokens),
    )


# ---------------------------------------------------------------------------
# GET /customer/profile
# ---------------------------------------------------------------------------

@router.get(
    "/profile",
    response_model=CustomerOut,
    response_model_by_alias=True,
    summary="Current customer",
)
async def customer_profile(customer: CurrentCustomer) -> CustomerOut:
    return CustomerOut.model_validate(customer)


# ---------------------------------------------------------------------------
# GET /customer/jobs
# ---------------------------------------------------------------------------

@router.get(
    "/jobs",
    response_model=JobListResponse,
    response_model_by_alias=True,
    summary="The customer's jobs, newest first",
)
async def customer_jobs(
    db: DBSession,
    customer: CurrentCustomer,
    page: int = Query(1, ge=1),
    page_size: int = Query(
        settings.default_page_size, ge=1, le=settings.max_page_size, alias="pageSize"
    ),
) -> JobListResponse:
    result = await jobService.list_customer_jobs(
        db, customer.id, page=page, page_size=page_size
    )
    return JobListResponse(
        data=[JobOut.model_validate(job) for job in result.items],
        meta=PaginationMeta(
            page=result.page,
            page_size=result.page_size,
            total_items=result.total_items,
            total_pages=result.total_pages,
        ),
    )


# ---------------------------------------------------------------------------
# GET /customer/complaints
# ---------------------------------------------------------------------------

@router.get(
    "/complaints",
    response_model=list[ComplaintOut],
    response_model_by_alias=True,
    summary="The customer's complaints",
)
async def customer_complaints(db: DBSession, customer: CurrentCustomer) -> list[ComplaintOut]:
    complaints = await complaintService.list_customer_complaints(db, customer.id)
    return [ComplaintOut.model_validate(c) for c in complaints]


# ---------------------------------------------------------------------------
# GET /customer/payment-token/{token}
# ---------------------------------------------------------------------------

@router.get(
    "/payment-token/{token}",
    response_model=PaymentTokenInfoOut,
    response_model_by_alias=True,
    summary="Resolve a cleaner's QR payment link",
    description=(
        "Public.  Returns the company and cleaner behind the link so the "
        "booking page can be preset; pass the token as `paymentToken` to "
        "`POST /api/create-payment-intent`."
    ),
)
async def payment_token_info(db: DBSession, token: str) -> PaymentTokenInfoOut:
    try:
        info = await cleanerService.get_payment_token(db, token)
    except cleanerService.PaymentTokenError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    user = info.cleaner.user
    return PaymentTokenInfoOut(
        token=info.token.token,
        company_id=info.company.id,
        company_name=info.company.name,
        cleaner_id=info.cleaner.id,
        cleaner_name=user.display_name if user else None,
        expires_at=info.token.expires_at,
    )

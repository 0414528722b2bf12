"""
Payment API routes
==================

Booking and paying for a wash.  The customer's app creates a Stripe
PaymentIntent for the chosen company, confirms it client-side, and the
job becomes ``paid`` either through the Stripe webhook or through the
explicit confirm call (whichever arrives first; both are idempotent).

Routes:
  POST /api/create-payment-intent                  -- price the wash, create job + intent
  POST /api/confirm-payment/{payment_intent_id}    -- confirm after the client redirect
  POST /api/stripe-webhook                         -- Stripe webhook endpoint
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status

from washpro.api.deps import DBSession, OptionalCustomer
from washpro.api.schemas.job import (
    CreatePaymentIntentRequest,
    JobOut,
    PaymentIntentOut,
    WebhookResultOut,
)
from washpro.core.config import settings
from washpro.integrations.stripe import PaymentError, handle_webhook
from washpro.services import jobService
from washpro.services.companyService import CompanyNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Payments"])


# ---------------------------------------------------------------------------
# Helper: convert PaymentError to HTTPException
# ---------------------------------------------------------------------------

def payment_error_to_http(exc: PaymentError) -> HTTPException:
    detail = {
        "message": exc.message,
        "stripe_error_code": exc.stripe_error_code,
        "stripe_error_type": exc.stripe_error_type,
    }
    if exc.decline_code:
        detail["decline_code"] = exc.decline_code
    return HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=detail)


# ---------------------------------------------------------------------------
# POST /create-payment-intent
# ---------------------------------------------------------------------------

@router.post(
    "/create-payment-intent",
    response_model=PaymentIntentOut,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Book a wash and open a payment",
    description=(
        "Creates the job in `pending_payment` and a Stripe PaymentIntent for "
        "the company's price plus platform fee, VAT and optional tip. Logged-in "
        "customers get the job linked to their account."
    ),
)
async def create_payment_intent(
    db: DBSession,
    body: CreatePaymentIntentRequest,
    customer: OptionalCustomer,
) -> PaymentIntentOut:
    try:
        job, intent = await jobService.create_job_for_payment(
            db,
            company_id=body.company_id,
            car_plate_number=body.car_plate_number,
            car_plate_emirate=body.car_plate_emirate,
            car_plate_code=body.car_plate_code,
            location_address=body.location_address,
            location_latitude=body.location_latitude,
            location_longitude=body.location_longitude,
            parking_number=body.parking_number,
            customer_id=customer.id if customer else None,
            customer_phone=body.customer_phone or (customer.phone if customer else None),
            customer_email=body.customer_email or (customer.email if customer else None),
            tip_amount=body.tip_amount,
            requested_cleaner_email=body.requested_cleaner_email,
            payment_token=body.payment_token,
        )
    except CompanyNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except PaymentError as exc:
        raise payment_error_to_http(exc)

    return PaymentIntentOut(
        client_secret=intent.client_secret,
        payment_intent_id=intent.id,
        job_id=job.id,
        amount=job.total_amount,
        currency=intent.currency,
        publishable_key=settings.stripe_publishable_key or None,
    )


# ---------------------------------------------------------------------------
# POST /confirm-payment/{payment_intent_id}
# ---------------------------------------------------------------------------

@router.post(
    "/confirm-payment/{payment_intent_id}",
    response_model=JobOut,
    response_model_by_alias=True,
    summary="Confirm a payment",
    description="Marks the job paid if Stripe reports the intent as succeeded.",
)
async def confirm_payment(db: DBSession, payment_intent_id: str) -> JobOut:
    try:
        job = await jobService.confirm_payment(db, payment_intent_id)
    except jobService.JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except PaymentError as exc:
        raise payment_error_to_http(exc)
    return JobOut.model_validate(job)


# ---------------------------------------------------------------------------
# POST /stripe-webhook
# ---------------------------------------------------------------------------

@router.post(
    "/stripe-webhook",
    response_model=WebhookResultOut,
    response_model_by_alias=True,
    summary="Stripe webhook endpoint",
    description=(
        "Receives Stripe events. The raw body is needed for signature "
        "verification; events are processed idempotently."
    ),
)
async def stripe_webhook(request: Request, db: DBSession) -> WebhookResultOut:
    payload = await request.body()
    sig_header = request.headers.get("Stripe-Signature", "")
    if not sig_header:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )

    try:
        result = await handle_webhook(db, payload, sig_header)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    if result.failed:
        # Non-2xx makes Stripe redeliver the event
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=result.message,
        )
    return WebhookResultOut(
        event_type=result.event_type,
        processed=result.processed,
        message=result.message,
    )

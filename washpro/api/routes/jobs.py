"""
Job API routes (customer side)
==============================

Routes:
  GET  /api/jobs/track/{plate}   -- latest jobs for a car plate (public)
  GET  /api/jobs/{job_id}        -- a single job (public, ids are unguessable)
  POST /api/jobs/{job_id}/rate   -- rate a completed wash
  POST /api/jobs/{job_id}/cancel -- cancel an unpaid booking

The cleaner's job actions live under ``/cleaner``; company and admin
refunds under ``/company`` and ``/admin``.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, HTTPException, Query, status

from washpro.api.deps import CurrentCustomer, DBSession
from washpro.api.routes.payments import payment_error_to_http
from washpro.api.schemas.job import CancelJobRequest, JobOut, RateJobRequest
from washpro.integrations.stripe import PaymentError
from washpro.services import jobService
from washpro.services.jobStateManager import ActorType

router = APIRouter(prefix="/jobs", tags=["Jobs"])


# ---------------------------------------------------------------------------
# GET /jobs/track/{plate}
# ---------------------------------------------------------------------------

@router.get(
    "/track/{plate}",
    response_model=list[JobOut],
    response_model_by_alias=True,
    summary="Track jobs by car plate",
)
async def track_jobs(
    db: DBSession,
    plate: str,
    limit: int = Query(20, ge=1, le=100),
) -> list[JobOut]:
    jobs = await jobService.track_jobs_by_plate(db, plate, limit=limit)
    return [JobOut.model_validate(job) for job in jobs]


# ---------------------------------------------------------------------------
# GET /jobs/{job_id}
# ---------------------------------------------------------------------------

@router.get(
    "/{job_id}",
    response_model=JobOut,
    response_model_by_alias=True,
    summary="Get a job",
)
async def get_job(db: DBSession, job_id: uuid.UUID) -> JobOut:
    job = await jobService.get_job(db, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return JobOut.model_validate(job)


# ---------------------------------------------------------------------------
# POST /jobs/{job_id}/rate
# ---------------------------------------------------------------------------

@router.post(
    "/{job_id}/rate",
    response_model=JobOut,
    response_model_by_alias=True,
    summary="Rate a completed wash",
)
async def rate_job(
    db: DBSession,
    job_id: uuid.UUID,
    body: RateJobRequest,
    customer: CurrentCustomer,
) -> JobOut:
    try:
        job = await jobService.rate_job(
            db,
            job_id,
            customer_id=customer.id,
            rating=body.rating,
            review=body.review,
        )
    except jobService.JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except jobService.NotAuthorizedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except (jobService.RatingError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return JobOut.model_validate(job)


# ---------------------------------------------------------------------------
# POST /jobs/{job_id}/cancel
# ---------------------------------------------------------------------------

@router.post(
    "/{job_id}/cancel",
    response_model=JobOut,
    response_model_by_alias=True,
    summary="Cancel an unpaid booking",
    description="Paid jobs cannot be cancelled by the customer; file a complaint instead.",
)
async def cancel_job(
    db: DBSession,
    job_id: uuid.UUID,
    customer: CurrentCustomer,
    body: CancelJobRequest | None = None,
) -> JobOut:
    try:
        job = await jobService.cancel_job(
            db,
            job_id,
            actor_type=ActorType.CUSTOMER,
            customer_id=customer.id,
            reason=body.reason if body else None,
        )
    except jobService.JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except jobService.NotAuthorizedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except jobService.InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except PaymentError as exc:
        raise payment_error_to_http(exc)
    return JobOut.model_validate(job)

"""
Cleaner API routes
==================

Everything the cleaner app does: shifts, availability, location, the job
pool and the job actions.  Every route requires an authenticated, active
cleaner (``CurrentCleaner``).

Routes:
  GET  /api/cleaner/profile                  -- the cleaner's profile
  GET  /api/cleaner/dashboard                -- today's figures and the active job
  POST /api/cleaner/toggle-status            -- go on / off duty
  POST /api/cleaner/update-location          -- store the current GPS position
  POST /api/cleaner/start-shift              -- open a shift
  POST /api/cleaner/end-shift                -- close the open shift
  GET  /api/cleaner/shift-history            -- past shifts
  GET  /api/cleaner/tips                     -- tips received
  GET  /api/cleaner/available-jobs           -- paid pool jobs the cleaner may take
  GET  /api/cleaner/my-jobs                  -- jobs assigned to the cleaner
  POST /api/cleaner/accept-job/{job_id}
  POST /api/cleaner/start-job/{job_id}
  POST /api/cleaner/complete-job/{job_id}
  POST /api/cleaner/release-job/{job_id}
  POST /api/cleaner/payment-token             -- single-use QR payment link
  POST /api/cleaner/offline-jobs              -- record a cash wash (package2 companies)
  GET  /api/cleaner/offline-jobs              -- the cleaner's cash washes
  POST /api/cleaner/offline-jobs/{job_id}/complete
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, HTTPException, Query, status

from washpro.api.deps import CurrentCleaner, DBSession
from washpro.api.schemas.cleaner import (
    DashboardOut,
    LocationIn,
    PaymentTokenOut,
    ShiftActionIn,
    TipsOut,
    ToggleStatusIn,
)
from washpro.api.schemas.company import CleanerOut, ShiftOut
from washpro.api.schemas.job import (
    CompleteJobRequest,
    JobOut,
    OfflineJobCompleteIn,
    OfflineJobIn,
    OfflineJobOut,
)
from washpro.core.config import settings
from washpro.events import jobEvents
from washpro.models import CleanerStatus
from washpro.services import cleanerService, jobService, offlineJobService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cleaner", tags=["Cleaner"])


def _job_error_to_http(exc: Exception) -> HTTPException:
    if isinstance(exc, jobService.JobNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, jobService.NotAuthorizedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


_JOB_ERRORS = (
    jobService.JobNotFoundError,
    jobService.NotAuthorizedError,
    jobService.InvalidTransitionError,
)


# ---------------------------------------------------------------------------
# GET /cleaner/profile
# ---------------------------------------------------------------------------

@router.get(
    "/profile",
    response_model=CleanerOut,
    response_model_by_alias=True,
    summary="Cleaner profile",
)
async def profile(cleaner: CurrentCleaner) -> CleanerOut:
    return CleanerOut.from_cleaner(cleaner)


# ---------------------------------------------------------------------------
# GET /cleaner/dashboard
# ---------------------------------------------------------------------------

@router.get(
    "/dashboard",
    response_model=DashboardOut,
    response_model_by_alias=True,
    summary="Cleaner dashboard",
)
async def dashboard(db: DBSession, cleaner: CurrentCleaner) -> DashboardOut:
    data = await cleanerService.get_cleaner_dashboard(db, cleaner)
    active_job = data.pop("active_job")
    return DashboardOut(
        **data,
        active_job=JobOut.model_validate(active_job) if active_job else None,
    )


# ---------------------------------------------------------------------------
# POST /cleaner/toggle-status
# ---------------------------------------------------------------------------

@router.post(
    "/toggle-status",
    response_model=CleanerOut,
    response_model_by_alias=True,
    summary="Go on or off duty",
    description="Going on duty opens a shift; going off duty closes it.",
)
async def toggle_status(
    db: DBSession,
    body: ToggleStatusIn,
    cleaner: CurrentCleaner,
) -> CleanerOut:
    previous = cleaner.status
    try:
        cleaner = await cleanerService.toggle_status(
            db, cleaner, body.status, body.latitude, body.longitude
        )
    except cleanerService.CleanerStatusError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

    if cleaner.status != previous:
        await jobEvents.publish_shift_change(
            db, cleaner, on_duty=cleaner.status == CleanerStatus.ON_DUTY
        )
    return CleanerOut.from_cleaner(cleaner)


# ---------------------------------------------------------------------------
# POST /cleaner/update-location
# ---------------------------------------------------------------------------

@router.post(
    "/update-location",
    response_model=CleanerOut,
    response_model_by_alias=True,
    summary="Report the current position",
)
async def update_location(
    db: DBSession,
    body: LocationIn,
    cleaner: CurrentCleaner,
) -> CleanerOut:
    try:
        cleaner = await cleanerService.update_location(
            db, cleaner, body.latitude, body.longitude
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    await jobEvents.publish_cleaner_update(cleaner)
    return CleanerOut.from_cleaner(cleaner)


# ---------------------------------------------------------------------------
# Shifts
# ---------------------------------------------------------------------------

@router.post(
    "/start-shift",
    response_model=ShiftOut,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Start a shift",
)
async def start_shift(
    db: DBSession,
    cleaner: CurrentCleaner,
    body: ShiftActionIn | None = None,
) -> ShiftOut:
    body = body or ShiftActionIn()
    try:
        shift = await cleanerService.start_shift(db, cleaner, body.latitude, body.longitude)
    except cleanerService.CleanerStatusError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    await jobEvents.publish_shift_change(db, cleaner, on_duty=True)
    return ShiftOut.model_validate(shift)


@router.post(
    "/end-shift",
    response_model=ShiftOut,
    response_model_by_alias=True,
    summary="End the current shift",
)
async def end_shift(
    db: DBSession,
    cleaner: CurrentCleaner,
    body: ShiftActionIn | None = None,
) -> ShiftOut:
    body = body or ShiftActionIn()
    try:
        shift = await cleanerService.end_shift(db, cleaner, body.latitude, body.longitude)
    except cleanerService.CleanerStatusError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    await jobEvents.publish_shift_change(db, cleaner, on_duty=False)
    return ShiftOut.model_validate(shift)


@router.get(
    "/shift-history",
    response_model=list[ShiftOut],
    response_model_by_alias=True,
    summary="Past shifts, newest first",
)
async def shift_history(
    db: DBSession,
    cleaner: CurrentCleaner,
    limit: int = Query(50, ge=1, le=500),
) -> list[ShiftOut]:
    shifts = await cleanerService.get_shift_history(db, cleaner.id, limit=limit)
    return [ShiftOut.model_validate(shift) for shift in shifts]


# ---------------------------------------------------------------------------
# GET /cleaner/tips
# ---------------------------------------------------------------------------

@router.get(
    "/tips",
    response_model=TipsOut,
    response_model_by_alias=True,
    summary="Tips received",
)
async def tips(
    db: DBSession,
    cleaner: CurrentCleaner,
    days: int | None = Query(None, ge=1, le=365),
) -> TipsOut:
    data = await cleanerService.get_cleaner_tips(db, cleaner, days=days)
    return TipsOut(
        total_tips=data["total_tips"],
        tip_count=data["tip_count"],
        jobs=[JobOut.model_validate(job) for job in data["jobs"]],
    )


# ---------------------------------------------------------------------------
# Job listings
# ---------------------------------------------------------------------------

@router.get(
    "/available-jobs",
    response_model=list[JobOut],
    response_model_by_alias=True,
    summary="Pool jobs the cleaner can accept",
)
async def available_jobs(db: DBSession, cleaner: CurrentCleaner) -> list[JobOut]:
    jobs = await jobService.list_available_jobs(db, cleaner)
    return [JobOut.model_validate(job) for job in jobs]


@router.get(
    "/my-jobs",
    response_model=list[JobOut],
    response_model_by_alias=True,
    summary="Jobs assigned to the cleaner",
)
async def my_jobs(
    db: DBSession,
    cleaner: CurrentCleaner,
    active_only: bool = Query(False, alias="activeOnly"),
    limit: int = Query(100, ge=1, le=500),
) -> list[JobOut]:
    jobs = await jobService.list_cleaner_jobs(
        db, cleaner.id, active_only=active_only, limit=limit
    )
    return [JobOut.model_validate(job) for job in jobs]


# ---------------------------------------------------------------------------
# Job actions
# ---------------------------------------------------------------------------

@router.post(
    "/accept-job/{job_id}",
    response_model=JobOut,
    response_model_by_alias=True,
    summary="Accept a pool job",
)
async def accept_job(db: DBSession, job_id: uuid.UUID, cleaner: CurrentCleaner) -> JobOut:
    try:
        job = await jobService.accept_job(db, job_id, cleaner)
    except _JOB_ERRORS as exc:
        raise _job_error_to_http(exc)
    return JobOut.model_validate(job)


@router.post(
    "/start-job/{job_id}",
    response_model=JobOut,
    response_model_by_alias=True,
    summary="Start washing",
)
async def start_job(db: DBSession, job_id: uuid.UUID, cleaner: CurrentCleaner) -> JobOut:
    try:
        job = await jobService.start_job(db, job_id, cleaner)
    except _JOB_ERRORS as exc:
        raise _job_error_to_http(exc)
    return JobOut.model_validate(job)


@router.post(
    "/complete-job/{job_id}",
    response_model=JobOut,
    response_model_by_alias=True,
    summary="Complete a wash",
)
async def complete_job(
    db: DBSession,
    job_id: uuid.UUID,
    cleaner: CurrentCleaner,
    body: CompleteJobRequest | None = None,
) -> JobOut:
    try:
        job = await jobService.complete_job(
            db, job_id, cleaner, proof_photo_url=body.proof_photo_url if body else None
        )
    except _JOB_ERRORS as exc:
        raise _job_error_to_http(exc)
    return JobOut.model_validate(job)


@router.post(
    "/release-job/{job_id}",
    response_model=JobOut,
    response_model_by_alias=True,
    summary="Give an assigned job back to the pool",
)
async def release_job(db: DBSession, job_id: uuid.UUID, cleaner: CurrentCleaner) -> JobOut:
    try:
        job = await jobService.release_job(db, job_id, cleaner)
    except _JOB_ERRORS as exc:
        raise _job_error_to_http(exc)
    return JobOut.model_validate(job)


# ---------------------------------------------------------------------------
# QR payment link
# ---------------------------------------------------------------------------

@router.post(
    "/payment-token",
    response_model=PaymentTokenOut,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a single-use QR payment link",
    description=(
        "The customer scans the QR code, books with the cleaner's company and "
        "the paid job goes straight to this cleaner."
    ),
)
async def create_payment_token(db: DBSession, cleaner: CurrentCleaner) -> PaymentTokenOut:
    try:
        payment_token = await cleanerService.create_payment_token(db, cleaner)
    except cleanerService.CleanerStatusError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return PaymentTokenOut(
        token=payment_token.token,
        expires_at=payment_token.expires_at,
        payment_url=f"{settings.public_app_url.rstrip('/')}/customer/pay/{payment_token.token}",
    )


# ---------------------------------------------------------------------------
# Offline (cash) jobs
# ---------------------------------------------------------------------------

@router.post(
    "/offline-jobs",
    response_model=OfflineJobOut,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Record a cash wash",
)
async def create_offline_job(
    db: DBSession,
    body: OfflineJobIn,
    cleaner: CurrentCleaner,
) -> OfflineJobOut:
    try:
        job = await offlineJobService.create_offline_job(
            db,
            cleaner,
            car_plate_number=body.car_plate_number,
            car_plate_emirate=body.car_plate_emirate,
            car_plate_code=body.car_plate_code,
            service_price=body.service_price,
            notes=body.notes,
        )
    except offlineJobService.OfflineJobError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return OfflineJobOut.from_job(job)


@router.get(
    "/offline-jobs",
    response_model=list[OfflineJobOut],
    response_model_by_alias=True,
    summary="Cash washes recorded by the cleaner",
)
async def list_offline_jobs(
    db: DBSession,
    cleaner: CurrentCleaner,
    limit: int = Query(50, ge=1, le=200),
) -> list[OfflineJobOut]:
    jobs = await offlineJobService.list_cleaner_offline_jobs(db, cleaner, limit=limit)
    return [OfflineJobOut.from_job(job) for job in jobs]


@router.post(
    "/offline-jobs/{job_id}/complete",
    response_model=OfflineJobOut,
    response_model_by_alias=True,
    summary="Finish a cash wash",
)
async def complete_offline_job(
    db: DBSession,
    job_id: uuid.UUID,
    cleaner: CurrentCleaner,
    body: OfflineJobCompleteIn | None = None,
) -> OfflineJobOut:
    body = body or OfflineJobCompleteIn()
    try:
        job = await offlineJobService.complete_offline_job(
            db, cleaner, job_id, photo_url=body.completion_photo_url
        )
    except offlineJobService.OfflineJobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except offlineJobService.OfflineJobError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return OfflineJobOut.from_job(job)

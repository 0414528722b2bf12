"""
Company admin API routes
========================

The company dashboard.  Every route requires a company admin and acts on
that admin's own company.

Routes:
  GET    /api/company/analytics
  GET    /api/company/cleaners
  POST   /api/company/add-cleaner                      -- invite a phone number
  GET    /api/company/invitations
  POST   /api/company/invitations/{invitation_id}/revoke
  GET    /api/company/geofences
  POST   /api/company/geofences
  PUT    /api/company/geofences/{geofence_id}
  DELETE /api/company/geofences/{geofence_id}
  PUT    /api/company/cleaners/{cleaner_id}/geofences
  GET    /api/company/jobs
  POST   /api/company/jobs/{job_id}/cancel
  POST   /api/company/jobs/{job_id}/refund
  GET    /api/company/complaints
  PUT    /api/company/complaints/{complaint_id}/status
  POST   /api/company/complaints/{complaint_id}/refund
  GET    /api/company/offline-jobs                    -- cash washes, by cleaner and day
  GET    /api/company/shift-history
  GET    /api/company/live-report
  GET    /api/company/settings
  PUT    /api/company/settings
  GET    /api/company/financials/overview
  GET    /api/company/financials/jobs
  GET    /api/company/financials/withdrawal-balance
  POST   /api/company/financials/request-withdrawal
  GET    /api/company/financials/withdrawals
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from washpro.api.deps import CompanyAdmin, DBSession
from washpro.api.routes.complaints import COMPLAINT_ACTION_ERRORS, complaint_error_to_http
from washpro.api.routes.payments import payment_error_to_http
from washpro.api.schemas.common import MessageOut, PaginationMeta
from washpro.api.schemas.company import (
    CleanerGeofenceAssignmentIn,
    CleanerOut,
    CompanyAnalyticsOut,
    CompanyOut,
    CompanySettingsUpdate,
    CompanyShiftOut,
    GeofenceIn,
    GeofenceOut,
    GeofenceUpdate,
    InvitationIn,
    InvitationOut,
    LiveCleanerOut,
)
from washpro.api.schemas.complaint import (
    ComplaintOut,
    ComplaintRefundRequest,
    ComplaintStatusUpdate,
)
from washpro.api.schemas.financial import (
    FinancialOverviewOut,
    JobFinancialsListResponse,
    JobFinancialsOut,
    WithdrawalBalanceOut,
    WithdrawalOut,
    WithdrawalRequestIn,
)
from washpro.api.schemas.job import (
    CancelJobRequest,
    JobListResponse,
    JobOut,
    OfflineJobListResponse,
    OfflineJobOut,
    RefundJobRequest,
)
from washpro.core.config import settings
from washpro.integrations.stripe import PaymentError
from washpro.models import CleanerStatus, ComplaintStatus, JobStatus, PaymentMethod
from washpro.services import (
    analyticsService,
    cleanerService,
    companyService,
    complaintService,
    financialService,
    jobService,
    offlineJobService,
)
from washpro.services.jobStateManager import ActorType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/company", tags=["Company"])


def _meta(result) -> PaginationMeta:
    return PaginationMeta(
        page=result.page,
        page_size=result.page_size,
        total_items=result.total_items,
        total_pages=result.total_pages,
    )


# ---------------------------------------------------------------------------
# GET /company/analytics
# ---------------------------------------------------------------------------

@router.get(
    "/analytics",
    response_model=CompanyAnalyticsOut,
    response_model_by_alias=True,
    summary="Company dashboard figures",
)
async def analytics(db: DBSession, admin: CompanyAdmin) -> CompanyAnalyticsOut:
    data = await analyticsService.get_company_analytics(db, admin.company_id)
    return CompanyAnalyticsOut.model_validate(data)


# ---------------------------------------------------------------------------
# Cleaners and invitations
# ---------------------------------------------------------------------------

@router.get(
    "/cleaners",
    response_model=list[CleanerOut],
    response_model_by_alias=True,
    summary="The company's cleaners",
)
async def list_cleaners(
    db: DBSession,
    admin: CompanyAdmin,
    cleaner_status: Optional[CleanerStatus] = Query(None, alias="status"),
) -> list[CleanerOut]:
    cleaners = await cleanerService.list_company_cleaners(
        db, admin.company_id, cleaner_status
    )
    return [CleanerOut.from_cleaner(cleaner) for cleaner in cleaners]


@router.post(
    "/add-cleaner",
    response_model=InvitationOut,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Invite a cleaner by phone number",
)
async def add_cleaner(
    db: DBSession,
    body: InvitationIn,
    admin: CompanyAdmin,
) -> InvitationOut:
    try:
        invitation = await cleanerService.invite_cleaner(
            db, admin.company_id, body.phone_number, invited_by=admin.id
        )
    except cleanerService.InvitationError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return InvitationOut.model_validate(invitation)


@router.get(
    "/invitations",
    response_model=list[InvitationOut],
    response_model_by_alias=True,
    summary="Cleaner invitations",
)
async def list_invitations(db: DBSession, admin: CompanyAdmin) -> list[InvitationOut]:
    invitations = await cleanerService.list_invitations(db, admin.company_id)
    return [InvitationOut.model_validate(inv) for inv in invitations]


@router.post(
    "/invitations/{invitation_id}/revoke",
    response_model=InvitationOut,
    response_model_by_alias=True,
    summary="Revoke a pending invitation",
)
async def revoke_invitation(
    db: DBSession,
    invitation_id: uuid.UUID,
    admin: CompanyAdmin,
) -> InvitationOut:
    try:
        invitation = await cleanerService.revoke_invitation(db, admin.company_id, invitation_id)
    except cleanerService.InvitationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return InvitationOut.model_validate(invitation)


# ---------------------------------------------------------------------------
# Geofences
# ---------------------------------------------------------------------------

@router.get(
    "/geofences",
    response_model=list[GeofenceOut],
    response_model_by_alias=True,
    summary="Service areas",
)
async def list_geofences(db: DBSession, admin: CompanyAdmin) -> list[GeofenceOut]:
    geofences = await companyService.list_geofences(db, admin.company_id)
    return [GeofenceOut.model_validate(g) for g in geofences]


@router.post(
    "/geofences",
    response_model=GeofenceOut,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Create a service area",
)
async def create_geofence(
    db: DBSession,
    body: GeofenceIn,
    admin: CompanyAdmin,
) -> GeofenceOut:
    try:
        geofence = await companyService.create_geofence(
            db, admin.company_id, body.name, body.polygon
        )
    except companyService.GeofenceValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return GeofenceOut.model_validate(geofence)


@router.put(
    "/geofences/{geofence_id}",
    response_model=GeofenceOut,
    response_model_by_alias=True,
    summary="Rename or reshape a service area",
)
async def update_geofence(
    db: DBSession,
    geofence_id: uuid.UUID,
    body: GeofenceUpdate,
    admin: CompanyAdmin,
) -> GeofenceOut:
    try:
        geofence = await companyService.update_geofence(
            db, admin.company_id, geofence_id, name=body.name, polygon=body.polygon
        )
    except companyService.GeofenceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except companyService.GeofenceValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return GeofenceOut.model_validate(geofence)


@router.delete(
    "/geofences/{geofence_id}",
    response_model=MessageOut,
    summary="Delete a service area",
)
async def delete_geofence(
    db: DBSession,
    geofence_id: uuid.UUID,
    admin: CompanyAdmin,
) -> MessageOut:
    try:
        await companyService.delete_geofence(db, admin.company_id, geofence_id)
    except companyService.GeofenceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return MessageOut(message="Geofence deleted")


@router.put(
    "/cleaners/{cleaner_id}/geofences",
    response_model=MessageOut,
    summary="Set the service areas a cleaner works in",
)
async def assign_cleaner_geofences(
    db: DBSession,
    cleaner_id: uuid.UUID,
    body: CleanerGeofenceAssignmentIn,
    admin: CompanyAdmin,
) -> MessageOut:
    try:
        assignments = await companyService.assign_cleaner_geofences(
            db,
            admin.company_id,
            cleaner_id,
            geofence_ids=body.geofence_ids,
            assign_all=body.assign_all,
        )
    except companyService.GeofenceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if body.assign_all:
        return MessageOut(message="Cleaner assigned to all service areas")
    return MessageOut(message=f"Cleaner assigned to {len(assignments)} service area(s)")


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

@router.get(
    "/jobs",
    response_model=JobListResponse,
    response_model_by_alias=True,
    summary="The company's jobs, newest first",
)
async def list_jobs(
    db: DBSession,
    admin: CompanyAdmin,
    job_status: Optional[JobStatus] = Query(None, alias="status"),
    payment_method: Optional[PaymentMethod] = Query(None, alias="paymentMethod"),
    page: int = Query(1, ge=1),
    page_size: int = Query(
        settings.default_page_size, ge=1, le=settings.max_page_size, alias="pageSize"
    ),
) -> JobListResponse:
    result = await jobService.list_company_jobs(
        db,
        admin.company_id,
        status=job_status,
        payment_method=payment_method,
        page=page,
        page_size=page_size,
    )
    return JobListResponse(
        data=[JobOut.model_validate(job) for job in result.items],
        meta=_meta(result),
    )


@router.post(
    "/jobs/{job_id}/cancel",
    response_model=JobOut,
    response_model_by_alias=True,
    summary="Cancel a job without refunding it",
)
async def cancel_job(
    db: DBSession,
    job_id: uuid.UUID,
    admin: CompanyAdmin,
    body: CancelJobRequest | None = None,
) -> JobOut:
    try:
        job = await jobService.cancel_job(
            db,
            job_id,
            actor_type=ActorType.COMPANY_ADMIN,
            company_id=admin.company_id,
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


@router.post(
    "/jobs/{job_id}/refund",
    response_model=JobOut,
    response_model_by_alias=True,
    summary="Fully refund a job",
)
async def refund_job(
    db: DBSession,
    job_id: uuid.UUID,
    admin: CompanyAdmin,
    body: RefundJobRequest | None = None,
) -> JobOut:
    body = body or RefundJobRequest()
    try:
        job = await jobService.refund_job(
            db,
            job_id,
            actor_type=ActorType.COMPANY_ADMIN,
            company_id=admin.company_id,
            reason=body.reason,
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


# ---------------------------------------------------------------------------
# Complaints
# ---------------------------------------------------------------------------

@router.get(
    "/complaints",
    response_model=list[ComplaintOut],
    response_model_by_alias=True,
    summary="Complaints about the company's jobs",
)
async def list_complaints(
    db: DBSession,
    admin: CompanyAdmin,
    complaint_status: Optional[ComplaintStatus] = Query(None, alias="status"),
) -> list[ComplaintOut]:
    complaints = await complaintService.list_complaints(
        db, company_id=admin.company_id, status=complaint_status
    )
    return [ComplaintOut.model_validate(c) for c in complaints]


@router.put(
    "/complaints/{complaint_id}/status",
    response_model=ComplaintOut,
    response_model_by_alias=True,
    summary="Update a complaint's status",
)
async def update_complaint_status(
    db: DBSession,
    complaint_id: uuid.UUID,
    body: ComplaintStatusUpdate,
    admin: CompanyAdmin,
) -> ComplaintOut:
    try:
        complaint = await complaintService.update_complaint_status(
            db, complaint_id, status=body.status, user=admin, resolution=body.resolution
        )
    except COMPLAINT_ACTION_ERRORS as exc:
        raise complaint_error_to_http(exc)
    return ComplaintOut.model_validate(complaint)


@router.post(
    "/complaints/{complaint_id}/refund",
    response_model=ComplaintOut,
    response_model_by_alias=True,
    summary="Refund the job behind a complaint",
)
async def refund_complaint(
    db: DBSession,
    complaint_id: uuid.UUID,
    admin: CompanyAdmin,
    body: ComplaintRefundRequest | None = None,
) -> ComplaintOut:
    try:
        complaint = await complaintService.refund_complaint(
            db, complaint_id, user=admin, resolution=body.resolution if body else None
        )
    except COMPLAINT_ACTION_ERRORS as exc:
        raise complaint_error_to_http(exc)
    return ComplaintOut.model_validate(complaint)


# ---------------------------------------------------------------------------
# Offline (cash) jobs
# ---------------------------------------------------------------------------

@router.get(
    "/offline-jobs",
    response_model=OfflineJobListResponse,
    response_model_by_alias=True,
    summary="Cash washes recorded by the company's cleaners",
    description="``startDate`` and ``endDate`` are inclusive days (UTC).",
)
async def list_offline_jobs(
    db: DBSession,
    admin: CompanyAdmin,
    cleaner_id: Optional[uuid.UUID] = Query(None, alias="cleanerId"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    page_size: int = Query(
        settings.default_page_size, ge=1, le=settings.max_page_size, alias="pageSize"
    ),
) -> OfflineJobListResponse:
    try:
        result = await offlineJobService.list_company_offline_jobs(
            db,
            admin.company_id,
            cleaner_id=cleaner_id,
            start_date=start_date,
            end_date=end_date,
            page=page,
            page_size=page_size,
        )
    except offlineJobService.OfflineJobError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return OfflineJobListResponse(
        data=[OfflineJobOut.from_job(job) for job in result.items],
        meta=_meta(result),
    )


# ---------------------------------------------------------------------------
# Shifts and live report
# ---------------------------------------------------------------------------

@router.get(
    "/shift-history",
    response_model=list[CompanyShiftOut],
    response_model_by_alias=True,
    summary="Shifts of the company's cleaners",
)
async def shift_history(
    db: DBSession,
    admin: CompanyAdmin,
    cleaner_id: Optional[uuid.UUID] = Query(None, alias="cleanerId"),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
) -> list[CompanyShiftOut]:
    rows = await cleanerService.get_company_shift_history(
        db, admin.company_id, cleaner_id=cleaner_id, start=start, end=end, limit=limit
    )
    return [
        CompanyShiftOut.model_validate(shift).model_copy(
            update={"cleaner_name": cleaner.user.display_name if cleaner.user else None}
        )
        for shift, cleaner in rows
    ]


@router.get(
    "/live-report",
    response_model=list[LiveCleanerOut],
    response_model_by_alias=True,
    summary="Where every cleaner is and what they are doing",
)
async def live_report(db: DBSession, admin: CompanyAdmin) -> list[LiveCleanerOut]:
    report = await cleanerService.get_live_report(db, admin.company_id)
    return [
        LiveCleanerOut(
            cleaner=CleanerOut.from_cleaner(item.cleaner),
            active_job_id=item.active_job.id if item.active_job else None,
            active_job_status=item.active_job.status.value if item.active_job else None,
            active_job_plate=item.active_job.car_plate_number if item.active_job else None,
            shift_started_at=item.open_shift.shift_start if item.open_shift else None,
        )
        for item in report
    ]


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@router.get(
    "/settings",
    response_model=CompanyOut,
    response_model_by_alias=True,
    summary="Company profile and pricing",
)
async def get_settings(db: DBSession, admin: CompanyAdmin) -> CompanyOut:
    company = await companyService.get_company(db, admin.company_id)
    return CompanyOut.model_validate(company)


@router.put(
    "/settings",
    response_model=CompanyOut,
    response_model_by_alias=True,
    summary="Update company profile and pricing",
    description="The fee package is managed by the platform admin.",
)
async def update_settings(
    db: DBSession,
    body: CompanySettingsUpdate,
    admin: CompanyAdmin,
) -> CompanyOut:
    try:
        company = await companyService.update_company_settings(
            db, admin.company_id, body.model_dump(exclude_unset=True)
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return CompanyOut.model_validate(company)


# ---------------------------------------------------------------------------
# Financials
# ---------------------------------------------------------------------------

@router.get(
    "/financials/overview",
    response_model=FinancialOverviewOut,
    response_model_by_alias=True,
    summary="Revenue, fees and balance",
)
async def financial_overview(db: DBSession, admin: CompanyAdmin) -> FinancialOverviewOut:
    overview = await financialService.get_company_financial_overview(db, admin.company_id)
    return FinancialOverviewOut.model_validate(overview)


@router.get(
    "/financials/jobs",
    response_model=JobFinancialsListResponse,
    response_model_by_alias=True,
    summary="Per-job financial records",
)
async def financial_jobs(
    db: DBSession,
    admin: CompanyAdmin,
    page: int = Query(1, ge=1),
    page_size: int = Query(
        settings.default_page_size, ge=1, le=settings.max_page_size, alias="pageSize"
    ),
) -> JobFinancialsListResponse:
    result = await financialService.list_company_financial_jobs(
        db, admin.company_id, page=page, page_size=page_size
    )
    return JobFinancialsListResponse(
        data=[JobFinancialsOut.model_validate(record) for record in result.items],
        meta=_meta(result),
    )


@router.get(
    "/financials/withdrawal-balance",
    response_model=WithdrawalBalanceOut,
    response_model_by_alias=True,
    summary="What can be withdrawn",
)
async def withdrawal_balance(db: DBSession, admin: CompanyAdmin) -> WithdrawalBalanceOut:
    balance = await financialService.get_withdrawal_balance(db, admin.company_id)
    return WithdrawalBalanceOut.model_validate(balance)


@router.post(
    "/financials/request-withdrawal",
    response_model=WithdrawalOut,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Request a payout",
)
async def request_withdrawal(
    db: DBSession,
    body: WithdrawalRequestIn,
    admin: CompanyAdmin,
) -> WithdrawalOut:
    try:
        withdrawal = await financialService.request_withdrawal(
            db,
            admin.company_id,
            job_count=body.job_count,
            tips=body.tips,
            note=body.note,
        )
    except financialService.WithdrawalError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return WithdrawalOut.model_validate(withdrawal)


@router.get(
    "/financials/withdrawals",
    response_model=list[WithdrawalOut],
    response_model_by_alias=True,
    summary="The company's withdrawal requests",
)
async def list_withdrawals(db: DBSession, admin: CompanyAdmin) -> list[WithdrawalOut]:
    withdrawals = await financialService.list_withdrawals(db, company_id=admin.company_id)
    return [WithdrawalOut.model_validate(w) for w in withdrawals]

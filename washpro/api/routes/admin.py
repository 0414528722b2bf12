"""
Platform admin API routes
=========================

Routes:
  GET  /api/admin/analytics
  GET  /api/admin/companies
  GET  /api/admin/pending-companies
  POST /api/admin/companies/{company_id}/approve
  POST /api/admin/companies/{company_id}/reject
  PUT  /api/admin/companies/{company_id}/fee-package
  GET  /api/admin/platform-settings
  PUT  /api/admin/platform-settings
  GET  /api/admin/fee-settings
  POST /api/admin/fee-settings
  GET  /api/admin/complaints
  PUT  /api/admin/complaints/{complaint_id}/status
  POST /api/admin/complaints/{complaint_id}/refund
  GET  /api/admin/financials/companies
  GET  /api/admin/financials/withdrawals
  POST /api/admin/financials/withdrawals/{withdrawal_id}/process
  GET  /api/admin/financials/transactions
  POST /api/admin/jobs/{job_id}/refund
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from washpro.api.deps import AdminUser, DBSession
from washpro.api.routes.complaints import COMPLAINT_ACTION_ERRORS, complaint_error_to_http
from washpro.api.routes.payments import payment_error_to_http
from washpro.api.schemas.company import (
    AdminAnalyticsOut,
    CompanyFinancialSummaryOut,
    CompanyOut,
    FeePackageUpdate,
)
from washpro.api.schemas.complaint import (
    ComplaintOut,
    ComplaintRefundRequest,
    ComplaintStatusUpdate,
)
from washpro.api.schemas.financial import (
    ProcessWithdrawalIn,
    TransactionOut,
    WithdrawalOut,
)
from washpro.api.schemas.job import JobOut, RefundJobRequest
from washpro.api.schemas.platform import (
    FeeSettingIn,
    FeeSettingOut,
    PlatformSettingsOut,
    PlatformSettingsUpdate,
)
from washpro.integrations.stripe import PaymentError
from washpro.models import ComplaintStatus, WithdrawalStatus
from washpro.services import (
    analyticsService,
    companyService,
    complaintService,
    financialService,
    jobService,
    settingsService,
)
from washpro.services.jobStateManager import ActorType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


# ---------------------------------------------------------------------------
# GET /admin/analytics
# ---------------------------------------------------------------------------

@router.get(
    "/analytics",
    response_model=AdminAnalyticsOut,
    response_model_by_alias=True,
    summary="Platform-wide figures",
)
async def analytics(db: DBSession, admin: AdminUser) -> AdminAnalyticsOut:
    data = await analyticsService.get_admin_analytics(db)
    return AdminAnalyticsOut.model_validate(data)


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------

@router.get(
    "/companies",
    response_model=list[CompanyOut],
    response_model_by_alias=True,
    summary="All companies, approved or not",
)
async def list_companies(db: DBSession, admin: AdminUser) -> list[CompanyOut]:
    companies = await companyService.list_companies(db, active_only=False)
    return [CompanyOut.model_validate(c) for c in companies]


@router.get(
    "/pending-companies",
    response_model=list[CompanyOut],
    response_model_by_alias=True,
    summary="Companies waiting for approval",
)
async def pending_companies(db: DBSession, admin: AdminUser) -> list[CompanyOut]:
    companies = await companyService.list_pending_companies(db)
    return [CompanyOut.model_validate(c) for c in companies]


@router.post(
    "/companies/{company_id}/approve",
    response_model=CompanyOut,
    response_model_by_alias=True,
    summary="Approve a company",
)
async def approve_company(
    db: DBSession,
    company_id: uuid.UUID,
    admin: AdminUser,
) -> CompanyOut:
    try:
        company = await companyService.approve_company(db, company_id)
    except companyService.CompanyNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return CompanyOut.model_validate(company)


@router.post(
    "/companies/{company_id}/reject",
    response_model=CompanyOut,
    response_model_by_alias=True,
    summary="Reject or suspend a company",
    description="Deactivates the company and its admin account.",
)
async def reject_company(
    db: DBSession,
    company_id: uuid.UUID,
    admin: AdminUser,
) -> CompanyOut:
    try:
        company = await companyService.reject_company(db, company_id)
    except companyService.CompanyNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return CompanyOut.model_validate(company)


@router.put(
    "/companies/{company_id}/fee-package",
    response_model=CompanyOut,
    response_model_by_alias=True,
    summary="Set a company's fee package",
)
async def set_fee_package(
    db: DBSession,
    company_id: uuid.UUID,
    body: FeePackageUpdate,
    admin: AdminUser,
) -> CompanyOut:
    try:
        company = await companyService.set_company_fee_package(
            db, company_id, body.fee_package_type, body.platform_fee
        )
    except companyService.CompanyNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return CompanyOut.model_validate(company)


# ---------------------------------------------------------------------------
# Platform and fee settings
# ---------------------------------------------------------------------------

@router.get(
    "/platform-settings",
    response_model=PlatformSettingsOut,
    response_model_by_alias=True,
    summary="Invoice header settings",
)
async def get_platform_settings(db: DBSession, admin: AdminUser) -> PlatformSettingsOut:
    row = await settingsService.get_platform_settings(db)
    return PlatformSettingsOut.model_validate(row)


@router.put(
    "/platform-settings",
    response_model=PlatformSettingsOut,
    response_model_by_alias=True,
    summary="Update invoice header settings",
)
async def update_platform_settings(
    db: DBSession,
    body: PlatformSettingsUpdate,
    admin: AdminUser,
) -> PlatformSettingsOut:
    row = await settingsService.update_platform_settings(
        db, body.model_dump(exclude_unset=True)
    )
    return PlatformSettingsOut.model_validate(row)


@router.get(
    "/fee-settings",
    response_model=Optional[FeeSettingOut],
    response_model_by_alias=True,
    summary="Fee rates in effect",
    description="Returns null while no fee setting has been created.",
)
async def get_fee_settings(db: DBSession, admin: AdminUser) -> Optional[FeeSettingOut]:
    row = await settingsService.get_current_fee_setting(db)
    return FeeSettingOut.model_validate(row) if row else None


@router.post(
    "/fee-settings",
    response_model=FeeSettingOut,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Record new fee rates",
)
async def create_fee_setting(
    db: DBSession,
    body: FeeSettingIn,
    admin: AdminUser,
) -> FeeSettingOut:
    row = await settingsService.create_fee_setting(
        db,
        platform_fee_rate=body.platform_fee_rate,
        stripe_percent_rate=body.stripe_percent_rate,
        stripe_fixed_fee=body.stripe_fixed_fee,
        currency=body.currency.upper(),
        effective_from=body.effective_from,
    )
    return FeeSettingOut.model_validate(row)


# ---------------------------------------------------------------------------
# Complaints
# ---------------------------------------------------------------------------

@router.get(
    "/complaints",
    response_model=list[ComplaintOut],
    response_model_by_alias=True,
    summary="All complaints",
)
async def list_complaints(
    db: DBSession,
    admin: AdminUser,
    company_id: Optional[uuid.UUID] = Query(None, alias="companyId"),
    complaint_status: Optional[ComplaintStatus] = Query(None, alias="status"),
) -> list[ComplaintOut]:
    complaints = await complaintService.list_complaints(
        db, company_id=company_id, status=complaint_status
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
    admin: AdminUser,
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
    admin: AdminUser,
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
# Financials
# ---------------------------------------------------------------------------

@router.get(
    "/financials/companies",
    response_model=list[CompanyFinancialSummaryOut],
    response_model_by_alias=True,
    summary="Financial summary per company",
)
async def company_financials(
    db: DBSession,
    admin: AdminUser,
) -> list[CompanyFinancialSummaryOut]:
    summaries = await financialService.get_company_financial_summaries(db)
    return [CompanyFinancialSummaryOut(**row) for row in summaries]


@router.get(
    "/financials/withdrawals",
    response_model=list[WithdrawalOut],
    response_model_by_alias=True,
    summary="Withdrawal requests of every company",
)
async def list_withdrawals(
    db: DBSession,
    admin: AdminUser,
    company_id: Optional[uuid.UUID] = Query(None, alias="companyId"),
    withdrawal_status: Optional[WithdrawalStatus] = Query(None, alias="status"),
) -> list[WithdrawalOut]:
    withdrawals = await financialService.list_withdrawals(
        db, company_id=company_id, status=withdrawal_status
    )
    return [WithdrawalOut.model_validate(w) for w in withdrawals]


@router.post(
    "/financials/withdrawals/{withdrawal_id}/process",
    response_model=WithdrawalOut,
    response_model_by_alias=True,
    summary="Complete or cancel a withdrawal",
)
async def process_withdrawal(
    db: DBSession,
    withdrawal_id: uuid.UUID,
    body: ProcessWithdrawalIn,
    admin: AdminUser,
) -> WithdrawalOut:
    try:
        withdrawal = await financialService.process_withdrawal(
            db,
            withdrawal_id,
            new_status=body.status,
            processed_by=admin.id,
            reference_number=body.reference_number,
            note=body.note,
            invoice_url=body.invoice_url,
        )
    except financialService.WithdrawalNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except financialService.WithdrawalError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return WithdrawalOut.model_validate(withdrawal)


@router.get(
    "/financials/transactions",
    response_model=list[TransactionOut],
    response_model_by_alias=True,
    summary="Ledger entries, newest first",
)
async def list_transactions(
    db: DBSession,
    admin: AdminUser,
    company_id: Optional[uuid.UUID] = Query(None, alias="companyId"),
    job_id: Optional[uuid.UUID] = Query(None, alias="jobId"),
    limit: int = Query(100, ge=1, le=1000),
) -> list[TransactionOut]:
    rows = await financialService.list_transactions(
        db, company_id=company_id, job_id=job_id, limit=limit
    )
    return [TransactionOut.model_validate(row) for row in rows]


# ---------------------------------------------------------------------------
# POST /admin/jobs/{job_id}/refund
# ---------------------------------------------------------------------------

@router.post(
    "/jobs/{job_id}/refund",
    response_model=JobOut,
    response_model_by_alias=True,
    summary="Fully refund any job",
)
async def refund_job(
    db: DBSession,
    job_id: uuid.UUID,
    admin: AdminUser,
    body: RefundJobRequest | None = None,
) -> JobOut:
    body = body or RefundJobRequest()
    try:
        job = await jobService.refund_job(
            db, job_id, actor_type=ActorType.ADMIN, reason=body.reason
        )
    except jobService.JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except jobService.InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except PaymentError as exc:
        raise payment_error_to_http(exc)
    return JobOut.model_validate(job)

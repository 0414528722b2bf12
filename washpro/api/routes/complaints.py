"""
Complaint API routes (customer side)
====================================

Routes:
  POST /api/complaints   -- file a complaint about one of the customer's jobs

Customers list their complaints under ``/customer/complaints``; staff
handle them under ``/company/complaints`` and ``/admin/complaints``.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from washpro.api.deps import CurrentCustomer, DBSession
from washpro.api.schemas.complaint import ComplaintCreateRequest, ComplaintOut
from washpro.integrations.stripe import PaymentError
from washpro.services import complaintService, jobService

router = APIRouter(prefix="/complaints", tags=["Complaints"])


@router.post(
    "",
    response_model=ComplaintOut,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="File a complaint",
)
async def create_complaint(
    db: DBSession,
    body: ComplaintCreateRequest,
    customer: CurrentCustomer,
) -> ComplaintOut:
    try:
        complaint = await complaintService.create_complaint(
            db,
            customer_id=customer.id,
            job_id=body.job_id,
            complaint_type=body.type,
            description=body.description,
        )
    except jobService.JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except jobService.NotAuthorizedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return ComplaintOut.model_validate(complaint)


def complaint_error_to_http(exc: Exception) -> HTTPException:
    """Map the errors of the staff complaint actions to HTTP errors."""
    if isinstance(exc, (complaintService.ComplaintNotFoundError, jobService.JobNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, jobService.NotAuthorizedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, PaymentError):
        return HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=exc.message)
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


COMPLAINT_ACTION_ERRORS = (
    complaintService.ComplaintNotFoundError,
    complaintService.ComplaintError,
    jobService.JobNotFoundError,
    jobService.NotAuthorizedError,
    jobService.InvalidTransitionError,
    PaymentError,
)

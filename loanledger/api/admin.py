from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from loanledger.db.base import get_db
from loanledger.core.dependencies import Actor, require_admin
from loanledger.core.exceptions import ValidationError
from loanledger.models.loan import PaymentStatus
from loanledger.schemas.loan import LoanResponse
from loanledger.schemas.payment import PaymentListResponse, PaymentReject, PaymentResponse
from loanledger.schemas.profile import (
    BorrowerCreate,
    BorrowerDetailResponse,
    BorrowerListResponse,
    BorrowerResponse,
    LenderCreate,
    LenderDetailResponse,
    LenderListResponse,
    LenderResponse,
)
from loanledger.services import payment as payment_service
from loanledger.services import profile as profile_service
from loanledger.services.loan import run_overdue_sweep
from loanledger.services.scheduler import get_scheduler_status, reschedule_jobs
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from uuid import UUID

router = APIRouter(prefix="/api/admin", tags=["admin"])


class PaymentApprovalResponse(BaseModel):
    payment: PaymentResponse
    loan: LoanResponse


class SchedulerIntervalUpdate(BaseModel):
    interval_minutes: int = Field(..., ge=1, description="Minutes between overdue sweeps")


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

@router.post("/lenders", response_model=LenderResponse, status_code=201)
def create_lender(
    payload: LenderCreate,
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Register a lender (Admin only)."""
    return profile_service.create_lender(
        db,
        name=payload.name,
        phone_number=payload.phone_number,
        upi_id=payload.upi_id,
        upi_qr_code_url=payload.upi_qr_code_url,
        created_by=current_actor.id
    )


@router.post("/borrowers", response_model=BorrowerResponse, status_code=201)
def create_borrower(
    payload: BorrowerCreate,
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Register a borrower (Admin only)."""
    return profile_service.create_borrower(
        db,
        name=payload.name,
        phone_number=payload.phone_number,
        address=payload.address,
        created_by=current_actor.id
    )


@router.delete("/lenders/{lender_id}")
def delete_lender(
    lender_id: UUID,
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Delete a lender and its closed/defaulted loans (Admin only)."""
    profile_service.delete_lender(db, lender_id, deleted_by=current_actor.id)
    return {"message": "Lender deleted successfully"}


@router.delete("/borrowers/{borrower_id}")
def delete_borrower(
    borrower_id: UUID,
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Delete a borrower and its closed/defaulted loans (Admin only)."""
    profile_service.delete_borrower(db, borrower_id, deleted_by=current_actor.id)
    return {"message": "Borrower deleted successfully"}


@router.get("/lenders", response_model=LenderListResponse)
def list_lenders(
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Lender profiles, newest first, filtered by name or phone (Admin only)."""
    lenders, total = profile_service.list_profiles(db, "lender", search=search, page=page, limit=limit)
    return {"lenders": lenders, "total": total, "page": page, "limit": limit}


@router.get("/borrowers", response_model=BorrowerListResponse)
def list_borrowers(
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Borrower profiles, newest first, filtered by name or phone (Admin only)."""
    borrowers, total = profile_service.list_profiles(db, "borrower", search=search, page=page, limit=limit)
    return {"borrowers": borrowers, "total": total, "page": page, "limit": limit}


@router.get("/lenders/{lender_id}", response_model=LenderDetailResponse)
def lender_details(
    lender_id: UUID,
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return profile_service.get_profile_details(db, "lender", lender_id)


@router.get("/borrowers/{borrower_id}", response_model=BorrowerDetailResponse)
def borrower_details(
    borrower_id: UUID,
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return profile_service.get_profile_details(db, "borrower", borrower_id)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

@router.get("/payments/pending", response_model=PaymentListResponse)
def list_pending_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Payments awaiting review, oldest first (Admin only)."""
    payments, total = payment_service.list_pending_payments(db, page=page, limit=limit)
    return {"payments": payments, "total": total, "page": page, "limit": limit}


@router.get("/payments", response_model=PaymentListResponse)
def list_payments(
    status: Optional[str] = None,
    loan_id: Optional[str] = None,
    borrower_id: Optional[UUID] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Payment history with filters (Admin only)."""
    status_filter = None
    if status:
        try:
            status_filter = PaymentStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid status: {status}")

    payments, total = payment_service.list_payments(
        db,
        status=status_filter,
        loan_id=loan_id,
        borrower_id=borrower_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit
    )
    return {"payments": payments, "total": total, "page": page, "limit": limit}


@router.put("/payments/{payment_id}/approve", response_model=PaymentApprovalResponse)
def approve_payment(
    payment_id: UUID,
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Approve a pending payment and apply it to its loan (Admin only)."""
    payment, loan = payment_service.approve_payment(db, payment_id, approved_by=current_actor.id)
    return {"payment": payment, "loan": loan}


@router.put("/payments/{payment_id}/reject", response_model=PaymentResponse)
def reject_payment(
    payment_id: UUID,
    payload: PaymentReject,
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Reject a pending payment (Admin only)."""
    return payment_service.reject_payment(
        db, payment_id, approved_by=current_actor.id, rejection_reason=payload.rejection_reason
    )


# ---------------------------------------------------------------------------
# Maintenance & scheduler
# ---------------------------------------------------------------------------

@router.post("/maintenance/update-overdue-loans")
def update_overdue_loans(
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Run the overdue sweep now (Admin only)."""
    result = run_overdue_sweep(db, actor_id=current_actor.id)
    return {
        "message": "Overdue loans updated successfully",
        "loans_examined": result["examined"],
        "loans_defaulted": [item["loan_id"] for item in result["defaulted"]],
    }


@router.get("/scheduler/status")
def scheduler_status(
    current_actor: Actor = Depends(require_admin)
):
    """Background scheduler state (Admin only)."""
    return get_scheduler_status()


@router.put("/scheduler/interval")
def update_scheduler_interval(
    payload: SchedulerIntervalUpdate,
    current_actor: Actor = Depends(require_admin)
):
    """Change the overdue sweep interval at runtime (Admin only)."""
    try:
        reschedule_jobs(payload.interval_minutes)
    except RuntimeError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return get_scheduler_status()

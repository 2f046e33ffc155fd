from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from loanledger.db.base import get_db
from loanledger.core.dependencies import Actor, require_admin
from loanledger.core.exceptions import ValidationError
from loanledger.models.loan import LoanStatus
from loanledger.schemas.loan import (
    LoanCreate,
    LoanDetailResponse,
    LoanListResponse,
    LoanResponse,
    LoanStatsResponse,
    LoanStatusUpdate,
)
from loanledger.services import loan as loan_service
from typing import Optional
from uuid import UUID

router = APIRouter(prefix="/api/loans", tags=["loans"])


@router.post("", response_model=LoanResponse, status_code=201)
def create_loan(
    payload: LoanCreate,
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Issue a new loan (Admin only)."""
    return loan_service.create_loan(
        db,
        borrower_id=payload.borrower_id,
        lender_id=payload.lender_id,
        principal_amount=payload.principal_amount,
        total_days=payload.total_days,
        emi_per_day=payload.emi_per_day,
        start_date=payload.start_date,
        created_by=current_actor.id
    )


@router.get("", response_model=LoanListResponse)
def list_loans(
    status: Optional[str] = None,
    lender_id: Optional[UUID] = None,
    borrower_id: Optional[UUID] = None,
    search: Optional[str] = Query(None, description="Substring of the loan ID"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """List loans with optional filters (Admin only)."""
    status_filter = None
    if status:
        try:
            status_filter = LoanStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid status: {status}")

    loans, total = loan_service.list_loans(
        db,
        status=status_filter,
        lender_id=lender_id,
        borrower_id=borrower_id,
        loan_id_contains=search,
        page=page,
        limit=limit
    )
    return {"loans": loans, "total": total, "page": page, "limit": limit}


@router.get("/stats", response_model=LoanStatsResponse)
def get_loan_stats(
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Portfolio statistics (Admin only)."""
    return loan_service.get_loan_stats(db)


@router.get("/{loan_id}", response_model=LoanDetailResponse)
def get_loan(
    loan_id: str,
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Loan with payment summary and history (Admin only)."""
    return loan_service.get_loan_details(db, loan_id)


@router.put("/{loan_id}/status", response_model=LoanResponse)
def update_loan_status(
    loan_id: str,
    payload: LoanStatusUpdate,
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Change a loan's status (Admin only)."""
    return loan_service.update_loan_status(
        db, loan_id, payload.status, notes=payload.notes, changed_by=current_actor.id
    )


@router.delete("/{loan_id}")
def delete_loan(
    loan_id: str,
    current_actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Permanently delete a loan and its payments (Admin only)."""
    loan_service.delete_loan(db, loan_id, deleted_by=current_actor.id)
    return {"message": "Loan deleted successfully"}

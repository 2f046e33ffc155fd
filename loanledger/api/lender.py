from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from loanledger.db.base import get_db
from loanledger.core.dependencies import Actor, require_lender
from loanledger.core.exceptions import ValidationError
from loanledger.models.loan import LoanStatus
from loanledger.schemas.loan import LoanListResponse
from loanledger.schemas.payment import PaymentListResponse
from loanledger.schemas.profile import LenderDashboardResponse, LenderResponse
from loanledger.services import loan as loan_service
from loanledger.services import payment as payment_service
from loanledger.services import profile as profile_service
from typing import Optional

router = APIRouter(prefix="/api/lender", tags=["lender"])


@router.get("/dashboard", response_model=LenderDashboardResponse)
def dashboard(
    current_actor: Actor = Depends(require_lender),
    db: Session = Depends(get_db)
):
    """Lender totals and the loans still being repaid."""
    return profile_service.get_lender_dashboard(db, current_actor.id)


@router.get("/loans", response_model=LoanListResponse)
def my_loans(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_actor: Actor = Depends(require_lender),
    db: Session = Depends(get_db)
):
    """Loans issued by the calling lender."""
    status_filter = None
    if status:
        try:
            status_filter = LoanStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid status: {status}")

    loans, total = loan_service.list_loans(
        db, status=status_filter, lender_id=current_actor.id, page=page, limit=limit
    )
    return {"loans": loans, "total": total, "page": page, "limit": limit}


@router.get("/profile", response_model=LenderResponse)
def my_profile(
    current_actor: Actor = Depends(require_lender),
    db: Session = Depends(get_db)
):
    return profile_service.get_lender(db, current_actor.id)


@router.get("/loans/{loan_id}/payments", response_model=PaymentListResponse)
def loan_payments(
    loan_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_actor: Actor = Depends(require_lender),
    db: Session = Depends(get_db)
):
    """Payments received on one of the calling lender's loans, newest first."""
    payments, total = payment_service.list_lender_loan_payments(
        db, current_actor.id, loan_id, page=page, limit=limit
    )
    return {"payments": payments, "total": total, "page": page, "limit": limit}

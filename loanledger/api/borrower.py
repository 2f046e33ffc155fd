from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from loanledger.db.base import get_db
from loanledger.core.dependencies import Actor, require_borrower
from loanledger.core.exceptions import NotFoundError
from loanledger.models.loan import LoanStatus
from loanledger.schemas.loan import LoanDetailResponse
from loanledger.schemas.payment import PaymentCreate, PaymentListResponse, PaymentResponse
from loanledger.schemas.profile import LenderPaymentInfoResponse
from loanledger.services import loan as loan_service
from loanledger.services import payment as payment_service
from loanledger.services import profile as profile_service

router = APIRouter(prefix="/api/borrower", tags=["borrower"])


@router.post("/payments", response_model=PaymentResponse, status_code=201)
def submit_payment(
    payload: PaymentCreate,
    current_actor: Actor = Depends(require_borrower),
    db: Session = Depends(get_db)
):
    """Submit a payment against the active loan for admin approval."""
    return payment_service.submit_payment(
        db,
        borrower_id=current_actor.id,
        amount=payload.amount,
        for_days=payload.for_days,
        screenshot_url=payload.screenshot_url,
        utr_number=payload.utr_number
    )


@router.get("/payments", response_model=PaymentListResponse)
def payment_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_actor: Actor = Depends(require_borrower),
    db: Session = Depends(get_db)
):
    """The borrower's own payments, newest first."""
    payments, total = payment_service.get_borrower_payment_history(
        db, current_actor.id, page=page, limit=limit
    )
    return {"payments": payments, "total": total, "page": page, "limit": limit}


@router.get("/loan", response_model=LoanDetailResponse)
def current_loan(
    current_actor: Actor = Depends(require_borrower),
    db: Session = Depends(get_db)
):
    """The borrower's active loan with its payment summary."""
    loans, _ = loan_service.list_loans(
        db, status=LoanStatus.ACTIVE, borrower_id=current_actor.id, limit=1
    )
    if not loans:
        raise NotFoundError("No active loan found")
    return loan_service.get_loan_details(db, loans[0].loan_id)


@router.get("/lender-qr-code", response_model=LenderPaymentInfoResponse)
def lender_qr_code(
    current_actor: Actor = Depends(require_borrower),
    db: Session = Depends(get_db)
):
    """UPI id and QR code of the lender to pay for the active loan."""
    return profile_service.get_lender_payment_info(db, current_actor.id)

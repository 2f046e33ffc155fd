import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, List, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from loanledger.core import clock
from loanledger.core.audit import write_audit_log
from loanledger.core.exceptions import (
    InvalidStateError,
    LoanNotFoundError,
    NotFoundError,
    PaymentNotFoundError,
    ProfileNotFoundError,
    ValidationError,
)
from loanledger.db.base import transaction
from loanledger.models.loan import Loan, LoanStatus, Payment, PaymentStatus
from loanledger.models.profile import BorrowerProfile
from loanledger.services.loan import adjust_lender_aggregates, apply_status_transition, require_positive, to_money

logger = logging.getLogger(__name__)


def _claim_pending_payment(db: Session, payment: Payment, new_status: PaymentStatus, approved_by: UUID, when: datetime, **extra) -> None:
    """Flip a payment out of PENDING exactly once.

    The update only matches while the row is still pending, so of two
    concurrent approve/reject calls on the same payment exactly one matches
    a row; the other sees 0 rows and is refused.
    """
    if payment.status != PaymentStatus.PENDING:
        raise InvalidStateError("Payment already processed", {"status": payment.status.value})

    values = {
        Payment.status: new_status,
        Payment.approved_by: approved_by,
        Payment.admin_approval_date: when,
    }
    values.update({getattr(Payment, key): value for key, value in extra.items()})
    claimed = db.query(Payment).filter(
        Payment.id == payment.id,
        Payment.status == PaymentStatus.PENDING
    ).update(values, synchronize_session=False)
    if not claimed:
        raise InvalidStateError("Payment already processed")
    db.refresh(payment)


def submit_payment(
    db: Session,
    borrower_id: UUID,
    amount: Decimal,
    for_days: int,
    screenshot_url: str,
    utr_number: Optional[str] = None,
    now: datetime = None
) -> Payment:
    """
    Record a borrower's payment against their active loan, pending approval.

    The amount must be exactly ``emi_per_day * for_days`` and may not exceed
    the remaining balance. Nothing on the loan changes until approval.
    """
    amount = to_money("amount", amount)
    require_positive("for_days", for_days)
    if not screenshot_url:
        raise ValidationError("Payment screenshot is required")
    now = now or clock.utcnow()

    with transaction(db):
        borrower = db.query(BorrowerProfile).filter(BorrowerProfile.id == borrower_id).first()
        if not borrower:
            raise ProfileNotFoundError("borrower", borrower_id)

        loan = db.query(Loan).filter(
            Loan.borrower_id == borrower_id,
            Loan.status == LoanStatus.ACTIVE
        ).with_for_update().populate_existing().first()
        if not loan:
            raise NotFoundError("No active loan found", {"borrower_id": str(borrower_id)})

        expected_amount = loan.emi_per_day * for_days
        if amount != expected_amount:
            raise ValidationError(
                f"Payment amount should be exactly {expected_amount} for {for_days} day(s)",
                {"amount": str(amount), "expected": str(expected_amount)}
            )

        if amount > loan.remaining_balance:
            raise ValidationError(
                "Payment amount exceeds remaining loan balance",
                {"amount": str(amount), "remaining_balance": str(loan.remaining_balance)}
            )

        payment = Payment(
            loan_id=loan.id,
            borrower_id=borrower_id,
            lender_id=loan.lender_id,
            amount=amount,
            for_days=for_days,
            screenshot_url=screenshot_url,
            utr_number=utr_number.strip() if utr_number else None,
            status=PaymentStatus.PENDING,
            payment_date=now
        )
        db.add(payment)
        loan_ref = loan.loan_id

    db.refresh(payment)
    logger.info("Payment %s submitted for loan %s (amount=%s, days=%d)", payment.id, loan_ref, amount, for_days)
    write_audit_log(
        borrower_id, "borrower", "PAYMENT_SUBMIT", "Payment", payment.id,
        {"amount": amount, "for_days": for_days, "loan_id": loan_ref}
    )
    return payment


def approve_payment(
    db: Session,
    payment_id: UUID,
    approved_by: UUID,
    now: datetime = None
) -> Tuple[Payment, Loan]:
    """
    Approve a pending payment and settle it against its loan.

    In one transaction: mark the payment approved, add the amount to the
    loan's repaid total, reduce the remaining balance, push the next due date
    forward by the days covered, close the loan if the balance is cleared,
    and credit the lender's earnings.
    """
    now = now or clock.utcnow()

    with transaction(db):
        payment = db.get(Payment, payment_id)
        if not payment:
            raise PaymentNotFoundError(payment_id)

        _claim_pending_payment(db, payment, PaymentStatus.APPROVED, approved_by, now)

        loan = db.query(Loan).filter(
            Loan.id == payment.loan_id
        ).with_for_update().populate_existing().first()
        if not loan:
            raise LoanNotFoundError()
        if loan.status == LoanStatus.CLOSED:
            raise InvalidStateError("Loan is already closed", {"loan_id": loan.loan_id})
        if payment.amount > loan.remaining_balance:
            raise ValidationError(
                "Payment amount exceeds remaining loan balance",
                {"amount": str(payment.amount), "remaining_balance": str(loan.remaining_balance)}
            )

        loan.total_amount_repaid = loan.total_amount_repaid + payment.amount
        loan.remaining_balance = loan.remaining_balance - payment.amount
        loan.next_due_date = loan.next_due_date + timedelta(days=payment.for_days)
        loan.days_overdue = max((now.date() - loan.next_due_date).days, 0)

        if loan.remaining_balance <= 0:
            apply_status_transition(db, loan, LoanStatus.CLOSED)

        adjust_lender_aggregates(db, loan.lender_id, total_earnings=payment.amount)

    db.refresh(payment)
    db.refresh(loan)
    logger.info("Payment %s approved; loan %s balance now %s (%s)", payment.id, loan.loan_id, loan.remaining_balance, loan.status.value)
    write_audit_log(
        approved_by, "admin", "PAYMENT_APPROVE", "Payment", payment.id,
        {"amount": payment.amount, "loan_id": loan.loan_id, "for_days": payment.for_days}
    )
    return payment, loan


def reject_payment(
    db: Session,
    payment_id: UUID,
    approved_by: UUID,
    rejection_reason: str,
    now: datetime = None
) -> Payment:
    """Reject a pending payment. The loan is left untouched."""
    if not rejection_reason or not rejection_reason.strip():
        raise ValidationError("Rejection reason is required")
    now = now or clock.utcnow()

    with transaction(db):
        payment = db.get(Payment, payment_id)
        if not payment:
            raise PaymentNotFoundError(payment_id)

        _claim_pending_payment(
            db, payment, PaymentStatus.REJECTED, approved_by, now,
            rejection_reason=rejection_reason.strip()
        )

    db.refresh(payment)
    logger.info("Payment %s rejected", payment.id)
    write_audit_log(
        approved_by, "admin", "PAYMENT_REJECT", "Payment", payment.id,
        {"rejection_reason": payment.rejection_reason, "amount": payment.amount}
    )
    return payment


def get_payment(db: Session, payment_id: UUID) -> Payment:
    payment = db.query(Payment).filter(Payment.id == payment_id).first()
    if not payment:
        raise PaymentNotFoundError(payment_id)
    return payment


def list_pending_payments(db: Session, page: int = 1, limit: int = 10) -> Tuple[List[Payment], int]:
    """Pending payments, oldest submission first."""
    query = db.query(Payment).filter(Payment.status == PaymentStatus.PENDING)
    total = query.count()
    payments = query.order_by(Payment.payment_date.asc()).offset((page - 1) * limit).limit(limit).all()
    return payments, total


def list_payments(
    db: Session,
    status: Optional[PaymentStatus] = None,
    loan_id: Optional[str] = None,
    borrower_id: Optional[UUID] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 10
) -> Tuple[List[Payment], int]:
    """Filtered, paginated payment listing (newest first)."""
    query = db.query(Payment)
    if status:
        query = query.filter(Payment.status == status)
    if loan_id:
        query = query.join(Loan, Payment.loan_id == Loan.id).filter(Loan.loan_id == loan_id)
    if borrower_id:
        query = query.filter(Payment.borrower_id == borrower_id)
    if start_date:
        query = query.filter(Payment.payment_date >= start_date)
    if end_date:
        query = query.filter(Payment.payment_date <= end_date)

    total = query.count()
    payments = query.order_by(Payment.payment_date.desc()).offset((page - 1) * limit).limit(limit).all()
    return payments, total


def get_borrower_payment_history(db: Session, borrower_id: UUID, page: int = 1, limit: int = 10) -> Tuple[List[Payment], int]:
    return list_payments(db, borrower_id=borrower_id, page=page, limit=limit)


def list_lender_loan_payments(
    db: Session,
    lender_id: UUID,
    loan_id: str,
    page: int = 1,
    limit: int = 10
) -> Tuple[List[Payment], int]:
    """Payments on one of the lender's own loans, newest first.

    A loan that exists but belongs to another lender is reported the same
    way as a missing one.
    """
    loan = db.query(Loan).filter(Loan.loan_id == loan_id, Loan.lender_id == lender_id).first()
    if not loan:
        raise NotFoundError("Loan not found or access denied", {"loan_id": loan_id})

    query = db.query(Payment).filter(Payment.loan_id == loan.id)
    total = query.count()
    payments = query.order_by(Payment.payment_date.desc()).offset((page - 1) * limit).limit(limit).all()
    return payments, total

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Union, List, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from loanledger.core import clock
from loanledger.core.audit import write_audit_log
from loanledger.core.config import settings
from loanledger.core.exceptions import (
    ConflictError,
    InvalidStateError,
    LedgerError,
    LoanNotFoundError,
    ProfileNotFoundError,
    TransientError,
    ValidationError,
)
from loanledger.db.base import transaction
from loanledger.models.loan import Loan, LoanStatus, Payment, PaymentStatus
from loanledger.models.profile import BorrowerProfile, LenderProfile
from loanledger.services.loan_id import MAX_ALLOCATION_ATTEMPTS, allocate_loan_id, resync_loan_id_counter

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


# ---------------------------------------------------------------------------
# Aggregate helpers (always called inside an open ledger transaction)
# ---------------------------------------------------------------------------

def adjust_lender_aggregates(db: Session, lender_id: UUID, **deltas) -> None:
    """Apply in-database increments to a lender's aggregate columns."""
    values = {
        getattr(LenderProfile, column): getattr(LenderProfile, column) + delta
        for column, delta in deltas.items()
        if delta
    }
    if values:
        db.query(LenderProfile).filter(LenderProfile.id == lender_id).update(values, synchronize_session=False)


def adjust_borrower_aggregates(db: Session, borrower_id: UUID, **deltas) -> None:
    """Apply in-database increments to a borrower's aggregate columns."""
    values = {
        getattr(BorrowerProfile, column): getattr(BorrowerProfile, column) + delta
        for column, delta in deltas.items()
        if delta
    }
    if values:
        db.query(BorrowerProfile).filter(BorrowerProfile.id == borrower_id).update(values, synchronize_session=False)


def find_active_loan(db: Session, borrower_id: UUID, exclude_id: UUID = None) -> Optional[Loan]:
    query = db.query(Loan).filter(
        Loan.borrower_id == borrower_id,
        Loan.status == LoanStatus.ACTIVE,
    )
    if exclude_id is not None:
        query = query.filter(Loan.id != exclude_id)
    return query.first()


def lock_loan(db: Session, loan_id: str) -> Loan:
    """Load a loan by its LN- identifier with a row lock."""
    loan = db.query(Loan).filter(Loan.loan_id == loan_id).with_for_update().populate_existing().first()
    if not loan:
        raise LoanNotFoundError(loan_id)
    return loan


def apply_status_transition(db: Session, loan: Loan, new_status: LoanStatus) -> LoanStatus:
    """Move a loan to ``new_status`` and keep the lender's active count in step.

    Every status change goes through here: the admin status endpoint, the
    implicit close on full repayment and the overdue sweep. Closing zeroes
    the balance; leaving CLOSED restores it from principal and repayments.
    Returns the previous status.
    """
    previous = loan.status
    if new_status == previous:
        return previous

    loan.status = new_status
    if new_status == LoanStatus.CLOSED:
        loan.remaining_balance = ZERO
    elif previous == LoanStatus.CLOSED:
        loan.remaining_balance = loan.principal_amount - loan.total_amount_repaid

    delta = int(new_status == LoanStatus.ACTIVE) - int(previous == LoanStatus.ACTIVE)
    adjust_lender_aggregates(db, loan.lender_id, active_loans_count=delta)
    return previous


def remove_loan(db: Session, loan: Loan) -> int:
    """Delete a loan with its payments and reverse the aggregates it contributed.

    Returns the number of payments removed.
    """
    payments_count = len(loan.payments)
    approved_total = sum(
        (p.amount for p in loan.payments if p.status == PaymentStatus.APPROVED), ZERO
    )
    adjust_lender_aggregates(
        db,
        loan.lender_id,
        total_amount_lent=-loan.principal_amount,
        active_loans_count=-1 if loan.status == LoanStatus.ACTIVE else 0,
        total_earnings=-approved_total,
    )
    adjust_borrower_aggregates(db, loan.borrower_id, total_borrowed=-loan.principal_amount)
    db.delete(loan)  # payments go with it (delete-orphan cascade)
    return payments_count


def require_positive(name: str, value) -> None:
    if value is None or value <= 0:
        raise ValidationError(f"{name} must be greater than zero", {name: str(value)})


def to_money(name: str, value) -> Decimal:
    """Positive amount with at most two decimal places, as stored."""
    require_positive(name, value)
    amount = Decimal(str(value))
    if amount != amount.quantize(CENT):
        raise ValidationError(f"{name} must have at most two decimal places", {name: str(amount)})
    return amount


ACTIVE_LOAN_VIOLATION = "active_loan"
LOAN_ID_VIOLATION = "loan_id"
MISSING_REFERENCE_VIOLATION = "missing_reference"


def integrity_violation(error: IntegrityError) -> Optional[str]:
    """Name the loan constraint an insert broke, or None if it is not one of ours.

    PostgreSQL reports the constraint name through ``diag``; SQLite only puts
    the column in the message.
    """
    message = str(error.orig).lower()
    constraint = (getattr(getattr(error.orig, "diag", None), "constraint_name", None) or "").lower()
    if "foreign key" in message or constraint.endswith("_fkey"):
        return MISSING_REFERENCE_VIOLATION
    if constraint == "uq_loan_borrower_active" or "loan.borrower_id" in message:
        return ACTIVE_LOAN_VIOLATION
    if constraint == "ix_loan_loan_id" or "loan.loan_id" in message:
        return LOAN_ID_VIOLATION
    return None


def _missing_profile_error(db: Session, borrower_id: UUID, lender_id: UUID) -> ProfileNotFoundError:
    if not db.query(BorrowerProfile.id).filter(BorrowerProfile.id == borrower_id).first():
        return ProfileNotFoundError("borrower", borrower_id)
    return ProfileNotFoundError("lender", lender_id)


# ---------------------------------------------------------------------------
# Loan lifecycle
# ---------------------------------------------------------------------------

def create_loan(
    db: Session,
    borrower_id: UUID,
    lender_id: UUID,
    principal_amount: Decimal,
    total_days: int,
    emi_per_day: Decimal,
    start_date: date,
    created_by: UUID = None,
    today: date = None
) -> Loan:
    """
    Issue a loan from a lender to a borrower.

    Loan insert, identifier allocation and the lender/borrower aggregate
    increments commit together. The borrower and lender rows are locked first
    so two concurrent creations for the same borrower serialize and the lender
    cannot be deleted underneath; the partial unique index on active loans
    backs this up. A loan id already taken (lagging day counter) resyncs the
    counter and retries.
    """
    principal_amount = to_money("principal_amount", principal_amount)
    require_positive("total_days", total_days)
    emi_per_day = to_money("emi_per_day", emi_per_day)
    today = today or clock.today()

    with transaction(db):
        borrower = db.query(BorrowerProfile).filter(
            BorrowerProfile.id == borrower_id
        ).with_for_update().first()
        if not borrower:
            raise ProfileNotFoundError("borrower", borrower_id)

        lender = db.query(LenderProfile).filter(
            LenderProfile.id == lender_id
        ).with_for_update().first()
        if not lender:
            raise ProfileNotFoundError("lender", lender_id)

        if find_active_loan(db, borrower_id):
            raise ConflictError("Borrower already has an active loan", {"borrower_id": str(borrower_id)})

        for attempt in range(1, MAX_ALLOCATION_ATTEMPTS + 1):
            loan = Loan(
                loan_id=allocate_loan_id(db, today),
                borrower_id=borrower_id,
                lender_id=lender_id,
                principal_amount=principal_amount,
                total_days=total_days,
                emi_per_day=emi_per_day,
                start_date=start_date,
                end_date=start_date + timedelta(days=total_days),
                status=LoanStatus.ACTIVE,
                total_amount_repaid=ZERO,
                remaining_balance=principal_amount,
                next_due_date=start_date,
                days_overdue=0,
                admin_notes="",
                created_by=created_by
            )
            try:
                with db.begin_nested():
                    db.add(loan)
                    db.flush()
            except IntegrityError as e:
                violation = integrity_violation(e)
                if violation == ACTIVE_LOAN_VIOLATION:
                    raise ConflictError("Borrower already has an active loan", {"borrower_id": str(borrower_id)}) from e
                if violation == MISSING_REFERENCE_VIOLATION:
                    raise _missing_profile_error(db, borrower_id, lender_id) from e
                if violation != LOAN_ID_VIOLATION:
                    raise
                logger.warning("Loan id %s already taken, resyncing counter (attempt %d)", loan.loan_id, attempt)
                resync_loan_id_counter(db, today)
                continue
            break
        else:
            raise TransientError("Could not allocate a loan identifier, please retry")

        adjust_lender_aggregates(db, lender_id, total_amount_lent=principal_amount, active_loans_count=1)
        adjust_borrower_aggregates(db, borrower_id, total_borrowed=principal_amount)

    db.refresh(loan)
    logger.info("Created loan %s for borrower %s (principal=%s)", loan.loan_id, borrower_id, principal_amount)
    write_audit_log(
        created_by, "admin", "LOAN_CREATE", "Loan", loan.loan_id,
        {"borrower_id": borrower_id, "lender_id": lender_id, "principal_amount": principal_amount}
    )
    return loan


def get_loan(db: Session, loan_id: str) -> Loan:
    """Get a loan by its LN- identifier."""
    loan = db.query(Loan).filter(Loan.loan_id == loan_id).first()
    if not loan:
        raise LoanNotFoundError(loan_id)
    return loan


def get_loan_details(db: Session, loan_id: str, today: date = None) -> dict:
    """Loan with a payment summary and its payment history (newest first)."""
    today = today or clock.today()
    loan = get_loan(db, loan_id)
    payments = db.query(Payment).filter(
        Payment.loan_id == loan.id
    ).order_by(Payment.payment_date.desc()).all()

    approved = [p for p in payments if p.status == PaymentStatus.APPROVED]
    pending = [p for p in payments if p.status == PaymentStatus.PENDING]

    return {
        "loan": loan,
        "payment_summary": {
            "total_paid": sum((p.amount for p in approved), ZERO),
            "remaining_balance": loan.remaining_balance,
            "total_payments": len(payments),
            "approved_payments": len(approved),
            "pending_payments": len(pending),
            "days_overdue": loan.days_overdue,
            "remaining_days": max((loan.end_date - today).days, 0),
        },
        "payment_history": payments,
    }


def list_loans(
    db: Session,
    status: Optional[LoanStatus] = None,
    lender_id: Optional[UUID] = None,
    borrower_id: Optional[UUID] = None,
    loan_id_contains: Optional[str] = None,
    page: int = 1,
    limit: int = 10
) -> Tuple[List[Loan], int]:
    """Filtered, paginated loan listing (newest first). Returns (loans, total)."""
    query = db.query(Loan)
    if status:
        query = query.filter(Loan.status == status)
    if lender_id:
        query = query.filter(Loan.lender_id == lender_id)
    if borrower_id:
        query = query.filter(Loan.borrower_id == borrower_id)
    if loan_id_contains:
        query = query.filter(Loan.loan_id.ilike(f"%{loan_id_contains}%"))

    total = query.count()
    loans = query.order_by(
        Loan.created_at.desc(), Loan.loan_id.desc()
    ).offset((page - 1) * limit).limit(limit).all()
    return loans, total


def get_loan_stats(db: Session, now=None) -> dict:
    """Portfolio-wide loan counts and amounts."""
    now = now or clock.utcnow()
    counts = dict(
        db.query(Loan.status, func.count(Loan.id)).group_by(Loan.status).all()
    )
    total_lent, total_repaid = db.query(
        func.sum(Loan.principal_amount),
        func.sum(Loan.total_amount_repaid)
    ).one()
    total_lent = total_lent or ZERO
    total_repaid = total_repaid or ZERO
    recent_loans = db.query(func.count(Loan.id)).filter(
        Loan.created_at >= now - timedelta(days=30)
    ).scalar()

    return {
        "total_loans": sum(counts.values()),
        "active_loans": counts.get(LoanStatus.ACTIVE, 0),
        "closed_loans": counts.get(LoanStatus.CLOSED, 0),
        "defaulted_loans": counts.get(LoanStatus.DEFAULTED, 0),
        "total_amount_lent": total_lent,
        "total_amount_repaid": total_repaid,
        "outstanding_balance": total_lent - total_repaid,
        "recent_loans": recent_loans or 0,
    }


def update_loan_status(
    db: Session,
    loan_id: str,
    new_status: Union[LoanStatus, str],
    notes: Optional[str] = None,
    changed_by: UUID = None
) -> Loan:
    """
    Change a loan's status as an administrator.

    Transitions into or out of ACTIVE adjust the lender's active loan count;
    closing zeroes the remaining balance. Reactivating is refused while the
    borrower has another active loan.
    """
    try:
        target = LoanStatus(new_status)
    except ValueError:
        raise InvalidStateError(
            "Invalid status. Must be one of: active, closed, defaulted",
            {"status": str(new_status)}
        )

    with transaction(db):
        loan = lock_loan(db, loan_id)

        if target == LoanStatus.ACTIVE and loan.status != LoanStatus.ACTIVE:
            if find_active_loan(db, loan.borrower_id, exclude_id=loan.id):
                raise ConflictError("Borrower already has an active loan", {"loan_id": loan_id})

        previous = apply_status_transition(db, loan, target)
        if notes:
            loan.admin_notes = notes

        try:
            db.flush()
        except IntegrityError as e:
            raise ConflictError("Borrower already has an active loan", {"loan_id": loan_id}) from e

    db.refresh(loan)
    logger.info("Loan %s status %s -> %s", loan_id, previous.value, target.value)
    write_audit_log(
        changed_by, "admin", "LOAN_STATUS_UPDATE", "Loan", loan_id,
        {"previous_status": previous.value, "new_status": target.value, "notes": notes}
    )
    return loan


def delete_loan(db: Session, loan_id: str, deleted_by: UUID = None) -> None:
    """Permanently delete a loan, its payments, and its aggregate contributions."""
    with transaction(db):
        loan = lock_loan(db, loan_id)
        snapshot = {
            "borrower_id": loan.borrower_id,
            "lender_id": loan.lender_id,
            "principal_amount": loan.principal_amount,
        }
        snapshot["payments_removed"] = remove_loan(db, loan)

    logger.info("Deleted loan %s (%d payment(s))", loan_id, snapshot["payments_removed"])
    write_audit_log(deleted_by, "admin", "LOAN_DELETE", "Loan", loan_id, snapshot)


# ---------------------------------------------------------------------------
# Overdue sweep
# ---------------------------------------------------------------------------

def run_overdue_sweep(db: Session, today: date = None, actor_id: UUID = None) -> dict:
    """Recompute days overdue for active loans past their due date.

    Loans more than DEFAULT_AFTER_DAYS_OVERDUE days behind are defaulted
    through ``apply_status_transition``. Each loan is updated in its own
    transaction; a loan that fails is logged and skipped.

    Returns ``{"examined": int, "defaulted": [ {loan_id, days_overdue, ...} ]}``.
    """
    today = today or clock.today()
    threshold = settings.DEFAULT_AFTER_DAYS_OVERDUE

    candidates = [
        row.id for row in db.query(Loan.id).filter(
            Loan.status == LoanStatus.ACTIVE,
            Loan.next_due_date < today
        ).all()
    ]

    defaulted = []
    for loan_pk in candidates:
        try:
            with transaction(db):
                loan = db.query(Loan).filter(
                    Loan.id == loan_pk
                ).with_for_update().populate_existing().first()
                if not loan or loan.status != LoanStatus.ACTIVE or loan.next_due_date >= today:
                    continue

                loan.days_overdue = (today - loan.next_due_date).days
                if loan.days_overdue > threshold:
                    apply_status_transition(db, loan, LoanStatus.DEFAULTED)
                    defaulted.append({
                        "loan_id": loan.loan_id,
                        "days_overdue": loan.days_overdue,
                        "remaining_balance": loan.remaining_balance,
                    })
        except LedgerError:
            logger.exception("Overdue sweep failed for loan %s", loan_pk)

    if candidates:
        logger.info("Overdue sweep examined %d loan(s), defaulted %d", len(candidates), len(defaulted))
    write_audit_log(
        actor_id, "admin" if actor_id else "system", "SYSTEM_MAINTENANCE", "System", None,
        {"task": "update_overdue_loans", "loans_examined": len(candidates), "loans_defaulted": len(defaulted)}
    )
    return {"examined": len(candidates), "defaulted": defaulted}


def sweep_overdue_loans(db: Session, today: date = None, actor_id: UUID = None) -> int:
    """Run the overdue sweep and return the number of loans examined."""
    return run_overdue_sweep(db, today=today, actor_id=actor_id)["examined"]

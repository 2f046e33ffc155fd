import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from loanledger.core.audit import write_audit_log
from loanledger.core.exceptions import ConflictError, NotFoundError, ProfileNotFoundError, ValidationError
from loanledger.db.base import transaction
from loanledger.models.loan import Loan, LoanStatus
from loanledger.models.profile import BorrowerProfile, LenderProfile
from loanledger.services.loan import ZERO, remove_loan

logger = logging.getLogger(__name__)

PROFILE_MODELS = {
    "lender": LenderProfile,
    "borrower": BorrowerProfile,
}


def _require_text(**fields) -> None:
    for name, value in fields.items():
        if not value or not str(value).strip():
            raise ValidationError(f"{name} is required")


def _insert_profile(db: Session, profile, kind: str):
    with transaction(db):
        model = PROFILE_MODELS[kind]
        if db.query(model).filter(model.phone_number == profile.phone_number).first():
            raise ConflictError(
                f"{kind.capitalize()} with this phone number already exists",
                {"phone_number": profile.phone_number}
            )
        db.add(profile)
        try:
            db.flush()
        except IntegrityError as e:
            raise ConflictError(
                f"{kind.capitalize()} with this phone number already exists",
                {"phone_number": profile.phone_number}
            ) from e

    db.refresh(profile)
    logger.info("Created %s profile %s", kind, profile.id)
    write_audit_log(
        profile.created_by, "admin", "USER_CREATE", kind.capitalize(), profile.id,
        {"name": profile.name, "phone_number": profile.phone_number}
    )
    return profile


def create_lender(
    db: Session,
    name: str,
    phone_number: str,
    upi_id: str,
    upi_qr_code_url: str,
    created_by: UUID = None
) -> LenderProfile:
    """Register a lender. Phone numbers are unique across lenders."""
    _require_text(name=name, phone_number=phone_number, upi_id=upi_id, upi_qr_code_url=upi_qr_code_url)
    lender = LenderProfile(
        name=name.strip(),
        phone_number=phone_number.strip(),
        upi_id=upi_id.strip(),
        upi_qr_code_url=upi_qr_code_url,
        total_amount_lent=ZERO,
        active_loans_count=0,
        total_earnings=ZERO,
        created_by=created_by
    )
    return _insert_profile(db, lender, "lender")


def create_borrower(
    db: Session,
    name: str,
    phone_number: str,
    address: str,
    created_by: UUID = None
) -> BorrowerProfile:
    """Register a borrower. Phone numbers are unique across borrowers."""
    _require_text(name=name, phone_number=phone_number, address=address)
    borrower = BorrowerProfile(
        name=name.strip(),
        phone_number=phone_number.strip(),
        address=address.strip(),
        credit_score=500,
        total_borrowed=ZERO,
        created_by=created_by
    )
    return _insert_profile(db, borrower, "borrower")


def get_lender(db: Session, lender_id: UUID) -> LenderProfile:
    lender = db.query(LenderProfile).filter(LenderProfile.id == lender_id).first()
    if not lender:
        raise ProfileNotFoundError("lender", lender_id)
    return lender


def get_borrower(db: Session, borrower_id: UUID) -> BorrowerProfile:
    borrower = db.query(BorrowerProfile).filter(BorrowerProfile.id == borrower_id).first()
    if not borrower:
        raise ProfileNotFoundError("borrower", borrower_id)
    return borrower


def _delete_profile(db: Session, kind: str, profile_id: UUID, deleted_by: Optional[UUID]) -> None:
    """
    Delete a profile together with all of its loans.

    Refused while the profile has an active loan. Each removed loan reverses
    what it contributed to the counterpart profile's aggregates.
    """
    model = PROFILE_MODELS[kind]
    owner_column = Loan.lender_id if kind == "lender" else Loan.borrower_id

    with transaction(db):
        profile = db.query(model).filter(model.id == profile_id).with_for_update().first()
        if not profile:
            raise ProfileNotFoundError(kind, profile_id)

        loans = db.query(Loan).filter(owner_column == profile_id).with_for_update().all()
        if any(loan.status == LoanStatus.ACTIVE for loan in loans):
            raise ConflictError(
                f"Cannot delete {kind} with active loans",
                {f"{kind}_id": str(profile_id)}
            )

        payments_removed = sum(remove_loan(db, loan) for loan in loans)
        db.flush()
        db.expire(profile, ["loans"])
        snapshot = {"name": profile.name, "loans_removed": len(loans), "payments_removed": payments_removed}
        db.delete(profile)

    logger.info("Deleted %s profile %s (%d loan(s))", kind, profile_id, snapshot["loans_removed"])
    write_audit_log(deleted_by, "admin", "USER_DELETE", kind.capitalize(), profile_id, snapshot)


def delete_lender(db: Session, lender_id: UUID, deleted_by: UUID = None) -> None:
    _delete_profile(db, "lender", lender_id, deleted_by)


def delete_borrower(db: Session, borrower_id: UUID, deleted_by: UUID = None) -> None:
    _delete_profile(db, "borrower", borrower_id, deleted_by)


def get_lender_dashboard(db: Session, lender_id: UUID) -> dict:
    """Lender aggregates, active loans and the amount still recoverable."""
    lender = get_lender(db, lender_id)
    active_loans = db.query(Loan).filter(
        Loan.lender_id == lender_id,
        Loan.status == LoanStatus.ACTIVE
    ).order_by(Loan.next_due_date.asc()).all()
    recoverable = db.query(func.sum(Loan.remaining_balance)).filter(
        Loan.lender_id == lender_id,
        Loan.status == LoanStatus.ACTIVE
    ).scalar()

    return {
        "lender": lender,
        "total_amount_lent": lender.total_amount_lent,
        "active_loans_count": lender.active_loans_count,
        "total_earnings": lender.total_earnings,
        "recoverable_amount": recoverable or ZERO,
        "active_loans": active_loans,
    }


def get_profile(db: Session, kind: str, profile_id: UUID):
    model = PROFILE_MODELS[kind]
    profile = db.query(model).filter(model.id == profile_id).first()
    if not profile:
        raise ProfileNotFoundError(kind, profile_id)
    return profile


def list_profiles(
    db: Session,
    kind: str,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10
) -> Tuple[List, int]:
    """Lender or borrower profiles, newest first, optionally matched on name or phone."""
    model = PROFILE_MODELS[kind]
    query = db.query(model)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(model.name.ilike(pattern), model.phone_number.ilike(pattern)))

    total = query.count()
    profiles = query.order_by(model.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return profiles, total


def get_profile_details(db: Session, kind: str, profile_id: UUID) -> dict:
    """A profile and every loan it takes part in, newest loan first."""
    profile = get_profile(db, kind, profile_id)
    owner_column = Loan.lender_id if kind == "lender" else Loan.borrower_id
    loans = db.query(Loan).filter(owner_column == profile_id).order_by(Loan.created_at.desc()).all()
    return {"profile": profile, "loans": loans}


def get_lender_payment_info(db: Session, borrower_id: UUID) -> dict:
    """Where a borrower should pay: the lender's UPI details for the active loan."""
    get_borrower(db, borrower_id)
    loan = db.query(Loan).filter(
        Loan.borrower_id == borrower_id,
        Loan.status == LoanStatus.ACTIVE
    ).first()
    if not loan:
        raise NotFoundError("No active loan found", {"borrower_id": str(borrower_id)})

    return {
        "loan_id": loan.loan_id,
        "lender_name": loan.lender.name,
        "upi_id": loan.lender.upi_id,
        "qr_code_url": loan.lender.upi_qr_code_url,
        "emi_per_day": loan.emi_per_day,
    }

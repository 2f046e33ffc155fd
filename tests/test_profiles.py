from datetime import date, datetime
from decimal import Decimal
import uuid

import pytest

from loanledger.core.exceptions import ConflictError, NotFoundError, ValidationError
from loanledger.models.loan import Loan, Payment
from loanledger.models.profile import BorrowerProfile, LenderProfile
from loanledger.services import loan as loan_service
from loanledger.services import payment as payment_service
from loanledger.services import profile as profile_service


def test_new_profiles_start_with_zero_aggregates(lender, borrower):
    assert lender.total_amount_lent == Decimal("0")
    assert lender.active_loans_count == 0
    assert lender.total_earnings == Decimal("0")
    assert borrower.total_borrowed == Decimal("0")
    assert borrower.credit_score == 500


def test_duplicate_phone_number_conflicts(db, lender, borrower):
    with pytest.raises(ConflictError):
        profile_service.create_lender(db, "Other", lender.phone_number, "other@upi", "https://x/qr.png")
    with pytest.raises(ConflictError):
        profile_service.create_borrower(db, "Other", borrower.phone_number, "Somewhere")


def test_blank_fields_are_rejected(db):
    with pytest.raises(ValidationError):
        profile_service.create_borrower(db, "  ", "9999", "Somewhere")


def test_get_missing_profiles(db):
    with pytest.raises(NotFoundError):
        profile_service.get_lender(db, uuid.uuid4())
    with pytest.raises(NotFoundError):
        profile_service.get_borrower(db, uuid.uuid4())


def test_profile_with_active_loan_cannot_be_deleted(db, loan, lender, borrower):
    with pytest.raises(ConflictError):
        profile_service.delete_borrower(db, borrower.id)
    with pytest.raises(ConflictError):
        profile_service.delete_lender(db, lender.id)
    assert db.query(Loan).count() == 1


def test_delete_borrower_removes_loans_and_reverses_lender(db, loan, lender, borrower):
    payment = payment_service.submit_payment(
        db, borrower.id, Decimal("100"), 1, "https://files.example.com/p.png",
        now=datetime(2024, 1, 1, 9, 0)
    )
    payment_service.approve_payment(db, payment.id, uuid.uuid4())
    loan_service.update_loan_status(db, loan.loan_id, "closed")

    profile_service.delete_borrower(db, borrower.id)

    assert db.query(BorrowerProfile).count() == 0
    assert db.query(Loan).count() == 0
    assert db.query(Payment).count() == 0
    db.refresh(lender)
    assert lender.total_amount_lent == Decimal("0")
    assert lender.active_loans_count == 0
    assert lender.total_earnings == Decimal("0")


def test_delete_lender_reverses_borrower_totals(db, loan, lender, borrower):
    loan_service.update_loan_status(db, loan.loan_id, "defaulted")

    profile_service.delete_lender(db, lender.id)

    assert db.query(LenderProfile).count() == 0
    db.refresh(borrower)
    assert borrower.total_borrowed == Decimal("0")


def test_lender_dashboard(db, loan, lender, borrower, make_borrower):
    other = loan_service.create_loan(
        db, make_borrower().id, lender.id, Decimal("1000"), 10, Decimal("100"),
        date(2024, 1, 5), today=date(2024, 1, 5)
    )
    payment = payment_service.submit_payment(
        db, borrower.id, Decimal("500"), 5, "https://files.example.com/p.png"
    )
    payment_service.approve_payment(db, payment.id, uuid.uuid4())
    loan_service.update_loan_status(db, other.loan_id, "closed")

    dashboard = profile_service.get_lender_dashboard(db, lender.id)
    assert dashboard["total_amount_lent"] == Decimal("4000")
    assert dashboard["active_loans_count"] == 1
    assert dashboard["total_earnings"] == Decimal("500")
    assert dashboard["recoverable_amount"] == Decimal("2500")
    assert [l.loan_id for l in dashboard["active_loans"]] == [loan.loan_id]


def test_profile_audit_records(db, lender, audit_dir):
    profile_service.delete_lender(db, lender.id, deleted_by=uuid.uuid4())

    records = "".join(path.read_text() for path in audit_dir.glob("audit_*.log"))
    assert "USER_CREATE | Lender:" in records
    assert "USER_DELETE | Lender:" in records


def test_list_profiles_searches_and_paginates(db, lender, borrower, make_borrower):
    make_borrower(name="Meena Kumar")
    make_borrower(name="Suresh Kumar")

    borrowers, total = profile_service.list_profiles(db, "borrower")
    assert total == 3

    kumars, total = profile_service.list_profiles(db, "borrower", search="kumar")
    assert total == 2
    assert {b.name for b in kumars} == {"Meena Kumar", "Suresh Kumar"}

    by_phone, total = profile_service.list_profiles(db, "borrower", search="9000000002")
    assert [b.id for b in by_phone] == [borrower.id]

    page, total = profile_service.list_profiles(db, "borrower", page=2, limit=2)
    assert total == 3
    assert len(page) == 1

    lenders, total = profile_service.list_profiles(db, "lender")
    assert [l.id for l in lenders] == [lender.id]


def test_profile_details_include_loans(db, loan, lender, borrower):
    details = profile_service.get_profile_details(db, "borrower", borrower.id)
    assert details["profile"].id == borrower.id
    assert [l.loan_id for l in details["loans"]] == [loan.loan_id]

    details = profile_service.get_profile_details(db, "lender", lender.id)
    assert [l.loan_id for l in details["loans"]] == [loan.loan_id]

    with pytest.raises(NotFoundError):
        profile_service.get_profile_details(db, "lender", uuid.uuid4())


def test_lender_payment_info_for_active_loan(db, loan, lender, borrower):
    info = profile_service.get_lender_payment_info(db, borrower.id)
    assert info == {
        "loan_id": loan.loan_id,
        "lender_name": "Asha Lender",
        "upi_id": "asha@upi",
        "qr_code_url": "https://files.example.com/qr/asha.png",
        "emi_per_day": Decimal("100.00"),
    }

    loan_service.update_loan_status(db, loan.loan_id, "closed")
    with pytest.raises(NotFoundError) as excinfo:
        profile_service.get_lender_payment_info(db, borrower.id)
    assert excinfo.value.message == "No active loan found"

    with pytest.raises(NotFoundError):
        profile_service.get_lender_payment_info(db, uuid.uuid4())

from datetime import date, timedelta
from decimal import Decimal

from loanledger.core.config import settings
from loanledger.models.loan import LoanStatus
from loanledger.services import loan as loan_service

TODAY = date(2024, 3, 10)


def issue(db, lender, borrower, start_date):
    return loan_service.create_loan(
        db, borrower.id, lender.id, Decimal("3000"), 30, Decimal("100"), start_date, today=start_date
    )


def test_loan_35_days_overdue_is_defaulted(db, lender, borrower):
    loan = issue(db, lender, borrower, TODAY - timedelta(days=35))

    result = loan_service.run_overdue_sweep(db, today=TODAY)

    db.refresh(loan)
    db.refresh(lender)
    assert loan.days_overdue == 35
    assert loan.status == LoanStatus.DEFAULTED
    assert lender.active_loans_count == 0
    assert result["examined"] == 1
    assert [item["loan_id"] for item in result["defaulted"]] == [loan.loan_id]


def test_threshold_is_exclusive(db, lender, borrower):
    loan = issue(db, lender, borrower, TODAY - timedelta(days=settings.DEFAULT_AFTER_DAYS_OVERDUE))

    loan_service.run_overdue_sweep(db, today=TODAY)

    db.refresh(loan)
    assert loan.days_overdue == 30
    assert loan.status == LoanStatus.ACTIVE


def test_loans_not_yet_due_are_skipped(db, lender, borrower, make_borrower):
    due_today = issue(db, lender, borrower, TODAY)
    late = issue(db, lender, make_borrower(), TODAY - timedelta(days=3))

    examined = loan_service.sweep_overdue_loans(db, today=TODAY)

    db.refresh(due_today)
    db.refresh(late)
    assert examined == 1
    assert due_today.days_overdue == 0
    assert late.days_overdue == 3
    assert late.status == LoanStatus.ACTIVE


def test_closed_and_defaulted_loans_are_ignored(db, lender, borrower, make_borrower):
    closed = issue(db, lender, borrower, TODAY - timedelta(days=60))
    loan_service.update_loan_status(db, closed.loan_id, "closed")

    assert loan_service.sweep_overdue_loans(db, today=TODAY) == 0
    db.refresh(lender)
    assert lender.active_loans_count == 0


def test_sweep_writes_maintenance_audit(db, lender, borrower, audit_dir):
    issue(db, lender, borrower, TODAY - timedelta(days=40))
    loan_service.run_overdue_sweep(db, today=TODAY)

    records = "".join(path.read_text() for path in audit_dir.glob("audit_*.log"))
    assert "SYSTEM_MAINTENANCE" in records
    assert "loans_defaulted=1" in records
    assert "| system |" in records

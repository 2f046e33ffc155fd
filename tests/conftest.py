import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENABLE_SCHEDULER", "false")

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from loanledger.core.config import settings
from loanledger.db.base import make_engine
from loanledger.models import Base
from loanledger.services import loan as loan_service
from loanledger.services import profile as profile_service


@pytest.fixture(autouse=True)
def audit_dir(tmp_path, monkeypatch):
    logs = tmp_path / "logs"
    monkeypatch.setattr(settings, "AUDIT_LOG_DIR", str(logs))
    return logs


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def lender(db):
    return profile_service.create_lender(
        db,
        name="Asha Lender",
        phone_number="9000000001",
        upi_id="asha@upi",
        upi_qr_code_url="https://files.example.com/qr/asha.png",
    )


@pytest.fixture
def borrower(db):
    return profile_service.create_borrower(
        db,
        name="Ravi Borrower",
        phone_number="9000000002",
        address="12 Market Road",
    )


@pytest.fixture
def make_borrower(db):
    counter = iter(range(100, 200))

    def _make(name="Extra Borrower"):
        return profile_service.create_borrower(
            db, name=name, phone_number=f"9100000{next(counter)}", address="1 Side Street"
        )
    return _make


@pytest.fixture
def loan(db, lender, borrower):
    """3000 over 30 days at 100/day starting 2024-01-01."""
    return loan_service.create_loan(
        db,
        borrower_id=borrower.id,
        lender_id=lender.id,
        principal_amount=Decimal("3000.00"),
        total_days=30,
        emi_per_day=Decimal("100.00"),
        start_date=date(2024, 1, 1),
        today=date(2024, 1, 1),
    )

from sqlalchemy import Column, String, Integer, DateTime, Numeric, Text, Uuid, text
from sqlalchemy.orm import relationship
import uuid
from loanledger.db.base import Base
from decimal import Decimal


class LenderProfile(Base):
    """Lender profile with running aggregates over its loans and payments."""
    __tablename__ = "lender_profile"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    phone_number = Column(String(20), nullable=False, unique=True, index=True)
    upi_id = Column(String(100), nullable=False)
    upi_qr_code_url = Column(String(500), nullable=False)
    # Aggregates, only ever changed inside ledger transactions
    total_amount_lent = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    active_loans_count = Column(Integer, nullable=False, default=0)
    total_earnings = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    created_by = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))

    # Relationships
    loans = relationship("Loan", back_populates="lender")


class BorrowerProfile(Base):
    """Borrower profile."""
    __tablename__ = "borrower_profile"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    phone_number = Column(String(20), nullable=False, unique=True, index=True)
    address = Column(Text, nullable=False)
    credit_score = Column(Integer, nullable=False, default=500)
    total_borrowed = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    created_by = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))

    # Relationships
    loans = relationship("Loan", back_populates="borrower")

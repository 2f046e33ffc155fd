from sqlalchemy import Column, String, Integer, ForeignKey, DateTime, Date, Numeric, Enum as SQLEnum, Text, Index, Uuid, text, func
from sqlalchemy.orm import relationship
import uuid
from loanledger.db.base import Base
import enum
from decimal import Decimal


class LoanStatus(str, enum.Enum):
    """Loan status."""
    ACTIVE = "active"
    CLOSED = "closed"
    DEFAULTED = "defaulted"


class PaymentStatus(str, enum.Enum):
    """Payment status. APPROVED and REJECTED are terminal."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Loan(Base):
    """Daily-EMI loan issued from a lender to a borrower."""
    __tablename__ = "loan"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(String(32), nullable=False, unique=True, index=True)  # LN-YYYYMMDD-NNN
    borrower_id = Column(Uuid(as_uuid=True), ForeignKey("borrower_profile.id"), nullable=False, index=True)
    lender_id = Column(Uuid(as_uuid=True), ForeignKey("lender_profile.id"), nullable=False, index=True)
    principal_amount = Column(Numeric(12, 2), nullable=False)
    total_days = Column(Integer, nullable=False)
    emi_per_day = Column(Numeric(12, 2), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(SQLEnum(LoanStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=LoanStatus.ACTIVE, nullable=False)
    total_amount_repaid = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    remaining_balance = Column(Numeric(12, 2), nullable=False)
    next_due_date = Column(Date, nullable=False)
    days_overdue = Column(Integer, nullable=False, default=0)
    admin_notes = Column(Text, nullable=False, default="")
    created_by = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, nullable=True, onupdate=func.now())

    # Relationships
    borrower = relationship("BorrowerProfile", back_populates="loans")
    lender = relationship("LenderProfile", back_populates="loans")
    payments = relationship("Payment", back_populates="loan", cascade="all, delete-orphan", order_by="desc(Payment.payment_date)")

    __table_args__ = (
        # A borrower may hold at most one active loan
        Index(
            "uq_loan_borrower_active",
            "borrower_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("idx_loan_lender_status", "lender_id", "status"),
        Index("idx_loan_status_next_due", "status", "next_due_date"),
    )


class Payment(Base):
    """Borrower repayment covering one or more daily installments."""
    __tablename__ = "payment"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(Uuid(as_uuid=True), ForeignKey("loan.id"), nullable=False, index=True)
    borrower_id = Column(Uuid(as_uuid=True), ForeignKey("borrower_profile.id"), nullable=False, index=True)
    lender_id = Column(Uuid(as_uuid=True), ForeignKey("lender_profile.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    for_days = Column(Integer, nullable=False)
    screenshot_url = Column(String(500), nullable=False)
    utr_number = Column(String(100), nullable=True)
    status = Column(SQLEnum(PaymentStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=PaymentStatus.PENDING, nullable=False)
    payment_date = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    admin_approval_date = Column(DateTime, nullable=True)
    approved_by = Column(Uuid(as_uuid=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Relationships
    loan = relationship("Loan", back_populates="payments")

    __table_args__ = (
        Index("idx_payment_loan_status", "loan_id", "status"),
    )


class LoanIdSequence(Base):
    """Per-day counter backing LN-YYYYMMDD-NNN allocation."""
    __tablename__ = "loan_id_sequence"

    day = Column(Date, primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID
from loanledger.models.loan import LoanStatus
from loanledger.schemas.payment import PaymentResponse


class LoanCreate(BaseModel):
    """Schema for issuing a loan."""
    borrower_id: UUID = Field(..., description="Borrower profile ID")
    lender_id: UUID = Field(..., description="Lender profile ID")
    principal_amount: Decimal = Field(..., gt=0, decimal_places=2, description="Principal lent")
    total_days: int = Field(..., gt=0, description="Loan term in days")
    emi_per_day: Decimal = Field(..., gt=0, decimal_places=2, description="Daily installment")
    start_date: date = Field(..., description="First due date")


class LoanStatusUpdate(BaseModel):
    status: str = Field(..., description="Target status: active, closed, defaulted")
    notes: Optional[str] = Field(None, description="Replaces the loan's admin notes")


class LoanResponse(BaseModel):
    loan_id: str
    borrower_id: UUID
    lender_id: UUID
    principal_amount: Decimal
    total_days: int
    emi_per_day: Decimal
    start_date: date
    end_date: date
    status: LoanStatus
    total_amount_repaid: Decimal
    remaining_balance: Decimal
    next_due_date: date
    days_overdue: int
    admin_notes: str
    created_at: datetime

    class Config:
        from_attributes = True


class LoanListResponse(BaseModel):
    loans: List[LoanResponse]
    total: int
    page: int
    limit: int


class PaymentSummary(BaseModel):
    total_paid: Decimal
    remaining_balance: Decimal
    total_payments: int
    approved_payments: int
    pending_payments: int
    days_overdue: int
    remaining_days: int


class LoanDetailResponse(BaseModel):
    loan: LoanResponse
    payment_summary: PaymentSummary
    payment_history: List[PaymentResponse]


class LoanStatsResponse(BaseModel):
    total_loans: int
    active_loans: int
    closed_loans: int
    defaulted_loans: int
    total_amount_lent: Decimal
    total_amount_repaid: Decimal
    outstanding_balance: Decimal
    recent_loans: int

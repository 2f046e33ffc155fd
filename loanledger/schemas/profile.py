from pydantic import BaseModel, Field
from typing import List
from datetime import datetime
from decimal import Decimal
from uuid import UUID
from loanledger.schemas.loan import LoanResponse


class LenderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone_number: str = Field(..., min_length=1, max_length=20)
    upi_id: str = Field(..., min_length=1, max_length=100)
    upi_qr_code_url: str = Field(..., min_length=1, description="Uploaded UPI QR code URL")


class BorrowerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone_number: str = Field(..., min_length=1, max_length=20)
    address: str = Field(..., min_length=1)


class LenderResponse(BaseModel):
    id: UUID
    name: str
    phone_number: str
    upi_id: str
    upi_qr_code_url: str
    total_amount_lent: Decimal
    active_loans_count: int
    total_earnings: Decimal
    created_at: datetime

    class Config:
        from_attributes = True


class BorrowerResponse(BaseModel):
    id: UUID
    name: str
    phone_number: str
    address: str
    credit_score: int
    total_borrowed: Decimal
    created_at: datetime

    class Config:
        from_attributes = True


class LenderDashboardResponse(BaseModel):
    lender: LenderResponse
    total_amount_lent: Decimal
    active_loans_count: int
    total_earnings: Decimal
    recoverable_amount: Decimal
    active_loans: List[LoanResponse]


class LenderListResponse(BaseModel):
    lenders: List[LenderResponse]
    total: int
    page: int
    limit: int


class BorrowerListResponse(BaseModel):
    borrowers: List[BorrowerResponse]
    total: int
    page: int
    limit: int


class LenderDetailResponse(BaseModel):
    profile: LenderResponse
    loans: List[LoanResponse]


class BorrowerDetailResponse(BaseModel):
    profile: BorrowerResponse
    loans: List[LoanResponse]


class LenderPaymentInfoResponse(BaseModel):
    """UPI details a borrower pays their daily installment to."""
    loan_id: str
    lender_name: str
    upi_id: str
    qr_code_url: str
    emi_per_day: Decimal

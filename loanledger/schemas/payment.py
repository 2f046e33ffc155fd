from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from uuid import UUID
from loanledger.models.loan import PaymentStatus


class PaymentCreate(BaseModel):
    """Schema for a borrower submitting a payment."""
    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Must equal emi_per_day x for_days")
    for_days: int = Field(..., gt=0, description="Number of daily installments covered")
    screenshot_url: str = Field(..., min_length=1, description="Uploaded payment screenshot URL")
    utr_number: Optional[str] = Field(None, max_length=100, description="Bank transaction reference")


class PaymentReject(BaseModel):
    rejection_reason: str = Field(..., min_length=1)


class PaymentResponse(BaseModel):
    id: UUID
    borrower_id: UUID
    lender_id: UUID
    amount: Decimal
    for_days: int
    screenshot_url: str
    utr_number: Optional[str] = None
    status: PaymentStatus
    payment_date: datetime
    admin_approval_date: Optional[datetime] = None
    approved_by: Optional[UUID] = None
    rejection_reason: Optional[str] = None

    class Config:
        from_attributes = True


class PaymentListResponse(BaseModel):
    payments: List[PaymentResponse]
    total: int
    page: int
    limit: int

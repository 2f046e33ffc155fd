from loanledger.db.base import Base

# Import all models so Alembic can detect them
from loanledger.models.profile import LenderProfile, BorrowerProfile
from loanledger.models.loan import (
    Loan,
    LoanStatus,
    Payment,
    PaymentStatus,
    LoanIdSequence,
)

__all__ = [
    "Base",
    "LenderProfile",
    "BorrowerProfile",
    "Loan",
    "LoanStatus",
    "Payment",
    "PaymentStatus",
    "LoanIdSequence",
]

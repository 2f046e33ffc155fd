"""Typed domain errors raised by the ledger services.

Every error derives from ``LedgerError`` (itself a ``ValueError``) so callers
that only care about "the request was refused" can keep catching
``ValueError``. The HTTP layer maps each subclass to a status code.
"""


class LedgerError(ValueError):
    """Base exception for all ledger errors."""

    status_code = 400

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        return self.message


class NotFoundError(LedgerError):
    """Referenced loan, payment, borrower or lender does not exist."""

    status_code = 404


class InvalidStateError(LedgerError):
    """The requested transition is not allowed from the current state."""

    status_code = 409


class ConflictError(LedgerError):
    """A precondition read from shared state no longer holds."""

    status_code = 409


class ValidationError(LedgerError):
    """Caller-supplied values break a domain rule."""

    status_code = 400


class TransientError(LedgerError):
    """The transaction could not commit; nothing was written."""

    status_code = 503


class LoanNotFoundError(NotFoundError):
    def __init__(self, loan_id: str = None):
        message = f"Loan '{loan_id}' not found" if loan_id else "Loan not found"
        super().__init__(message, {"loan_id": loan_id} if loan_id else None)


class PaymentNotFoundError(NotFoundError):
    def __init__(self, payment_id=None):
        super().__init__("Payment not found", {"payment_id": str(payment_id)} if payment_id else None)


class ProfileNotFoundError(NotFoundError):
    def __init__(self, kind: str, profile_id=None):
        super().__init__(
            f"{kind.capitalize()} not found",
            {f"{kind}_id": str(profile_id)} if profile_id else None,
        )

"""Loan identifier allocation.

Identifiers look like ``LN-20240501-007``: a fixed prefix, the calendar day
and a per-day sequence. Sequences come from the ``loan_id_sequence`` counter
row for the day, incremented in place so two transactions allocating on the
same day serialize on that row. The counter must be advanced inside the same
transaction as the loan insert it serves; if that transaction rolls back the
number is simply not used (sequences are monotonic, not gap-free).
"""
import logging
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from loanledger.core.config import settings
from loanledger.core.exceptions import TransientError
from loanledger.models.loan import Loan, LoanIdSequence

logger = logging.getLogger(__name__)

MAX_ALLOCATION_ATTEMPTS = 3


def format_loan_id(day: date, sequence: int, prefix: str = None) -> str:
    """Render a loan identifier, zero-padding the sequence to three digits."""
    prefix = prefix or settings.LOAN_ID_PREFIX
    return f"{prefix}-{day.strftime('%Y%m%d')}-{sequence:03d}"


def parse_loan_sequence(loan_id: str) -> int:
    """Return the trailing sequence number of a loan identifier."""
    try:
        return int(loan_id.rsplit("-", 1)[1])
    except (IndexError, ValueError):
        raise ValueError(f"Malformed loan identifier: {loan_id!r}")


def latest_sequence_for_day(db: Session, day: date) -> int:
    """Highest sequence already used by a loan created on ``day`` (0 if none)."""
    day_prefix = f"{settings.LOAN_ID_PREFIX}-{day.strftime('%Y%m%d')}-"
    # Longest first so a four-digit sequence sorts above 999
    last = db.query(Loan.loan_id).filter(
        Loan.loan_id.like(f"{day_prefix}%")
    ).order_by(func.length(Loan.loan_id).desc(), Loan.loan_id.desc()).first()
    return parse_loan_sequence(last[0]) if last else 0


def _bump_counter(db: Session, day: date) -> Optional[int]:
    """Increment the day's counter in place; None if the row does not exist yet."""
    updated = db.query(LoanIdSequence).filter(
        LoanIdSequence.day == day
    ).update(
        {LoanIdSequence.last_value: LoanIdSequence.last_value + 1},
        synchronize_session=False,
    )
    if not updated:
        return None
    return db.query(LoanIdSequence.last_value).filter(
        LoanIdSequence.day == day
    ).scalar()


def _seed_counter(db: Session, day: date, seed: int) -> None:
    """Create the day's counter row; IntegrityError if another writer got there first."""
    with db.begin_nested():
        db.add(LoanIdSequence(day=day, last_value=seed))
        db.flush()


def allocate_loan_id(db: Session, day: Optional[date] = None) -> str:
    """Allocate the next loan identifier for ``day`` within the caller's transaction.

    The counter row is bumped with ``last_value = last_value + 1``, which holds
    the row lock until the caller commits. The first allocation of a day seeds
    the row from existing loans; if another transaction inserts the row first
    the savepoint is discarded and the increment retried.
    """
    day = day or date.today()

    for attempt in range(1, MAX_ALLOCATION_ATTEMPTS + 1):
        value = _bump_counter(db, day)
        if value is not None:
            return format_loan_id(day, value)

        seed = latest_sequence_for_day(db, day) + 1
        try:
            _seed_counter(db, day, seed)
        except IntegrityError:
            logger.info("Loan id counter for %s created concurrently, retrying (attempt %d)", day, attempt)
            continue
        return format_loan_id(day, seed)

    raise TransientError("Could not allocate a loan identifier, please retry")


def resync_loan_id_counter(db: Session, day: date) -> None:
    """Move a lagging counter up to the highest sequence already used on ``day``."""
    latest = latest_sequence_for_day(db, day)
    db.query(LoanIdSequence).filter(
        LoanIdSequence.day == day,
        LoanIdSequence.last_value < latest
    ).update({LoanIdSequence.last_value: latest}, synchronize_session=False)

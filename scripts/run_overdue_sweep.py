"""
Run the overdue loan sweep once.
Usage: python scripts/run_overdue_sweep.py [--date YYYY-MM-DD]
"""
import sys
from datetime import date
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from loanledger.db.base import SessionLocal
from loanledger.services.loan import run_overdue_sweep


def run(as_of: date = None):
    """Sweep active loans past due as of ``as_of`` (today by default)."""
    db = SessionLocal()
    try:
        result = run_overdue_sweep(db, today=as_of)
        print(f"Examined {result['examined']} overdue loan(s)")
        for item in result["defaulted"]:
            print(f"   Defaulted {item['loan_id']} ({item['days_overdue']} days overdue, balance {item['remaining_balance']})")
    finally:
        db.close()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Update days overdue and default long-overdue loans")
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="Sweep as of this date (YYYY-MM-DD)")

    args = parser.parse_args()

    run(as_of=args.date)

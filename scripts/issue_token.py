"""
Mint a bearer token for an admin, lender or borrower.
Usage: python scripts/issue_token.py --role lender --id <profile uuid>
"""
import sys
import uuid
from datetime import timedelta
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from loanledger.core.dependencies import ROLES
from loanledger.core.security import create_actor_token


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Issue a bearer token for an actor")
    parser.add_argument("--role", required=True, choices=ROLES, help="Actor role")
    parser.add_argument("--id", type=uuid.UUID, default=None, help="Profile id (admins get a fresh id if omitted)")
    parser.add_argument("--minutes", type=int, default=None, help="Token lifetime in minutes")

    args = parser.parse_args()

    if args.id is None and args.role != "admin":
        parser.error("--id is required for lender and borrower tokens")

    actor_id = args.id or uuid.uuid4()
    expires = timedelta(minutes=args.minutes) if args.minutes else None
    print(create_actor_token(actor_id, args.role, expires))

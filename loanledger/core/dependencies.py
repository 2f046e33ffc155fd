from dataclasses import dataclass
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from typing import Optional
from loanledger.core.security import decode_access_token
import uuid

# Tokens are minted by scripts/issue_token.py. A missing header is a 401.
bearer_scheme = HTTPBearer(auto_error=False)

ROLES = ("admin", "lender", "borrower")


@dataclass(frozen=True)
class Actor:
    """The caller resolved from a bearer token.

    For lenders and borrowers ``id`` is their profile id; for admins it is
    the administrator's own id, recorded as created_by/approved_by.
    """
    id: uuid.UUID
    role: str


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Actor:
    """Resolve the acting profile from a JWT token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    actor_id_str: str = payload.get("sub")
    role: str = payload.get("role")
    if actor_id_str is None or role not in ROLES:
        raise credentials_exception

    try:
        actor_id = uuid.UUID(actor_id_str)
    except (ValueError, TypeError):
        raise credentials_exception

    return Actor(id=actor_id, role=role)


def require_role(role_name: str):
    """Dependency factory for requiring a specific role."""
    async def role_checker(
        current_actor: Actor = Depends(get_current_actor)
    ) -> Actor:
        if current_actor.role != role_name:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {role_name}"
            )
        return current_actor
    return role_checker


# Role-specific dependencies
require_admin = require_role("admin")
require_lender = require_role("lender")
require_borrower = require_role("borrower")

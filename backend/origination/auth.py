"""
Loan Origination API - Authentication Utilities
JWT verification, capability checks and auth dependencies
"""
import os
from datetime import datetime
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .database import get_db
from .errors import PermissionDeniedError
from .models.db_models import UserDB

# Configuration
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "origination-secret-key-change-in-production")
ALGORITHM = "HS256"

# Capabilities
AUTHORIZE = "AUTHORIZE"

# Bearer token security
security = HTTPBearer()


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except JWTError:
        return None


def has_capability(user: UserDB, capability: str) -> bool:
    """Admins hold every capability; others need it listed in permissions."""
    if user is None:
        return False
    if user.role == "admin":
        return True
    return capability in (user.permissions or [])


def require_capability(user: UserDB, capability: str, action: str = "perform this action"):
    """Raise PermissionDeniedError unless the user holds the capability."""
    if not has_capability(user, capability):
        raise PermissionDeniedError(
            f"You don't have the {capability} permission required to {action}"
        )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> UserDB:
    """
    Dependency to get the current authenticated user.
    Validates JWT token and fetches user from database.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token = credentials.credentials
    payload = decode_token(token)

    if payload is None:
        raise credentials_exception

    user_id: str = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    # Check token expiration
    exp = payload.get("exp")
    if exp is None or datetime.utcfromtimestamp(exp) < datetime.utcnow():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Fetch user from database
    user = db.query(UserDB).filter(UserDB.id == user_id).first()
    if user is None:
        raise credentials_exception

    return user


async def require_admin(current_user: UserDB = Depends(get_current_user)) -> UserDB:
    """
    Dependency to require admin role.
    Use this on administrative routes (removals, CBS configuration).
    """
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user

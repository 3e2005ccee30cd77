"""
Authentication utilities for bearer JWT verification.

Tokens are issued by the external identity service and signed with the
shared JWT_SECRET; this module only verifies them.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
import jwt

from app.core import config
from app.core.errors import Unauthenticated


def verify_jwt_token(token: str) -> dict:
    """
    Verify a bearer JWT and return its payload.
    
    Args:
        token: JWT from the Authorization header or auth cookie
        
    Returns:
        Decoded payload containing at least the user id
        
    Raises:
        Unauthenticated: If the token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"require": ["id"]},
        )
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token has expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid or expired token")


def create_access_token(user_id: str, email: str, expires_in: Optional[timedelta] = None) -> str:
    """
    Sign an access token in the format verify_jwt_token accepts.
    
    Used by operational scripts and tests; interactive login lives in the
    identity service.
    """
    payload: dict[str, Any] = {
        "id": user_id,
        "email": email,
        "exp": datetime.now(timezone.utc) + (expires_in or timedelta(hours=1)),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)

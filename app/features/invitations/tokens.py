"""
Signed invitation tokens.

Tokens are JWTs signed with INVITE_SECRET (never the access-token secret).
Expiry is enforced against the stored invitation so an expired invitation can
still be found and marked as such.
"""
from datetime import datetime
from typing import Any
import jwt

from app.core import config
from app.core.database.base import generate_ulid
from app.core.errors import ValidationError


def create_invitation_token(email: str, invited_by: str, team_id: str, expires_at: datetime) -> str:
    payload: dict[str, Any] = {
        "email": email,
        "invitedBy": invited_by,
        "teamId": team_id,
        "jti": generate_ulid(),
        "exp": expires_at,
    }
    return jwt.encode(payload, config.INVITE_SECRET, algorithm="HS256")


def verify_invitation_token(token: str) -> dict:
    """
    Check the signature of an invitation token and return its payload.

    Raises:
        ValidationError: if the token is malformed or not signed by us
    """
    try:
        return jwt.decode(
            token,
            config.INVITE_SECRET,
            algorithms=["HS256"],
            options={"verify_exp": False, "require": ["email", "teamId"]},
        )
    except jwt.InvalidTokenError:
        raise ValidationError("Invalid invitation token")

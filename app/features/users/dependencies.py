"""
FastAPI dependencies for authentication.

Resolves the bearer credential into an immutable Actor once per request.
"""
from typing import Annotated, Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.core.errors import Forbidden, Unauthenticated
from app.features.users.actor import Actor
from app.features.users.auth import verify_jwt_token
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)
security = HTTPBearer(auto_error=False)


def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> str:
    if credentials and credentials.credentials:
        return credentials.credentials
    token = request.cookies.get(config.AUTH_COOKIE_NAME)
    if token:
        return token
    raise Unauthenticated("Not authorized, token missing")


async def get_current_user(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """
    Get the current authenticated user row.
    
    This dependency:
    1. Extracts the JWT from the Authorization header (or auth cookie)
    2. Verifies the signature and expiry
    3. Loads the user with its team memberships
    """
    token = _extract_token(request, credentials)
    payload = verify_jwt_token(token)
    
    result = await db.execute(select(User).where(User.id == payload["id"]))
    user = result.scalar_one_or_none()
    
    if user is None:
        raise Unauthenticated("Not authorized, user not found")
    
    if not user.is_active:
        raise Forbidden("User account is deactivated")
    
    return user


async def get_current_actor(
    user: Annotated[User, Depends(get_current_user)]
) -> Actor:
    """
    Snapshot the authenticated user for authorization decisions.
    
    Usage:
        @router.get("/projects")
        async def list_projects(actor: Actor = Depends(get_current_actor)):
            ...
    """
    actor = Actor.from_user(user)
    log.debug(
        "Resolved actor %s (admin=%s, super_admin=%s, teams=%d)",
        actor.id, actor.is_admin, actor.is_super_admin, len(actor.memberships)
    )
    return actor


async def get_current_admin(
    actor: Annotated[Actor, Depends(get_current_actor)]
) -> Actor:
    """Require administrator (or super administrator) privileges."""
    if not actor.is_privileged:
        raise Forbidden("Admin privileges required")
    return actor


async def get_current_super_admin(
    actor: Annotated[Actor, Depends(get_current_actor)]
) -> Actor:
    """Require super administrator privileges."""
    if not actor.is_super_admin:
        raise Forbidden("Only super administrators can perform this action")
    return actor

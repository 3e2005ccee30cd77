"""
Create the first super administrator.

Does nothing when a super administrator already exists. Prints a bearer
token for the account so the console can be used right away.

Usage:
    python -m scripts.create_super_admin [email] [username]
"""
import asyncio
import sys
from datetime import timedelta
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import AsyncSessionLocal, dispose_db, init_db
from app.features.users.auth import create_access_token
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)

DEFAULT_EMAIL = "superadmin@planora.com"
DEFAULT_USERNAME = "Super Administrator"


async def ensure_super_admin(db: AsyncSession, email: str, username: str) -> tuple[User, bool]:
    """
    Return the existing super administrator, or create one.

    Returns:
        (user, created)
    """
    result = await db.execute(select(User).where(User.is_super_admin == True).limit(1))
    existing = result.scalars().first()
    if existing:
        log.info(f"Super admin already exists: {existing.email}")
        return existing, False

    email = email.lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(email=email, username=username)
        db.add(user)

    # Promote in place when the email already belongs to a user
    user.is_admin = True
    user.is_super_admin = True
    user.is_active = True

    await db.commit()
    await db.refresh(user)
    log.info(f"Super admin created: {user.email}")
    return user, True


async def main():
    email = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_EMAIL
    username = sys.argv[2] if len(sys.argv) > 2 else DEFAULT_USERNAME

    await init_db()
    async with AsyncSessionLocal() as db:
        try:
            user, created = await ensure_super_admin(db, email, username)
        except Exception as e:
            log.error(f"Error creating super admin: {e}", exc_info=True)
            await db.rollback()
            raise

    token = create_access_token(user.id, user.email, expires_in=timedelta(days=1))
    log.info("Super admin %s (%s)", "created" if created else "already present", user.email)
    log.info("Bearer token (24h): %s", token)
    await dispose_db()


if __name__ == "__main__":
    asyncio.run(main())

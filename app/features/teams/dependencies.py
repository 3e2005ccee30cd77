"""
Team-related dependency injection functions.
"""
from typing import Annotated, Iterable, Optional
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import NotFound, ValidationError
from app.features.permissions.dependencies import ensure_in_scope
from app.features.permissions.scope import ResourceType
from app.features.teams.models import Team, TeamMembership
from app.features.users.actor import Actor
from app.features.users.dependencies import get_current_actor
from app.features.users.models import User


async def get_team_by_id(
    team_id: str,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Team:
    """
    Get team by ID or raise 404.

    Raises:
        NotFound: if the team does not exist
    """
    result = await db.execute(select(Team).where(Team.id == team_id))
    team = result.scalar_one_or_none()

    if team is None:
        raise NotFound("Team")

    return team


async def get_scoped_team(
    team_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Team:
    """
    Get team and verify it is inside the actor's tenant.

    Raises:
        NotFound: 404 if the team does not exist
        Forbidden: 403 if it exists in another tenant
    """
    team = await get_team_by_id(team_id, db)
    ensure_in_scope(actor, ResourceType.TEAM, team, "Not authorized to access this team")
    return team


async def resolve_teams(db: AsyncSession, team_ids: Iterable[str]) -> list[Team]:
    """
    Load teams in the given order; 400 if any id does not resolve.

    Duplicate ids are collapsed.
    """
    ordered_ids = list(dict.fromkeys(team_ids))
    if not ordered_ids:
        return []
    result = await db.execute(select(Team).where(Team.id.in_(ordered_ids)))
    by_id = {team.id: team for team in result.scalars().all()}
    missing = [team_id for team_id in ordered_ids if team_id not in by_id]
    if missing:
        raise ValidationError(f"Invalid team id(s): {', '.join(missing)}")
    return [by_id[team_id] for team_id in ordered_ids]


async def find_user(
    db: AsyncSession,
    user_id: Optional[str] = None,
    email: Optional[str] = None,
) -> User:
    """Look a user up by id, falling back to email; 404 if neither resolves."""
    if user_id:
        stmt = select(User).where(User.id == user_id)
    else:
        stmt = select(User).where(User.email == (email or "").lower())
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("User")
    return user


async def get_membership(db: AsyncSession, user_id: str, team_id: str) -> Optional[TeamMembership]:
    result = await db.execute(
        select(TeamMembership).where(
            TeamMembership.user_id == user_id,
            TeamMembership.team_id == team_id,
        )
    )
    return result.scalar_one_or_none()


async def get_membership_or_404(db: AsyncSession, user_id: str, team_id: str) -> TeamMembership:
    membership = await get_membership(db, user_id, team_id)
    if membership is None:
        raise NotFound("Membership", "User is not part of this team")
    return membership


async def team_member_ids(db: AsyncSession, team_ids: Iterable[str]) -> set[str]:
    """Ids of users holding a membership in any of the given teams."""
    team_ids = list(team_ids)
    if not team_ids:
        return set()
    result = await db.execute(
        select(TeamMembership.user_id).where(TeamMembership.team_id.in_(team_ids))
    )
    return set(result.scalars().all())

"""
Team API routes.

Team creation is limited to administrators; member mutations additionally
require the team to be owned by the acting administrator.
"""
from typing import Annotated, List
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import Conflict, Forbidden, NotFound, ValidationError
from app.features.permissions.dependencies import (
    Action,
    AuthorizationContext,
    create_audit_log,
    ensure_allowed,
    ensure_team_owner,
)
from app.features.permissions.models import Role
from app.features.permissions.scope import ResourceType, scope_filter
from app.features.projects.models import ProjectMember
from app.features.teams.dependencies import get_membership_or_404, get_scoped_team
from app.features.teams.models import MembershipRole, Team, TeamMembership
from app.features.teams.schemas import (
    TeamCreate,
    TeamMemberResponse,
    TeamMemberUpdate,
    TeamResponse,
)
from app.features.users.actor import Actor
from app.features.users.dependencies import get_current_actor
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


def _member_response(membership: TeamMembership, user: User) -> TeamMemberResponse:
    return TeamMemberResponse(
        user_id=user.id,
        username=user.username,
        email=user.email,
        team_id=membership.team_id,
        team_name=membership.team_name,
        role=membership.role,
        role_id=membership.role_id,
        permissions=list(membership.permissions or []),
        joined_at=membership.joined_at,
    )


async def _resolve_owner(db: AsyncSession, actor: Actor, admin_id: str | None) -> str:
    """Owning administrator of a new team; only super administrators may delegate."""
    if not admin_id or admin_id == actor.id:
        return actor.id
    if not actor.is_super_admin:
        raise Forbidden("Only super administrators can create teams for another administrator")
    result = await db.execute(select(User).where(User.id == admin_id))
    owner = result.scalar_one_or_none()
    if owner is None or not owner.is_admin:
        raise ValidationError("admin_id must reference an administrator")
    return owner.id


@router.post("", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team(
    payload: TeamCreate,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a team and enroll the creator as its team admin."""
    ensure_allowed(actor, Action.CREATE_TEAM)

    existing = await db.execute(select(Team.id).where(Team.name == payload.name))
    if existing.scalar_one_or_none() is not None:
        raise Conflict("A team with this name already exists")

    owner_id = await _resolve_owner(db, actor, payload.admin_id)

    team = Team(name=payload.name, admin_id=owner_id, created_by_id=actor.id)
    db.add(team)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise Conflict("A team with this name already exists")

    db.add(
        TeamMembership(
            user_id=actor.id,
            team_id=team.id,
            team_name=team.name,
            role=MembershipRole.ADMIN.value,
        )
    )
    create_audit_log(
        db, actor, "create", "team",
        resource_id=team.id, team_id=team.id,
        details={"name": team.name, "admin_id": owner_id},
        request=request,
    )
    await db.commit()
    await db.refresh(team)

    log.info("Team %s created by %s for tenant %s", team.id, actor.id, owner_id)
    return team


@router.get("", response_model=List[TeamResponse])
async def list_teams(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List teams inside the actor's tenant."""
    stmt = scope_filter(actor, ResourceType.TEAM).apply(select(Team)).order_by(Team.name)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/{team_id}/members", response_model=List[TeamMemberResponse])
async def list_team_members(
    team: Annotated[Team, Depends(get_scoped_team)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List members of a team."""
    result = await db.execute(
        select(TeamMembership, User)
        .join(User, User.id == TeamMembership.user_id)
        .where(TeamMembership.team_id == team.id)
        .order_by(TeamMembership.joined_at)
    )
    return [_member_response(membership, user) for membership, user in result.all()]


@router.put("/{team_id}/members/{user_id}", response_model=TeamMemberResponse)
async def update_team_member(
    user_id: str,
    payload: TeamMemberUpdate,
    request: Request,
    team: Annotated[Team, Depends(get_scoped_team)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Change a member's legacy role and/or assigned role."""
    ensure_allowed(actor, Action.MANAGE_TEAM_MEMBERS, AuthorizationContext.for_team(team))
    ensure_team_owner(actor, team)

    membership = await get_membership_or_404(db, user_id, team.id)
    changes = {}

    if payload.role_id is not None:
        result = await db.execute(select(Role).where(Role.id == payload.role_id))
        role = result.scalar_one_or_none()
        if role is None:
            raise NotFound("Role")
        if not scope_filter(actor, ResourceType.ROLE).matches(role):
            raise Forbidden("Not authorized to use this role")
        membership.role_id = role.id
        membership.permissions = list(role.permissions)
        membership.role = MembershipRole.MEMBER.value
        changes["role_id"] = role.id

    if payload.role is not None:
        membership.role = payload.role.value
        changes["role"] = payload.role.value

    create_audit_log(
        db, actor, "update_member", "team",
        resource_id=team.id, team_id=team.id,
        details={"user_id": user_id, **changes},
        request=request,
    )
    await db.commit()

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one()
    return _member_response(membership, user)


@router.delete("/{team_id}/members/{user_id}")
async def delete_team_member(
    user_id: str,
    request: Request,
    team: Annotated[Team, Depends(get_scoped_team)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Remove a member from a team and from the team's project staffing."""
    ensure_allowed(actor, Action.MANAGE_TEAM_MEMBERS, AuthorizationContext.for_team(team))
    ensure_team_owner(actor, team)

    membership = await get_membership_or_404(db, user_id, team.id)

    await db.execute(
        delete(ProjectMember).where(
            ProjectMember.user_id == user_id,
            ProjectMember.team_id == team.id,
        )
    )
    await db.delete(membership)
    create_audit_log(
        db, actor, "remove_member", "team",
        resource_id=team.id, team_id=team.id,
        details={"user_id": user_id},
        request=request,
    )
    await db.commit()

    log.info("User %s removed from team %s by %s", user_id, team.id, actor.id)
    return {"message": "Member removed from team"}

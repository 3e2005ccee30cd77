"""
Team invitation routes.

An administrator invites an email address to one of their teams; the
invited user accepts with the signed token, which creates the team
membership and consumes the invitation in the same commit.
"""
from datetime import timedelta
from typing import Annotated
from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.base import as_utc, utcnow
from app.core.database.engine import get_db
from app.core.errors import Conflict, Forbidden, NotFound, ValidationError
from app.core.ratelimit import limiter
from app.features.invitations.models import Invitation, InvitationStatus
from app.features.invitations.schemas import InvitationAccept, InvitationCreate, InvitationResponse
from app.features.invitations.tokens import create_invitation_token, verify_invitation_token
from app.features.notifications.email import dispatch_email, invitation_email
from app.features.permissions.dependencies import (
    Action,
    AuthorizationContext,
    create_audit_log,
    ensure_allowed,
    ensure_team_owner,
)
from app.features.teams.dependencies import get_membership, get_team_by_id
from app.features.teams.models import TeamMembership
from app.features.users.actor import Actor
from app.features.users.dependencies import get_current_actor
from app.features.users.models import User
from app.features.users.schemas import MembershipResponse
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


@router.post("", response_model=InvitationResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(config.INVITE_RATE_LIMIT)
async def send_invitation(
    payload: InvitationCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Invite an email address to a team owned by the actor."""
    team = await get_team_by_id(payload.team_id, db)
    ensure_allowed(actor, Action.MANAGE_TEAM_MEMBERS, AuthorizationContext.for_team(team))
    ensure_team_owner(actor, team)

    result = await db.execute(select(User).where(User.email == payload.email))
    existing_user = result.scalar_one_or_none()
    if existing_user is not None and await get_membership(db, existing_user.id, team.id) is not None:
        raise Conflict("User is already a member of this team")

    expires_at = utcnow() + timedelta(hours=config.INVITE_TTL_HOURS)
    invitation = Invitation(
        email=payload.email,
        invited_by_id=actor.id,
        team_id=team.id,
        role=payload.role.value,
        token=create_invitation_token(payload.email, actor.id, team.id, expires_at),
        expires_at=expires_at,
        status=InvitationStatus.PENDING,
    )
    db.add(invitation)
    await db.commit()
    await db.refresh(invitation)

    dispatch_email(
        background_tasks,
        [invitation.email],
        "Invitation to Join Planora",
        invitation_email(
            f"{config.CLIENT_URL}/invite?token={invitation.token}",
            actor.username or actor.email,
            team.name,
        ),
    )
    log.info("Invitation %s to %s for team %s sent by %s", invitation.id, invitation.email, team.id, actor.id)
    return invitation


@router.post("/accept", response_model=MembershipResponse)
@limiter.limit(config.INVITE_RATE_LIMIT)
async def accept_invitation(
    payload: InvitationAccept,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Join the invited team. The invitation can be used once."""
    verify_invitation_token(payload.token)

    result = await db.execute(select(Invitation).where(Invitation.token == payload.token))
    invitation = result.scalar_one_or_none()
    if invitation is None:
        raise NotFound("Invitation")

    if invitation.status != InvitationStatus.PENDING:
        raise Conflict(f"Invitation is {invitation.status.value}")

    if as_utc(invitation.expires_at) < utcnow():
        invitation.status = InvitationStatus.EXPIRED
        await db.commit()
        raise ValidationError("Invitation has expired")

    if actor.email.lower() != invitation.email.lower():
        raise Forbidden("This invitation was sent to a different email address")

    if await get_membership(db, actor.id, invitation.team_id) is not None:
        raise Conflict("You are already a member of this team")

    team = await get_team_by_id(invitation.team_id, db)
    membership = TeamMembership(
        user_id=actor.id,
        team_id=team.id,
        team_name=team.name,
        role=invitation.role,
    )
    db.add(membership)
    invitation.status = InvitationStatus.ACCEPTED
    invitation.accepted_at = utcnow()
    create_audit_log(
        db, actor, "accept", "invitation",
        resource_id=invitation.id, team_id=team.id,
        details={"role": invitation.role},
        request=request,
    )
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("You are already a member of this team")

    log.info("User %s joined team %s through invitation %s", actor.id, team.id, invitation.id)
    return membership

"""
Project API routes.

Every route resolves the project through the tenant scope before reading or
mutating it: 404 means the id does not exist, 403 means it exists outside
the actor's tenant.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import Forbidden, ValidationError
from app.features.permissions.dependencies import (
    Action,
    AuthorizationContext,
    create_audit_log,
    ensure_allowed,
)
from app.features.permissions.scope import Owned, ResourceType, ownership_of, scope_filter
from app.features.projects.dependencies import get_scoped_project, load_project
from app.features.projects.models import Project, ProjectMember, ProjectStatus
from app.features.projects.schemas import (
    AssignableMember,
    ProjectCreate,
    ProjectListResponse,
    ProjectMemberInput,
    ProjectOwnershipTransfer,
    ProjectResponse,
    ProjectUpdate,
)
from app.features.tasks.models import Task
from app.features.teams.dependencies import resolve_teams
from app.features.teams.models import Team, TeamMembership
from app.features.users.actor import Actor
from app.features.users.dependencies import get_current_actor
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def _resolve_owner(
    db: AsyncSession,
    actor: Actor,
    admin_id: Optional[str],
    teams: list[Team],
) -> Optional[str]:
    """
    Owning administrator of a new project.

    Administrators own what they create; super administrators may delegate;
    a member's project belongs to the tenant of its first team.
    """
    if admin_id and admin_id != actor.id:
        if not actor.is_super_admin:
            raise Forbidden("Only super administrators can create projects for another administrator")
        result = await db.execute(select(User).where(User.id == admin_id))
        owner = result.scalar_one_or_none()
        if owner is None or not owner.is_admin:
            raise ValidationError("admin_id must reference an administrator")
        return owner.id
    if actor.is_admin:
        return actor.id
    first_team = teams[0]
    return first_team.admin_id or first_team.created_by_id


def _ensure_single_tenant(actor: Actor, owner_id: Optional[str], teams: list[Team]) -> None:
    """Owned teams of a project must all belong to the project's tenant."""
    if actor.is_super_admin:
        return
    tenants = {o.admin_id for o in map(ownership_of, teams) if isinstance(o, Owned)}
    if owner_id:
        tenants.add(owner_id)
    if len(tenants) > 1:
        raise ValidationError("All project teams must belong to the same administrator")


async def _build_members(
    db: AsyncSession,
    members: List[ProjectMemberInput],
    teams: list[Team],
) -> list[ProjectMember]:
    """Staff entries must reference a project team the user belongs to."""
    team_ids = {team.id for team in teams}
    built = []
    for member in members:
        if member.team_id not in team_ids:
            raise ValidationError(f"Team {member.team_id} is not assigned to this project")
        result = await db.execute(
            select(TeamMembership.id).where(
                TeamMembership.user_id == member.user_id,
                TeamMembership.team_id == member.team_id,
            )
        )
        if result.first() is None:
            raise ValidationError(f"User {member.user_id} is not a member of team {member.team_id}")
        built.append(ProjectMember(user_id=member.user_id, team_id=member.team_id, role=member.role.value))
    return built


async def _team_filter_allowed(db: AsyncSession, actor: Actor, team_id: str) -> bool:
    if actor.is_super_admin:
        return True
    if not actor.is_admin:
        return team_id in actor.team_ids
    result = await db.execute(select(Team).where(Team.id == team_id))
    team = result.scalar_one_or_none()
    return team is not None and scope_filter(actor, ResourceType.TEAM).matches(team)


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    payload: ProjectCreate,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Create a project scoped to one or more teams.

    Requires create_project in one of the teams, or administrator status.
    """
    teams = await resolve_teams(db, payload.teams)
    ensure_allowed(actor, Action.CREATE_PROJECT, AuthorizationContext.for_new_resource(teams))

    admin_id = await _resolve_owner(db, actor, payload.admin_id, teams)
    _ensure_single_tenant(actor, admin_id, teams)
    members = await _build_members(db, payload.team_members, teams)

    project = Project(
        name=payload.name,
        description=payload.description,
        status=payload.status,
        priority=payload.priority,
        deadline=payload.deadline,
        team_id=teams[0].id,
        created_by_id=actor.id,
        admin_id=admin_id,
    )
    project.teams = teams
    project.members = members
    db.add(project)
    await db.commit()

    log.info("Project %s created by %s (tenant %s)", project.id, actor.id, admin_id)
    return await load_project(db, project.id, refresh=True)


@router.get("", response_model=ProjectListResponse)
async def list_projects(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[ProjectStatus] = Query(None, alias="status"),
    team_id: Optional[str] = None
):
    """List projects in the actor's scope, newest first."""
    if team_id and not await _team_filter_allowed(db, actor, team_id):
        raise Forbidden("Not authorized to filter by this team")

    stmt = scope_filter(actor, ResourceType.PROJECT).apply(select(Project))
    if status_filter is not None:
        stmt = stmt.where(Project.status == status_filter)
    if team_id:
        stmt = stmt.where(or_(Project.team_id == team_id, Project.teams.any(Team.id == team_id)))

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()

    result = await db.execute(
        stmt.order_by(Project.created_at.desc(), Project.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return ProjectListResponse(
        items=[ProjectResponse.model_validate(project) for project in result.scalars().all()],
        total=total,
        page=page,
        page_size=limit,
        pages=(total + limit - 1) // limit,
    )


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project: Annotated[Project, Depends(get_scoped_project)]
):
    """Get a project visible to the actor."""
    return project


@router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    payload: ProjectUpdate,
    project: Annotated[Project, Depends(get_scoped_project)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Update project fields, teams and staffing.

    The owning administrator never changes here.
    """
    ensure_allowed(actor, Action.EDIT_PROJECT, AuthorizationContext.for_project(project))

    changes = payload.model_dump(exclude_unset=True)
    team_ids = changes.pop("teams", None)
    members = changes.pop("team_members", None)

    teams = list(project.teams)
    if team_ids is not None:
        teams = await resolve_teams(db, team_ids)
        ensure_allowed(actor, Action.EDIT_PROJECT, AuthorizationContext.for_project(project, teams))
        _ensure_single_tenant(actor, project.admin_id, teams)

    new_members = None
    if members is not None:
        new_members = await _build_members(db, payload.team_members, teams)

    for field, value in changes.items():
        if field in ("name", "status", "priority") and value is None:
            continue
        setattr(project, field, value)

    if team_ids is not None:
        project.teams = teams
        project.team_id = teams[0].id
        if new_members is None:
            kept = {team.id for team in teams}
            new_members = [member for member in project.members if member.team_id in kept]
    if new_members is not None:
        project.members = new_members

    await db.commit()
    return await load_project(db, project.id, refresh=True)


@router.delete("/{project_id}")
async def delete_project(
    request: Request,
    project: Annotated[Project, Depends(get_scoped_project)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a project; its tasks are deleted first."""
    ensure_allowed(actor, Action.DELETE_PROJECT, AuthorizationContext.for_project(project))

    result = await db.execute(select(Task).where(Task.project_id == project.id))
    tasks = result.scalars().all()
    for task in tasks:
        await db.delete(task)
    # Children must be gone before the parent row is removed
    await db.flush()

    create_audit_log(
        db, actor, "delete", "project",
        resource_id=project.id, team_id=project.team_id,
        details={"name": project.name, "deleted_tasks": len(tasks)},
        request=request,
    )
    await db.delete(project)
    await db.commit()

    log.info("Project %s deleted by %s with %d task(s)", project.id, actor.id, len(tasks))
    return {"message": "Project deleted", "deleted_tasks": len(tasks)}


@router.get("/{project_id}/members", response_model=List[AssignableMember])
async def get_project_members(
    project: Annotated[Project, Depends(get_scoped_project)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Members of the project's teams, i.e. the users tasks can be assigned to."""
    team_ids = [team.id for team in project.teams] or ([project.team_id] if project.team_id else [])
    if not team_ids:
        return []

    result = await db.execute(
        select(TeamMembership, User)
        .join(User, User.id == TeamMembership.user_id)
        .where(TeamMembership.team_id.in_(team_ids))
        .order_by(User.username)
    )
    staffed = {(member.user_id, member.team_id): member.role for member in project.members}
    return [
        AssignableMember(
            user_id=user.id,
            username=user.username,
            email=user.email,
            team_id=membership.team_id,
            team_name=membership.team_name,
            project_role=staffed.get((user.id, membership.team_id)),
        )
        for membership, user in result.all()
    ]


@router.post("/{project_id}/transfer-ownership", response_model=ProjectResponse)
async def transfer_project_ownership(
    payload: ProjectOwnershipTransfer,
    request: Request,
    project: Annotated[Project, Depends(get_scoped_project)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Hand a project to another administrator. The only way admin_id changes."""
    ensure_allowed(actor, Action.TRANSFER_PROJECT_OWNERSHIP, AuthorizationContext.for_project(project))

    result = await db.execute(select(User).where(User.id == payload.admin_id))
    target = result.scalar_one_or_none()
    if target is None or not target.is_admin or target.is_super_admin or not target.is_active:
        raise ValidationError("Target must be an active administrator")

    previous = project.admin_id
    project.admin_id = target.id
    create_audit_log(
        db, actor, "transfer_ownership", "project",
        resource_id=project.id, team_id=project.team_id,
        details={"from": previous, "to": target.id},
        request=request,
    )
    await db.commit()

    log.info("Project %s ownership %s -> %s by %s", project.id, previous, target.id, actor.id)
    return await load_project(db, project.id, refresh=True)

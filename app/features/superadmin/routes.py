"""
Super administrator console routes.

Every route requires a super administrator.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import Conflict, NotFound, ValidationError
from app.features.invitations.models import Invitation
from app.features.permissions.dependencies import create_audit_log
from app.features.permissions.models import AuditLog, Role
from app.features.permissions.schemas import AuditLogListResponse, AuditLogResponse
from app.features.projects.models import Project
from app.features.superadmin.schemas import (
    AdminCreate,
    AdminDeletionResult,
    AdminStatusUpdate,
    SystemStats,
    UserCounts,
)
from app.features.tasks.models import Task
from app.features.teams.models import Team, TeamMembership
from app.features.users.actor import Actor
from app.features.users.dependencies import get_current_super_admin
from app.features.users.models import User
from app.features.users.schemas import UserResponse
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def _get_managed_admin(db: AsyncSession, admin_id: str) -> User:
    """Load an administrator the console may modify: 404 if missing, 400 if not a plain admin."""
    result = await db.execute(select(User).where(User.id == admin_id))
    admin = result.scalar_one_or_none()
    if admin is None:
        raise NotFound("Admin")
    if not admin.is_admin or admin.is_super_admin:
        raise ValidationError("Cannot modify non-admin users or super administrators")
    return admin


@router.post("/create-admin", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_admin(
    payload: AdminCreate,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_super_admin)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Provision an administrator account."""
    existing = await db.execute(select(User.id).where(User.email == payload.email))
    if existing.first() is not None:
        raise Conflict("User with this email already exists")

    admin = User(
        email=payload.email,
        username=payload.username,
        is_admin=True,
        is_super_admin=False,
        created_by_id=actor.id,
    )
    db.add(admin)
    await db.flush()
    create_audit_log(db, actor, "create_admin", "user", resource_id=admin.id, details={"email": admin.email}, request=request)
    await db.commit()
    await db.refresh(admin)

    log.info("Admin %s created by super admin %s", admin.id, actor.id)
    return admin


@router.get("/admins", response_model=List[UserResponse])
async def list_admins(
    actor: Annotated[Actor, Depends(get_current_super_admin)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List administrators (super administrators excluded)."""
    result = await db.execute(
        select(User)
        .where(User.is_admin == True, User.is_super_admin == False)
        .order_by(User.created_at.desc(), User.id.desc())
    )
    return result.scalars().all()


@router.get("/users", response_model=List[UserResponse])
async def list_users(
    actor: Annotated[Actor, Depends(get_current_super_admin)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List administrators and members with their memberships."""
    result = await db.execute(
        select(User)
        .where(User.is_super_admin == False)
        .order_by(User.created_at.desc(), User.id.desc())
    )
    return result.scalars().all()


@router.put("/admin/{admin_id}/status", response_model=UserResponse)
async def update_admin_status(
    admin_id: str,
    payload: AdminStatusUpdate,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_super_admin)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Activate or deactivate an administrator."""
    admin = await _get_managed_admin(db, admin_id)

    admin.is_active = payload.is_active
    create_audit_log(
        db, actor, "activate" if payload.is_active else "deactivate", "user",
        resource_id=admin.id, request=request,
    )
    await db.commit()
    await db.refresh(admin)
    return admin


@router.delete("/admin/{admin_id}", response_model=AdminDeletionResult)
async def delete_admin(
    admin_id: str,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_super_admin)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Delete an administrator and everything in their tenant.

    Children are removed before parents: tasks, projects, roles, team
    memberships and invitations, teams, users the admin created, the admin.
    """
    admin = await _get_managed_admin(db, admin_id)

    projects = (await db.execute(select(Project).where(Project.admin_id == admin.id))).scalars().all()
    project_ids = [project.id for project in projects]

    tasks = []
    if project_ids:
        tasks = (await db.execute(select(Task).where(Task.project_id.in_(project_ids)))).scalars().all()
    for task in tasks:
        await db.delete(task)
    await db.flush()

    for project in projects:
        await db.delete(project)
    await db.flush()

    deleted_roles = (await db.execute(delete(Role).where(Role.admin_id == admin.id))).rowcount

    team_ids = (await db.execute(select(Team.id).where(Team.admin_id == admin.id))).scalars().all()
    if team_ids:
        await db.execute(delete(Invitation).where(Invitation.team_id.in_(team_ids)))
        memberships = (
            await db.execute(select(TeamMembership).where(TeamMembership.team_id.in_(team_ids)))
        ).scalars().all()
        for membership in memberships:
            await db.delete(membership)
        await db.flush()
        await db.execute(delete(Team).where(Team.id.in_(team_ids)))

    created_users = (await db.execute(select(User).where(User.created_by_id == admin.id))).scalars().all()
    for user in created_users:
        await db.delete(user)
    await db.flush()

    create_audit_log(
        db, actor, "delete_admin", "user",
        resource_id=admin.id,
        details={
            "email": admin.email,
            "tasks": len(tasks),
            "projects": len(projects),
            "roles": deleted_roles,
            "teams": len(team_ids),
            "users": len(created_users),
        },
        request=request,
    )
    # Reload memberships so the cascade only sees rows that still exist
    await db.refresh(admin)
    await db.delete(admin)
    await db.commit()

    log.warning("Admin %s and tenant data deleted by super admin %s", admin_id, actor.id)
    return AdminDeletionResult(
        message="Admin and all associated data deleted successfully",
        deleted_tasks=len(tasks),
        deleted_projects=len(projects),
        deleted_roles=deleted_roles,
        deleted_teams=len(team_ids),
        deleted_users=len(created_users),
    )


@router.get("/stats", response_model=SystemStats)
async def get_system_stats(
    actor: Annotated[Actor, Depends(get_current_super_admin)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """System-wide counts and status breakdowns."""
    total_admins = (await db.execute(
        select(func.count(User.id)).where(User.is_admin == True, User.is_super_admin == False)
    )).scalar_one()
    total_members = (await db.execute(
        select(func.count(User.id)).where(User.is_admin == False, User.is_super_admin == False)
    )).scalar_one()
    total_teams = (await db.execute(select(func.count(Team.id)))).scalar_one()
    total_projects = (await db.execute(select(func.count(Project.id)))).scalar_one()
    total_tasks = (await db.execute(select(func.count(Task.id)))).scalar_one()

    task_rows = await db.execute(select(Task.status, func.count(Task.id)).group_by(Task.status))
    project_rows = await db.execute(select(Project.status, func.count(Project.id)).group_by(Project.status))

    return SystemStats(
        users=UserCounts(total_admins=total_admins, total_members=total_members, total=total_admins + total_members),
        total_teams=total_teams,
        total_projects=total_projects,
        total_tasks=total_tasks,
        task_status_breakdown={task_status.value: count for task_status, count in task_rows.all()},
        project_status_breakdown={project_status.value: count for project_status, count in project_rows.all()},
    )


@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    actor: Annotated[Actor, Depends(get_current_super_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    team_id: Optional[str] = None
):
    """List audit log entries, newest first."""
    stmt = select(AuditLog)
    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if resource_type:
        stmt = stmt.where(AuditLog.resource_type == resource_type)
    if team_id:
        stmt = stmt.where(AuditLog.team_id == team_id)

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    result = await db.execute(
        stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(entry) for entry in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size,
        pages=(total + page_size - 1) // page_size,
    )

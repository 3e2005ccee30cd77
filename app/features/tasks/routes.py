"""
Task API routes.

Assignees must belong to the task's teams, which are always a subset of the
project's teams. Members without edit_task may still move a task they work
on through the status field; a status change notifies the project's team
administrators and all super administrators.
"""
from typing import Annotated, Iterable, List
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import Forbidden, ValidationError
from app.features.notifications.email import dispatch_email, task_status_email
from app.features.permissions.dependencies import (
    Action,
    AuthorizationContext,
    decide,
    ensure_allowed,
    ensure_in_scope,
)
from app.features.permissions.scope import ResourceType, is_project_member, project_team_ids, scope_filter
from app.features.projects.dependencies import get_project_by_id, get_scoped_project
from app.features.projects.models import Project
from app.features.tasks.dependencies import get_scoped_task, load_task
from app.features.tasks.models import Task
from app.features.tasks.schemas import TaskCreate, TaskResponse, TaskUpdate
from app.features.teams.dependencies import resolve_teams, team_member_ids
from app.features.teams.models import MembershipRole, Team, TeamMembership
from app.features.users.actor import Actor
from app.features.users.dependencies import get_current_actor
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def _project_teams(db: AsyncSession, project: Project) -> list[Team]:
    if project.teams:
        return list(project.teams)
    if project.team_id:
        return await resolve_teams(db, [project.team_id])
    return []


async def _task_teams(db: AsyncSession, project: Project, team_ids: list[str] | None) -> list[Team]:
    """Declared task teams, defaulting to the project's; must be a subset of them."""
    project_teams = await _project_teams(db, project)
    if team_ids is None:
        return project_teams
    teams = await resolve_teams(db, team_ids)
    allowed = {team.id for team in project_teams}
    outside = [team.id for team in teams if team.id not in allowed]
    if outside:
        raise ValidationError(f"Team(s) not assigned to this project: {', '.join(outside)}")
    return teams


async def _resolve_assignees(
    db: AsyncSession,
    project: Project,
    teams: Iterable[Team],
    user_ids: list[str],
) -> list[User]:
    """Every assignee must be in one of the task's teams and in the project's teams."""
    if not user_ids:
        return []
    result = await db.execute(select(User).where(User.id.in_(user_ids)))
    users = {user.id: user for user in result.scalars().all()}
    missing = [user_id for user_id in user_ids if user_id not in users]
    if missing:
        raise ValidationError(f"Unknown user(s): {', '.join(missing)}")

    task_members = await team_member_ids(db, [team.id for team in teams])
    project_members = await team_member_ids(db, project_team_ids(project))
    outside = [user_id for user_id in user_ids if user_id not in task_members or user_id not in project_members]
    if outside:
        raise ValidationError("Assigned user is not a member of this task's teams")
    return [users[user_id] for user_id in user_ids]


async def _status_recipients(db: AsyncSession, project: Project) -> list[str]:
    """Project team administrators, owning administrators and all super administrators."""
    team_ids = list(project_team_ids(project))
    admin_ids = {team.admin_id for team in project.teams if team.admin_id}
    if project.admin_id:
        admin_ids.add(project.admin_id)

    team_admins = select(TeamMembership.user_id).where(
        TeamMembership.team_id.in_(team_ids),
        TeamMembership.role == MembershipRole.ADMIN.value,
    )
    result = await db.execute(
        select(User.email).where(
            User.is_active == True,
            or_(
                User.is_super_admin == True,
                User.id.in_(list(admin_ids)),
                User.id.in_(team_admins),
            ),
        )
    )
    return list(result.scalars().all())


@router.get("/project/{project_id}", response_model=List[TaskResponse])
async def list_tasks_by_project(
    project: Annotated[Project, Depends(get_scoped_project)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List the tasks of a project visible to the actor."""
    stmt = scope_filter(actor, ResourceType.TASK).apply(
        select(Task).where(Task.project_id == project.id)
    )
    result = await db.execute(stmt.order_by(Task.created_at, Task.id))
    return result.scalars().all()


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task: Annotated[Task, Depends(get_scoped_task)]
):
    """Get a task visible to the actor."""
    return task


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    payload: TaskCreate,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Create a task in a project.

    Requires create_task (or edit_project) in one of the project's teams.
    Members may only assign the task to themselves.
    """
    project = await get_project_by_id(payload.project_id, db)
    ensure_in_scope(actor, ResourceType.PROJECT, project, "Not authorized to access this project")
    ensure_allowed(actor, Action.CREATE_TASK, AuthorizationContext.for_project(project))
    if payload.assigned_to:
        ensure_allowed(
            actor, Action.ASSIGN_TASK,
            AuthorizationContext.for_project(project, assignee_ids=payload.assigned_to),
        )

    teams = await _task_teams(db, project, payload.teams)
    assignees = await _resolve_assignees(db, project, teams, payload.assigned_to)

    task = Task(
        title=payload.title,
        description=payload.description,
        status=payload.status,
        priority=payload.priority,
        project_id=project.id,
        created_by_id=actor.id,
        deadline=payload.deadline,
        tags=payload.tags,
        estimated_hours=payload.estimated_hours,
        actual_hours=payload.actual_hours,
    )
    task.teams = teams
    task.assignees = assignees
    db.add(task)
    await db.commit()

    log.info("Task %s created in project %s by %s", task.id, project.id, actor.id)
    return await load_task(db, task.id, refresh=True)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    payload: TaskUpdate,
    background_tasks: BackgroundTasks,
    task: Annotated[Task, Depends(get_scoped_task)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Update a task.

    Without edit_task only {"status": ...} is accepted, and only from an
    assignee or a member of the task's project.
    """
    changes = payload.model_dump(exclude_unset=True)

    decision = decide(actor, Action.EDIT_TASK, AuthorizationContext.for_task(task))
    if not decision.allowed:
        if decision.rule == "tenant_scope":
            raise Forbidden(decision.reason)
        if set(changes) != {"status"}:
            log.info("Denied task %s update for %s: fields %s", task.id, actor.id, sorted(changes))
            raise Forbidden("You can only update the status of this task")
        is_assignee = any(user.id == actor.id for user in task.assignees)
        if not (is_assignee or is_project_member(actor, task.project)):
            raise Forbidden("Only assignees or project members can update this task's status")

    project = task.project
    teams = list(task.teams)
    if "teams" in changes:
        teams = await _task_teams(db, project, changes.pop("teams"))
        if "assigned_to" not in changes:
            # Current assignees must still belong to the new team set
            await _resolve_assignees(db, project, teams, [user.id for user in task.assignees])
        task.teams = teams

    if "assigned_to" in changes:
        assignee_ids = changes.pop("assigned_to") or []
        current = sorted(user.id for user in task.assignees)
        if sorted(assignee_ids) != current:
            ensure_allowed(actor, Action.ASSIGN_TASK, AuthorizationContext.for_task(task, assignee_ids))
        task.assignees = await _resolve_assignees(db, project, teams, assignee_ids)

    old_status = task.status
    for field, value in changes.items():
        if field in ("title", "status", "priority", "tags", "estimated_hours", "actual_hours") and value is None:
            continue
        setattr(task, field, value)

    await db.commit()

    if "status" in changes and changes["status"] is not None and changes["status"] != old_status:
        recipients = await _status_recipients(db, project)
        dispatch_email(
            background_tasks,
            recipients,
            f"Task status updated: {task.title}",
            task_status_email(task.title, project.name, old_status.value, task.status.value, actor.username or actor.email),
        )
        log.info("Task %s status %s -> %s by %s", task.id, old_status.value, task.status.value, actor.id)

    return await load_task(db, task.id, refresh=True)


@router.delete("/{task_id}")
async def delete_task(
    task: Annotated[Task, Depends(get_scoped_task)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a task."""
    ensure_allowed(actor, Action.DELETE_TASK, AuthorizationContext.for_task(task))

    await db.delete(task)
    await db.commit()
    return {"message": "Task deleted"}

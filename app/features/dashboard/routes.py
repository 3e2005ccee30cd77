"""
Dashboard summary route.

Read-only aggregates over the projects, tasks and teams the actor can see.
"""
from typing import Annotated
from fastapi import APIRouter, Depends
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.base import utcnow
from app.core.database.engine import get_db
from app.features.dashboard.schemas import DashboardSummary, TaskDigest, TasksByStatus
from app.features.permissions.scope import ResourceType, scope_filter
from app.features.projects.models import Project
from app.features.tasks.models import Task, TaskStatus
from app.features.teams.models import Team, TeamMembership
from app.features.users.actor import Actor
from app.features.users.dependencies import get_current_actor


router = APIRouter()


@router.get("/summary", response_model=DashboardSummary)
async def get_dashboard_summary(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Project, task and team member counts within the actor's scope."""
    projects = scope_filter(actor, ResourceType.PROJECT)
    tasks = scope_filter(actor, ResourceType.TASK)
    teams = scope_filter(actor, ResourceType.TEAM)

    total_projects = (await db.execute(projects.apply(select(func.count(Project.id))))).scalar_one()
    total_tasks = (await db.execute(tasks.apply(select(func.count(Task.id))))).scalar_one()

    rows = await db.execute(tasks.apply(select(Task.status, func.count(Task.id))).group_by(Task.status))
    counts = {task_status: count for task_status, count in rows.all()}

    by_status = TasksByStatus(
        backlog=counts.get(TaskStatus.BACKLOG, 0),
        in_progress=counts.get(TaskStatus.IN_PROGRESS, 0) + counts.get(TaskStatus.REVIEW, 0),
        review=counts.get(TaskStatus.REVIEW, 0),
        done=counts.get(TaskStatus.DONE, 0),
        deployed=counts.get(TaskStatus.DEPLOYED, 0),
        blocked=counts.get(TaskStatus.BLOCKED, 0),
    )

    upcoming = await db.execute(
        tasks.apply(select(Task))
        .where(Task.deadline.is_not(None), Task.deadline >= utcnow())
        .order_by(Task.deadline)
        .limit(7)
    )
    recent = await db.execute(
        tasks.apply(select(Task)).order_by(Task.updated_at.desc(), Task.id.desc()).limit(8)
    )

    scoped_team_ids = teams.apply(select(Team.id))
    members = await db.execute(
        select(func.count(distinct(TeamMembership.user_id))).where(TeamMembership.team_id.in_(scoped_team_ids))
    )

    return DashboardSummary(
        total_projects=total_projects,
        total_tasks=total_tasks,
        tasks_by_status=by_status,
        completed_tasks=by_status.done,
        in_progress_tasks=by_status.in_progress,
        upcoming_deadlines=[TaskDigest.model_validate(task) for task in upcoming.scalars().all()],
        recent_activity=[TaskDigest.model_validate(task) for task in recent.scalars().all()],
        team_members_count=members.scalar_one(),
    )

"""
Task-related dependency injection functions.
"""
from typing import Annotated
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import NotFound
from app.features.permissions.dependencies import ensure_in_scope
from app.features.permissions.scope import ResourceType
from app.features.tasks.models import Task
from app.features.users.actor import Actor
from app.features.users.dependencies import get_current_actor


async def load_task(db: AsyncSession, task_id: str, refresh: bool = False) -> Task | None:
    """Load a task with its project, teams and assignees."""
    stmt = select(Task).where(Task.id == task_id)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_scoped_task(
    task_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Task:
    """
    Get task and verify the actor may see it.

    Raises:
        NotFound: 404 if the task does not exist
        Forbidden: 403 if it exists outside the actor's scope
    """
    task = await load_task(db, task_id)

    if task is None:
        raise NotFound("Task")

    ensure_in_scope(actor, ResourceType.TASK, task, "Not authorized to access this task")
    return task

"""
Project-related dependency injection functions.
"""
from typing import Annotated
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import NotFound
from app.features.permissions.dependencies import ensure_in_scope
from app.features.permissions.scope import ResourceType
from app.features.projects.models import Project
from app.features.users.actor import Actor
from app.features.users.dependencies import get_current_actor


async def load_project(db: AsyncSession, project_id: str, refresh: bool = False) -> Project | None:
    """
    Load a project with its teams and members.

    refresh=True repopulates an instance already in the session, e.g. after
    its collections were replaced and committed.
    """
    stmt = select(Project).where(Project.id == project_id)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_project_by_id(
    project_id: str,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Project:
    """
    Get project by ID or raise 404.

    Raises:
        NotFound: if the project does not exist
    """
    project = await load_project(db, project_id)

    if project is None:
        raise NotFound("Project")

    return project


async def get_scoped_project(
    project_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Project:
    """
    Get project and verify the actor may see it.

    Raises:
        NotFound: 404 if the project does not exist
        Forbidden: 403 if it exists outside the actor's tenant or teams
    """
    project = await get_project_by_id(project_id, db)
    ensure_in_scope(actor, ResourceType.PROJECT, project, "Not authorized to access this project")
    return project

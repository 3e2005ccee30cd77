"""
Backfill admin_id on legacy projects and teams.

For each row without an owner, in order:
1. its creator, when the creator is an administrator
2. an administrator of one of its teams
3. otherwise it stays unowned and is reported

Back up the database before running.

Usage:
    python -m scripts.migrate_admin_id
"""
import asyncio
from dataclasses import dataclass, field
from typing import Iterable, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import AsyncSessionLocal, dispose_db, init_db
from app.features.projects.models import Project
from app.features.teams.models import MembershipRole, Team, TeamMembership
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


@dataclass
class MigrationReport:
    updated_projects: int = 0
    updated_teams: int = 0
    unresolved_projects: list[str] = field(default_factory=list)
    unresolved_teams: list[str] = field(default_factory=list)


async def _privileged(db: AsyncSession, user_id: Optional[str]) -> Optional[str]:
    if not user_id:
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is not None and (user.is_admin or user.is_super_admin):
        return user.id
    return None


async def _team_admin(db: AsyncSession, team_ids: Iterable[str]) -> Optional[str]:
    """An administrator owning, or holding the legacy admin role in, one of the teams."""
    team_ids = list(team_ids)
    if not team_ids:
        return None

    result = await db.execute(
        select(Team.admin_id).where(Team.id.in_(team_ids), Team.admin_id.is_not(None)).order_by(Team.name)
    )
    owner = result.scalars().first()
    if owner:
        return owner

    result = await db.execute(
        select(User.id)
        .join(TeamMembership, TeamMembership.user_id == User.id)
        .where(
            TeamMembership.team_id.in_(team_ids),
            TeamMembership.role == MembershipRole.ADMIN.value,
            User.is_admin == True,
            User.is_super_admin == False,
        )
        .order_by(TeamMembership.joined_at)
    )
    return result.scalars().first()


async def migrate_admin_ids(db: AsyncSession) -> MigrationReport:
    """Assign owners to unowned teams first, then to unowned projects."""
    report = MigrationReport()

    teams = (await db.execute(select(Team).where(Team.admin_id.is_(None)))).scalars().all()
    log.info(f"Found {len(teams)} team(s) without admin_id")
    for team in teams:
        admin_id = await _privileged(db, team.created_by_id) or await _team_admin(db, [team.id])
        if admin_id:
            team.admin_id = admin_id
            report.updated_teams += 1
            log.info(f"Team {team.name!r} -> admin {admin_id}")
        else:
            report.unresolved_teams.append(team.id)
            log.warning(f"Could not determine admin for team {team.id}")
    await db.flush()

    projects = (await db.execute(select(Project).where(Project.admin_id.is_(None)))).scalars().all()
    log.info(f"Found {len(projects)} project(s) without admin_id")
    for project in projects:
        team_ids = [team.id for team in project.teams] or ([project.team_id] if project.team_id else [])
        admin_id = await _privileged(db, project.created_by_id) or await _team_admin(db, team_ids)
        if admin_id:
            project.admin_id = admin_id
            report.updated_projects += 1
            log.info(f"Project {project.name!r} -> admin {admin_id}")
        else:
            report.unresolved_projects.append(project.id)
            log.warning(f"Could not determine admin for project {project.id}")

    await db.commit()
    return report


async def main():
    await init_db()
    async with AsyncSessionLocal() as db:
        try:
            report = await migrate_admin_ids(db)
        except Exception as e:
            log.error(f"Migration failed: {e}", exc_info=True)
            await db.rollback()
            raise

    log.info("=== Migration Summary ===")
    log.info(f"Teams updated: {report.updated_teams}")
    log.info(f"Projects updated: {report.updated_projects}")
    for team_id in report.unresolved_teams:
        log.info(f"  unresolved team: {team_id}")
    for project_id in report.unresolved_projects:
        log.info(f"  unresolved project: {project_id}")
    await dispose_db()


if __name__ == "__main__":
    asyncio.run(main())

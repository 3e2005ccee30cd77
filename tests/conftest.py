"""
Shared fixtures.

Every test gets a fresh in-memory SQLite database. The app's get_db
dependency is overridden to use it, and outbound email is captured instead
of sent.
"""
import os
from types import SimpleNamespace

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["INVITE_SECRET"] = "test-invite-secret"
os.environ.pop("EMAIL_HOST", None)

from typing import Iterable, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database.base import Base
from app.core.database.engine import get_db, import_models
from app.features.notifications import email as email_module
from app.features.permissions.models import Role
from app.features.projects.models import Project, ProjectMember, ProjectStatus
from app.features.tasks.models import Task, TaskStatus
from app.features.teams.models import MembershipRole, Team, TeamMembership
from app.features.users.auth import create_access_token
from app.features.users.models import User
from app.main import app


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def session_factory():
    """In-memory database shared by the test and the app for one test."""
    import_models()
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    yield factory

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# =============================================================================
# Email
# =============================================================================


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Recorded (to, subject) pairs instead of SMTP delivery."""
    sent = []

    def fake_send_email(to: str, subject: str, html: str) -> bool:
        sent.append((to, subject))
        return True

    monkeypatch.setattr(email_module, "send_email", fake_send_email)
    return sent


# =============================================================================
# Auth
# =============================================================================


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}


# =============================================================================
# Factories
# =============================================================================


class Factory:
    """Writes fixture rows directly, bypassing authorization."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        await self.db.refresh(obj)
        return obj

    async def user(
        self,
        email: str,
        username: Optional[str] = None,
        is_admin: bool = False,
        is_super_admin: bool = False,
        is_active: bool = True,
        created_by: Optional[User] = None,
    ) -> User:
        return await self._save(User(
            email=email,
            username=username or email.split("@")[0],
            is_admin=is_admin or is_super_admin,
            is_super_admin=is_super_admin,
            is_active=is_active,
            created_by_id=created_by.id if created_by else None,
        ))

    async def admin(self, email: str, **kwargs) -> User:
        return await self.user(email, is_admin=True, **kwargs)

    async def super_admin(self, email: str = "root@example.com") -> User:
        return await self.user(email, is_super_admin=True)

    async def team(self, name: str, admin: Optional[User], created_by: Optional[User] = None) -> Team:
        """A team owned by admin; admin=None makes an unowned legacy team."""
        creator = created_by or admin
        team = await self._save(Team(
            name=name,
            admin_id=admin.id if admin else None,
            created_by_id=creator.id if creator else None,
        ))
        if admin is not None:
            await self.member(admin, team, role=MembershipRole.ADMIN.value)
        return team

    async def member(
        self,
        user: User,
        team: Team,
        role: str = MembershipRole.MEMBER.value,
        permissions: Iterable[str] = (),
        role_id: Optional[str] = None,
    ) -> TeamMembership:
        return await self._save(TeamMembership(
            user_id=user.id,
            team_id=team.id,
            team_name=team.name,
            role=role,
            role_id=role_id,
            permissions=list(permissions),
        ))

    async def role(self, admin: User, role_name: str, permissions: Iterable[str]) -> Role:
        return await self._save(Role(
            role_name=role_name,
            permissions=list(permissions),
            admin_id=admin.id,
            created_by_id=admin.id,
        ))

    async def project(
        self,
        name: str,
        teams: list[Team],
        created_by: User,
        admin: Optional[User] = None,
        status: ProjectStatus = ProjectStatus.NOT_STARTED,
        staff: Iterable[tuple[User, Team]] = (),
    ) -> Project:
        """A project owned by admin; admin=None makes an unowned legacy project."""
        project = Project(
            name=name,
            status=status,
            team_id=teams[0].id if teams else None,
            created_by_id=created_by.id,
            admin_id=admin.id if admin else None,
        )
        project.teams = list(teams)
        project.members = [ProjectMember(user_id=user.id, team_id=team.id) for user, team in staff]
        return await self._save(project)

    async def task(
        self,
        title: str,
        project: Project,
        created_by: User,
        assignees: Iterable[User] = (),
        teams: Optional[list[Team]] = None,
        status: TaskStatus = TaskStatus.BACKLOG,
    ) -> Task:
        task = Task(
            title=title,
            project_id=project.id,
            created_by_id=created_by.id,
            status=status,
        )
        task.teams = list(project.teams) if teams is None else list(teams)
        task.assignees = list(assignees)
        return await self._save(task)


@pytest_asyncio.fixture
async def factory(db):
    return Factory(db)


# =============================================================================
# Common tenants
# =============================================================================


@pytest_asyncio.fixture
async def tenant(factory):
    """
    Administrator A with team Alpha and member U, plus an unrelated
    administrator B with team Beta.
    """
    admin_a = await factory.admin("alice@example.com", username="Alice")
    admin_b = await factory.admin("bob@example.com", username="Bob")
    alpha = await factory.team("Alpha", admin_a)
    beta = await factory.team("Beta", admin_b)
    member_u = await factory.user("uma@example.com", username="Uma", created_by=admin_a)
    await factory.member(member_u, alpha)

    return SimpleNamespace(
        admin_a=admin_a,
        admin_b=admin_b,
        alpha=alpha,
        beta=beta,
        member_u=member_u,
    )

"""
Project models.

A project references one or more teams (project_teams) and keeps the legacy
singular team_id equal to the first of them. admin_id is the owning tenant;
it is only changed by the ownership-transfer route.
"""
import enum
from datetime import datetime
from sqlalchemy import String, ForeignKey, Table, Column, Text, DateTime, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, generate_ulid, utcnow


class ProjectStatus(str, enum.Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    ON_HOLD = "On Hold"
    PLANNING = "Planning"


class Priority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ProjectMemberRole(str, enum.Enum):
    LEAD = "lead"
    MEMBER = "member"
    VIEWER = "viewer"


# Project-Team relationship
project_teams = Table(
    "project_teams",
    Base.metadata,
    Column("project_id", String(26), ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
    Column("team_id", String(26), ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
    Column("added_at", DateTime(timezone=True), nullable=False, default=utcnow),
)


class Project(Base, TimestampMixin):
    """Project scoped to one or more teams of a single tenant."""
    __tablename__ = "projects"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    
    status: Mapped[ProjectStatus] = mapped_column(
        SQLEnum(ProjectStatus),
        default=ProjectStatus.NOT_STARTED,
        nullable=False,
        index=True
    )
    priority: Mapped[Priority] = mapped_column(SQLEnum(Priority), default=Priority.MEDIUM, nullable=False)
    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    
    # Legacy single-team reference, kept equal to teams[0]
    team_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("teams.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    
    created_by_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.id"), nullable=False)
    
    # Owning tenant; legacy rows may have NULL (falls back to created_by_id)
    admin_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id"),
        nullable=True,
        index=True
    )
    
    teams: Mapped[list["Team"]] = relationship(  # type: ignore
        "Team",
        secondary=project_teams,
        lazy="selectin",
        order_by="Team.name"
    )
    members: Mapped[list["ProjectMember"]] = relationship(
        "ProjectMember",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin"
    )
    
    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name={self.name!r}, admin_id={self.admin_id})>"


class ProjectMember(Base):
    """A user staffed on a project through one of its teams."""
    __tablename__ = "project_members"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    project_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    team_id: Mapped[str] = mapped_column(String(26), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=ProjectMemberRole.MEMBER.value)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    
    project: Mapped["Project"] = relationship("Project", back_populates="members")
    
    def __repr__(self) -> str:
        return f"<ProjectMember(project_id={self.project_id}, user_id={self.user_id}, role={self.role})>"

"""
Task models with multi-assignee and multi-team support.
"""
import enum
from datetime import datetime
from sqlalchemy import String, ForeignKey, Table, Column, Text, DateTime, Float, JSON, Index, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, generate_ulid
from app.features.projects.models import Priority


class TaskStatus(str, enum.Enum):
    BACKLOG = "backlog"
    IN_PROGRESS = "in-progress"
    REVIEW = "review"
    DONE = "done"
    DEPLOYED = "deployed"
    BLOCKED = "blocked"


task_teams = Table(
    "task_teams",
    Base.metadata,
    Column("task_id", String(26), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("team_id", String(26), ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
)

task_assignees = Table(
    "task_assignees",
    Base.metadata,
    Column("task_id", String(26), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Task(Base, TimestampMixin):
    """
    Task belonging to exactly one project.
    
    Every assignee must be a member of one of the task's teams and of the
    project's team set.
    """
    __tablename__ = "tasks"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    
    status: Mapped[TaskStatus] = mapped_column(SQLEnum(TaskStatus), default=TaskStatus.BACKLOG, nullable=False)
    priority: Mapped[Priority] = mapped_column(SQLEnum(Priority), default=Priority.MEDIUM, nullable=False)
    
    # No DB-level cascade: project deletion removes tasks explicitly first
    project_id: Mapped[str] = mapped_column(String(26), ForeignKey("projects.id"), nullable=False, index=True)
    created_by_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.id"), nullable=False)
    
    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    estimated_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    actual_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    
    project: Mapped["Project"] = relationship("Project", lazy="selectin")  # type: ignore
    teams: Mapped[list["Team"]] = relationship("Team", secondary=task_teams, lazy="selectin")  # type: ignore
    assignees: Mapped[list["User"]] = relationship("User", secondary=task_assignees, lazy="selectin")  # type: ignore
    
    __table_args__ = (
        Index("ix_tasks_project_status", "project_id", "status"),
    )
    
    def __repr__(self) -> str:
        return f"<Task(id={self.id}, title={self.title!r}, status={self.status})>"

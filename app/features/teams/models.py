"""
Team and team membership models.

A team belongs to exactly one administrator tenant through admin_id. Rows
created before ownership existed have admin_id = NULL and are handled by the
tenant scope rules in app.features.permissions.scope.
"""
import enum
from datetime import datetime
from sqlalchemy import String, ForeignKey, JSON, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, generate_ulid, utcnow


class MembershipRole(str, enum.Enum):
    """Legacy coarse role kept for data created before fine-grained RBAC."""
    ADMIN = "admin"
    MEMBER = "member"


class Team(Base, TimestampMixin):
    """Team model; the unit members join and projects are scoped to."""
    __tablename__ = "teams"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    
    # Owning tenant (nullable for legacy rows)
    admin_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    created_by_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    
    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name={self.name!r}, admin_id={self.admin_id})>"


class TeamMembership(Base):
    """
    A user's membership in one team.
    
    permissions is a snapshot copied from the assigned Role at assignment
    time. Later edits to (or deletion of) the Role do not change it until the
    membership is re-assigned or re-synced.
    """
    __tablename__ = "team_memberships"
    __table_args__ = (
        UniqueConstraint("user_id", "team_id", name="uq_team_memberships_user_team"),
    )
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    user_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    team_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    
    # Denormalized at join time
    team_name: Mapped[str] = mapped_column(String(255), nullable=False)
    
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=MembershipRole.MEMBER.value)
    role_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("roles.id", ondelete="SET NULL"),
        nullable=True
    )
    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    
    user: Mapped["User"] = relationship("User", back_populates="memberships")  # type: ignore
    team: Mapped["Team"] = relationship("Team", lazy="selectin")
    
    def __repr__(self) -> str:
        return f"<TeamMembership(user_id={self.user_id}, team_id={self.team_id}, role={self.role})>"

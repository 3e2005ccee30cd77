"""
Team invitation model.
"""
import enum
from datetime import datetime
from sqlalchemy import String, ForeignKey, DateTime, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid
from app.features.teams.models import MembershipRole


class InvitationStatus(str, enum.Enum):
    """Status of a team invitation. ACCEPTED means the token has been used."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class Invitation(Base, TimestampMixin):
    """
    Single-use invitation to join a team.
    
    Accepting it creates the TeamMembership and flips status to ACCEPTED
    in the same commit.
    """
    __tablename__ = "invitations"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    invited_by_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    team_id: Mapped[str] = mapped_column(String(26), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=MembershipRole.MEMBER.value)
    
    token: Mapped[str] = mapped_column(String(1024), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[InvitationStatus] = mapped_column(
        SQLEnum(InvitationStatus),
        default=InvitationStatus.PENDING,
        nullable=False,
        index=True
    )
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    
    @property
    def used(self) -> bool:
        return self.status == InvitationStatus.ACCEPTED
    
    def __repr__(self) -> str:
        return f"<Invitation(id={self.id}, email={self.email!r}, team_id={self.team_id}, status={self.status})>"

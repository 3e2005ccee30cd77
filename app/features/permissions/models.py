"""
Permission catalog, Role and AuditLog models.

Permissions are a fixed catalog of strings. Roles group a subset of them and
belong to one administrator tenant; assigning a role copies its permissions
into the member's TeamMembership.
"""
import enum
from typing import Any, Dict
from sqlalchemy import String, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


class PermissionName(str, enum.Enum):
    """The fixed permission catalog."""
    VIEW_PROJECT = "view_project"
    EDIT_PROJECT = "edit_project"
    CREATE_PROJECT = "create_project"
    DELETE_PROJECT = "delete_project"
    VIEW_ROLE = "view_role"
    EDIT_ROLE = "edit_role"
    DELETE_ROLE = "delete_role"
    VIEW_TASK = "view_task"
    CREATE_TASK = "create_task"
    EDIT_TASK = "edit_task"
    DELETE_TASK = "delete_task"


PERMISSION_CATALOG: list[str] = [p.value for p in PermissionName]


class Role(Base, TimestampMixin):
    """
    Role model for grouping permissions.
    
    role_name is unique within its administrator tenant, not globally.
    """
    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("admin_id", "role_name", name="uq_roles_admin_role_name"),
    )
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    role_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    
    # Owning tenant
    admin_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    created_by_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    
    def __repr__(self) -> str:
        return f"<Role(id={self.id}, role_name={self.role_name!r}, admin_id={self.admin_id})>"


class AuditLog(Base, TimestampMixin):
    """
    Audit log for authorization-relevant mutations.
    
    Tracks who did what, when, and from where.
    """
    __tablename__ = "audit_logs"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    # Actor
    user_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    
    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)
    
    # Context
    team_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)
    
    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, resource={self.resource_type})>"

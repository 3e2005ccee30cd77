"""
Pydantic schemas for role and permission management.

Request and response models for the permission catalog, roles, role
assignment, permission re-sync and audit logs.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator, model_validator

from app.features.permissions.models import PERMISSION_CATALOG


def _validate_permissions(permissions: List[str]) -> List[str]:
    unknown = sorted(set(permissions) - set(PERMISSION_CATALOG))
    if unknown:
        raise ValueError(f"Unknown permissions: {', '.join(unknown)}")
    # Keep first-seen order, drop duplicates
    return list(dict.fromkeys(permissions))


# ============================================================================
# Permission Catalog
# ============================================================================

class PermissionCatalogResponse(BaseModel):
    """The fixed list of permission strings."""
    permissions: List[str]


# ============================================================================
# Role Schemas
# ============================================================================

class RoleCreate(BaseModel):
    """Schema for creating a new role."""
    role_name: str = Field(..., min_length=1, max_length=100, description="Role name, unique per tenant")
    permissions: List[str] = Field(..., min_length=1, description="Subset of the permission catalog")
    admin_id: Optional[str] = Field(None, description="Owning administrator (super administrators only)")

    @field_validator('role_name')
    @classmethod
    def strip_role_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Role name must not be blank')
        return v

    @field_validator('permissions')
    @classmethod
    def permissions_in_catalog(cls, v: List[str]) -> List[str]:
        return _validate_permissions(v)


class RoleUpdate(BaseModel):
    """Schema for updating a role. Omitted fields are left unchanged."""
    role_name: Optional[str] = Field(None, min_length=1, max_length=100)
    permissions: Optional[List[str]] = None

    @field_validator('role_name')
    @classmethod
    def strip_role_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError('Role name must not be blank')
        return v

    @field_validator('permissions')
    @classmethod
    def permissions_in_catalog(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        return _validate_permissions(v)


class RoleResponse(BaseModel):
    """Schema for role response."""
    id: str
    role_name: str
    permissions: List[str]
    admin_id: str
    created_by_id: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Assignment Schemas
# ============================================================================

class MembershipTarget(BaseModel):
    """Identifies one team membership by user id or email."""
    user_id: Optional[str] = Field(None, description="User ID")
    email: Optional[EmailStr] = Field(None, description="User email, used when user_id is absent")
    team_id: str = Field(..., min_length=1, description="Team ID")

    @model_validator(mode='after')
    def user_reference_required(self) -> "MembershipTarget":
        if not self.user_id and not self.email:
            raise ValueError('user_id or email is required')
        return self


class AssignRole(MembershipTarget):
    """Schema for assigning a role to a team member."""
    role_id: str = Field(..., min_length=1, description="Role ID")


class SyncRolePermissions(MembershipTarget):
    """Schema for re-copying a member's role permissions into their membership."""


class MembershipPermissionsResponse(BaseModel):
    """Membership state after an assignment or re-sync."""
    user_id: str
    team_id: str
    role_id: Optional[str]
    role: str
    permissions: List[str]


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    user_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    team_id: Optional[str]
    details: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    """Schema for paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int

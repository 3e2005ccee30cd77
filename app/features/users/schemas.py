"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, Field


class UserBase(BaseModel):
    """Base user schema with common fields."""
    email: str
    username: str = Field(..., min_length=1, max_length=255)


class MembershipResponse(BaseModel):
    """One team membership with its permission snapshot."""
    team_id: str
    team_name: str
    role: str
    role_id: str | None = None
    permissions: list[str] = []
    joined_at: datetime

    model_config = {"from_attributes": True}


class UserResponse(UserBase):
    """Schema for user responses."""
    id: str
    is_active: bool
    is_admin: bool
    is_super_admin: bool
    created_by_id: str | None = None
    created_at: datetime
    updated_at: datetime

    memberships: list[MembershipResponse] = []

    model_config = {"from_attributes": True}


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: str
    username: str
    email: str

    model_config = {"from_attributes": True}

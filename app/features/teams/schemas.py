"""
Pydantic schemas for teams and team membership.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.features.teams.models import MembershipRole


class TeamCreate(BaseModel):
    """Schema for creating a team."""
    name: str = Field(..., min_length=1, max_length=255)
    admin_id: Optional[str] = Field(
        None,
        description="Owning administrator; only super administrators may set it"
    )

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Team name must not be blank')
        return v


class TeamResponse(BaseModel):
    """Schema for team response."""
    id: str
    name: str
    admin_id: Optional[str]
    created_by_id: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TeamMemberResponse(BaseModel):
    """A team member with their role and permission snapshot in that team."""
    user_id: str
    username: str
    email: str
    team_id: str
    team_name: str
    role: str
    role_id: Optional[str] = None
    permissions: List[str] = []
    joined_at: datetime


class TeamMemberUpdate(BaseModel):
    """
    Change a member's legacy role and/or RBAC role.

    Setting role_id copies the role's current permissions into the membership.
    """
    role: Optional[MembershipRole] = None
    role_id: Optional[str] = None

    @model_validator(mode='after')
    def something_to_update(self) -> "TeamMemberUpdate":
        if self.role is None and self.role_id is None:
            raise ValueError('role or role_id is required')
        return self

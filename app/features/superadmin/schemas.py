"""
Pydantic schemas for the super administrator console.
"""
from typing import Dict
from pydantic import BaseModel, EmailStr, Field, field_validator


class AdminCreate(BaseModel):
    """Schema for provisioning an administrator account."""
    username: str = Field(..., min_length=1, max_length=255)
    email: EmailStr

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


class AdminStatusUpdate(BaseModel):
    is_active: bool


class UserCounts(BaseModel):
    total_admins: int
    total_members: int
    total: int


class SystemStats(BaseModel):
    users: UserCounts
    total_teams: int
    total_projects: int
    total_tasks: int
    task_status_breakdown: Dict[str, int]
    project_status_breakdown: Dict[str, int]


class AdminDeletionResult(BaseModel):
    message: str
    deleted_tasks: int
    deleted_projects: int
    deleted_roles: int
    deleted_teams: int
    deleted_users: int

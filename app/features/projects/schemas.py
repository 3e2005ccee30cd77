"""
Pydantic schemas for projects.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.features.projects.models import Priority, ProjectMemberRole, ProjectStatus


class ProjectMemberInput(BaseModel):
    """A user staffed on the project through one of its teams."""
    user_id: str = Field(..., min_length=1)
    team_id: str = Field(..., min_length=1)
    role: ProjectMemberRole = ProjectMemberRole.MEMBER


class ProjectBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    status: ProjectStatus = ProjectStatus.NOT_STARTED
    priority: Priority = Priority.MEDIUM
    deadline: Optional[datetime] = None

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Project name must not be blank')
        return v


class ProjectCreate(ProjectBase):
    """Schema for creating a project; at least one team is required."""
    teams: List[str] = Field(..., min_length=1, description="Team IDs; the first becomes team_id")
    team_members: List[ProjectMemberInput] = []
    admin_id: Optional[str] = Field(
        None,
        description="Owning administrator; only super administrators may delegate"
    )


class ProjectUpdate(BaseModel):
    """
    Schema for updating a project.

    Ownership (admin_id) is not part of this schema and is dropped if sent;
    it only changes through the transfer-ownership route.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    status: Optional[ProjectStatus] = None
    priority: Optional[Priority] = None
    deadline: Optional[datetime] = None
    teams: Optional[List[str]] = Field(None, min_length=1)
    team_members: Optional[List[ProjectMemberInput]] = None

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError('Project name must not be blank')
        return v


class ProjectOwnershipTransfer(BaseModel):
    admin_id: str = Field(..., min_length=1, description="New owning administrator")


class TeamSummary(BaseModel):
    id: str
    name: str

    model_config = ConfigDict(from_attributes=True)


class ProjectMemberResponse(BaseModel):
    user_id: str
    team_id: str
    role: str
    assigned_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProjectResponse(ProjectBase):
    """Schema for project response."""
    id: str
    team_id: Optional[str]
    teams: List[TeamSummary] = []
    members: List[ProjectMemberResponse] = []
    created_by_id: str
    admin_id: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProjectListResponse(BaseModel):
    """Paginated project list."""
    items: List[ProjectResponse]
    total: int
    page: int
    page_size: int
    pages: int


class AssignableMember(BaseModel):
    """A user who may be assigned tasks on a project."""
    user_id: str
    username: str
    email: str
    team_id: str
    team_name: str
    project_role: Optional[str] = None

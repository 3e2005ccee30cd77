"""
Pydantic schemas for tasks.
"""
from datetime import datetime
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.features.projects.models import Priority
from app.features.projects.schemas import TeamSummary
from app.features.tasks.models import TaskStatus
from app.features.users.schemas import UserPublic


def _normalize_tags(v: Any) -> Any:
    """Accept a list or a comma separated string; trim and drop empties."""
    if v is None:
        return v
    if isinstance(v, str):
        v = v.split(",")
    if isinstance(v, (list, tuple)):
        return [str(tag).strip() for tag in v if str(tag).strip()]
    return v


def _normalize_assignees(v: Any) -> Any:
    """Accept a single user id or a list of ids."""
    if v is None:
        return v
    if isinstance(v, str):
        v = [v]
    if isinstance(v, (list, tuple)):
        return list(dict.fromkeys(item for item in v if item))
    return v


class TaskCreate(BaseModel):
    """Schema for creating a task."""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=10000)
    status: TaskStatus = TaskStatus.BACKLOG
    priority: Priority = Priority.MEDIUM
    project_id: str = Field(..., min_length=1)
    assigned_to: List[str] = []
    teams: Optional[List[str]] = Field(None, description="Defaults to the project's teams")
    deadline: Optional[datetime] = None
    tags: List[str] = []
    estimated_hours: float = Field(0, ge=0)
    actual_hours: float = Field(0, ge=0)

    @field_validator('title')
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Title must not be blank')
        return v

    @field_validator('tags', mode='before')
    @classmethod
    def normalize_tags(cls, v: Any) -> Any:
        return _normalize_tags(v)

    @field_validator('assigned_to', mode='before')
    @classmethod
    def normalize_assignees(cls, v: Any) -> Any:
        return _normalize_assignees(v)


class TaskUpdate(BaseModel):
    """
    Schema for updating a task.

    Unknown fields are rejected. Members without edit_task may only send
    status.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=10000)
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    assigned_to: Optional[List[str]] = None
    teams: Optional[List[str]] = Field(None, min_length=1)
    deadline: Optional[datetime] = None
    tags: Optional[List[str]] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    actual_hours: Optional[float] = Field(None, ge=0)

    model_config = ConfigDict(extra="forbid")

    @field_validator('title')
    @classmethod
    def strip_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError('Title must not be blank')
        return v

    @field_validator('tags', mode='before')
    @classmethod
    def normalize_tags(cls, v: Any) -> Any:
        return _normalize_tags(v)

    @field_validator('assigned_to', mode='before')
    @classmethod
    def normalize_assignees(cls, v: Any) -> Any:
        return _normalize_assignees(v)


class TaskResponse(BaseModel):
    """Schema for task response."""
    id: str
    title: str
    description: Optional[str]
    status: TaskStatus
    priority: Priority
    project_id: str
    created_by_id: str
    deadline: Optional[datetime]
    tags: List[str] = []
    estimated_hours: float
    actual_hours: float
    teams: List[TeamSummary] = []
    assignees: List[UserPublic] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

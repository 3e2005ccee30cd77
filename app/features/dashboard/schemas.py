"""
Pydantic schemas for the dashboard summary.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict

from app.features.tasks.models import TaskStatus


class TasksByStatus(BaseModel):
    backlog: int = 0
    # in-progress plus review
    in_progress: int = 0
    review: int = 0
    done: int = 0
    deployed: int = 0
    blocked: int = 0


class TaskDigest(BaseModel):
    id: str
    title: str
    status: TaskStatus
    deadline: Optional[datetime] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DashboardSummary(BaseModel):
    total_projects: int
    total_tasks: int
    tasks_by_status: TasksByStatus
    completed_tasks: int
    in_progress_tasks: int
    upcoming_deadlines: List[TaskDigest]
    recent_activity: List[TaskDigest]
    team_members_count: int

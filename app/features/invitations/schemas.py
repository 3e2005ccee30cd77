"""
Pydantic schemas for team invitations.
"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.features.invitations.models import InvitationStatus
from app.features.teams.models import MembershipRole


class InvitationCreate(BaseModel):
    email: EmailStr
    team_id: str = Field(..., min_length=1)
    role: MembershipRole = MembershipRole.MEMBER

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


class InvitationAccept(BaseModel):
    token: str = Field(..., min_length=1)


class InvitationResponse(BaseModel):
    id: str
    email: str
    team_id: str
    role: str
    status: InvitationStatus
    invited_by_id: str
    token: str
    expires_at: datetime
    accepted_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

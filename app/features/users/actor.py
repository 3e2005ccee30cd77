"""
Immutable per-request view of the authenticated user.

Built once by the identity dependency from the stored user row and its team
memberships; every authorization decision in the request reads from it.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from app.features.teams.models import MembershipRole


@dataclass(frozen=True)
class MembershipSnapshot:
    team_id: str
    team_name: str
    role: str
    role_id: Optional[str]
    permissions: frozenset[str]
    joined_at: Optional[datetime]
    # Owning administrator of the team (its creator for unowned legacy teams)
    tenant_admin_id: Optional[str] = None

    @property
    def is_legacy_admin(self) -> bool:
        return self.role == MembershipRole.ADMIN.value


@dataclass(frozen=True)
class Actor:
    id: str
    email: str
    username: str = ""
    is_admin: bool = False
    is_super_admin: bool = False
    memberships: tuple[MembershipSnapshot, ...] = field(default_factory=tuple)

    @classmethod
    def from_user(cls, user) -> "Actor":
        """Snapshot a User row (memberships and their teams must be loaded)."""
        snapshots = []
        for membership in user.memberships:
            team = membership.team
            tenant_admin_id = None
            if team is not None:
                tenant_admin_id = team.admin_id or team.created_by_id
            snapshots.append(
                MembershipSnapshot(
                    team_id=membership.team_id,
                    team_name=membership.team_name,
                    role=membership.role,
                    role_id=membership.role_id,
                    permissions=frozenset(membership.permissions or []),
                    joined_at=membership.joined_at,
                    tenant_admin_id=tenant_admin_id,
                )
            )
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            is_admin=user.is_admin or user.is_super_admin,
            is_super_admin=user.is_super_admin,
            memberships=tuple(snapshots),
        )

    @property
    def is_privileged(self) -> bool:
        return self.is_admin or self.is_super_admin

    @property
    def team_ids(self) -> frozenset[str]:
        return frozenset(m.team_id for m in self.memberships)

    @property
    def tenant_admin_ids(self) -> frozenset[str]:
        """Administrators whose tenants this actor belongs to through team membership."""
        return frozenset(m.tenant_admin_id for m in self.memberships if m.tenant_admin_id)

    def membership_for(self, team_id: str) -> Optional[MembershipSnapshot]:
        for membership in self.memberships:
            if membership.team_id == team_id:
                return membership
        return None

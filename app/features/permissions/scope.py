"""
Tenant scope resolution.

scope_filter(actor, resource_type) returns a ScopeFilter that restricts
teams, projects, tasks and roles to the actor's tenant. The same object is
used two ways:

- ScopeFilter.apply(stmt) adds the predicate to a SELECT for list endpoints
- ScopeFilter.matches(row) evaluates the predicate on one loaded row for
  single-resource reads and mutations

Both paths are built from the same rules:

- super administrators are unrestricted
- administrators see resources owned by their tenant (admin_id), plus
  unowned legacy rows as configured by ALLOW_UNOWNED_LEGACY_ACCESS
- members see resources attached to teams they belong to, projects they are
  staffed on or created, and tasks assigned to them
"""
import enum
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union

from sqlalchemy import and_, false, or_, select
from sqlalchemy.sql import ColumnElement, Select

from app.core import config
from app.features.permissions.models import Role
from app.features.projects.models import Project, ProjectMember
from app.features.tasks.models import Task
from app.features.teams.models import Team
from app.features.users.actor import Actor
from app.features.users.models import User


class ResourceType(str, enum.Enum):
    TEAM = "team"
    PROJECT = "project"
    TASK = "task"
    ROLE = "role"


# ============================================================================
# Ownership
# ============================================================================

@dataclass(frozen=True)
class Owned:
    admin_id: str


@dataclass(frozen=True)
class Unowned:
    """Legacy row without admin_id."""
    created_by_id: Optional[str]


Ownership = Union[Owned, Unowned]


def ownership_of(resource: Any) -> Ownership:
    """Tag a team, project or role with its ownership variant."""
    admin_id = getattr(resource, "admin_id", None)
    if admin_id:
        return Owned(admin_id)
    return Unowned(getattr(resource, "created_by_id", None))


def admin_owns(actor: Actor, ownership: Ownership) -> bool:
    if isinstance(ownership, Owned):
        return ownership.admin_id == actor.id
    if config.ALLOW_UNOWNED_LEGACY_ACCESS:
        return True
    return ownership.created_by_id is not None and ownership.created_by_id == actor.id


def admin_controls(actor: Actor, ownership: Ownership) -> bool:
    """
    Strict ownership for managing members: unowned rows belong to their
    creator only, whatever ALLOW_UNOWNED_LEGACY_ACCESS says.
    """
    if isinstance(ownership, Owned):
        return ownership.admin_id == actor.id
    return ownership.created_by_id is not None and ownership.created_by_id == actor.id


def _admin_ownership_clause(actor: Actor, model) -> ColumnElement[bool]:
    if config.ALLOW_UNOWNED_LEGACY_ACCESS:
        unowned = model.admin_id.is_(None)
    else:
        unowned = and_(model.admin_id.is_(None), model.created_by_id == actor.id)
    return or_(model.admin_id == actor.id, unowned)


# ============================================================================
# Team helpers
# ============================================================================

def project_team_ids(project: Project) -> frozenset[str]:
    """Team ids of a project, including the legacy singular team_id."""
    ids = {team.id for team in project.teams}
    if project.team_id:
        ids.add(project.team_id)
    return frozenset(ids)


def task_team_ids(task: Task) -> frozenset[str]:
    """Task teams plus the teams of its project."""
    ids = {team.id for team in task.teams}
    if task.project is not None:
        ids |= project_team_ids(task.project)
    return frozenset(ids)


def is_project_member(actor: Actor, project: Project) -> bool:
    """Member of one of the project's teams or staffed on it directly."""
    if actor.team_ids & project_team_ids(project):
        return True
    return any(member.user_id == actor.id for member in project.members)


# ============================================================================
# Per-resource rules
# ============================================================================

def _team_clause(actor: Actor) -> ColumnElement[bool]:
    if actor.is_admin:
        return _admin_ownership_clause(actor, Team)
    return Team.id.in_(sorted(actor.team_ids))


def _team_matches(actor: Actor, team: Team) -> bool:
    if actor.is_admin:
        return admin_owns(actor, ownership_of(team))
    return team.id in actor.team_ids


def _project_clause(actor: Actor) -> ColumnElement[bool]:
    if actor.is_admin:
        return _admin_ownership_clause(actor, Project)
    team_ids = sorted(actor.team_ids)
    return or_(
        Project.created_by_id == actor.id,
        Project.team_id.in_(team_ids),
        Project.teams.any(Team.id.in_(team_ids)),
        Project.members.any(ProjectMember.user_id == actor.id),
    )


def _project_matches(actor: Actor, project: Project) -> bool:
    if actor.is_admin:
        return admin_owns(actor, ownership_of(project))
    return project.created_by_id == actor.id or is_project_member(actor, project)


def _task_clause(actor: Actor) -> ColumnElement[bool]:
    in_scoped_project = Task.project_id.in_(select(Project.id).where(_project_clause(actor)))
    if actor.is_admin:
        return in_scoped_project
    return or_(
        in_scoped_project,
        Task.teams.any(Team.id.in_(sorted(actor.team_ids))),
        Task.assignees.any(User.id == actor.id),
    )


def _task_matches(actor: Actor, task: Task) -> bool:
    project_in_scope = task.project is not None and _project_matches(actor, task.project)
    if actor.is_admin:
        return project_in_scope
    if project_in_scope:
        return True
    if actor.team_ids & {team.id for team in task.teams}:
        return True
    return any(user.id == actor.id for user in task.assignees)


def _role_clause(actor: Actor) -> ColumnElement[bool]:
    if actor.is_admin:
        return Role.admin_id == actor.id
    tenants = actor.tenant_admin_ids
    if not tenants:
        return false()
    return Role.admin_id.in_(sorted(tenants))


def _role_matches(actor: Actor, role: Role) -> bool:
    if actor.is_admin:
        return role.admin_id == actor.id
    return role.admin_id in actor.tenant_admin_ids


_RULES = {
    ResourceType.TEAM: (Team, _team_clause, _team_matches),
    ResourceType.PROJECT: (Project, _project_clause, _project_matches),
    ResourceType.TASK: (Task, _task_clause, _task_matches),
    ResourceType.ROLE: (Role, _role_clause, _role_matches),
}


# ============================================================================
# Public API
# ============================================================================

@dataclass(frozen=True)
class ScopeFilter:
    """Tenant restriction for one actor and one resource type."""
    actor: Actor
    resource_type: ResourceType

    @property
    def unrestricted(self) -> bool:
        return self.actor.is_super_admin

    def clause(self) -> Optional[ColumnElement[bool]]:
        """SQL predicate, or None when the actor is unrestricted."""
        if self.unrestricted:
            return None
        _, build_clause, _ = _RULES[self.resource_type]
        return build_clause(self.actor)

    def apply(self, stmt: Select) -> Select:
        clause = self.clause()
        if clause is None:
            return stmt
        return stmt.where(clause)

    def matches(self, resource: Any) -> bool:
        if self.unrestricted:
            return True
        _, _, evaluate = _RULES[self.resource_type]
        return evaluate(self.actor, resource)

    def matches_all(self, resources: Iterable[Any]) -> bool:
        return all(self.matches(resource) for resource in resources)


def scope_filter(actor: Actor, resource_type: ResourceType) -> ScopeFilter:
    """Build the tenant scope for an actor and resource type."""
    return ScopeFilter(actor=actor, resource_type=ResourceType(resource_type))


def resource_type_of(resource: Any) -> ResourceType:
    for resource_type, (model, _, _) in _RULES.items():
        if isinstance(resource, model):
            return resource_type
    raise TypeError(f"No tenant scope rules for {type(resource).__name__}")

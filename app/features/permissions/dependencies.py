"""
Authorization decision engine and audit logging helpers.

decide(actor, action, context) walks a fixed, ordered rule chain and returns
the first verdict that applies:

1. super administrator                      -> allow
2. target (or a proposed team) out of scope  -> deny
3. administrator owning the tenant           -> allow
4. task assignment: self only                -> allow, anyone else -> deny
5. administrator-only actions                -> deny
6. permission string in a relevant team      -> allow
7. legacy "admin" role in a relevant team    -> allow
8. otherwise                                 -> deny
"""
import enum
from dataclasses import dataclass
from typing import Annotated, Any, Dict, Iterable, Optional

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import Forbidden, NotFound
from app.features.permissions.models import AuditLog, PermissionName, Role
from app.features.permissions.scope import (
    ResourceType,
    admin_controls,
    ownership_of,
    project_team_ids,
    scope_filter,
    task_team_ids,
)
from app.features.projects.models import Project
from app.features.tasks.models import Task
from app.features.teams.models import Team
from app.features.users.actor import Actor
from app.utils import get_logger


log = get_logger(__name__)


class Action(str, enum.Enum):
    CREATE_PROJECT = "create_project"
    VIEW_PROJECT = "view_project"
    EDIT_PROJECT = "edit_project"
    DELETE_PROJECT = "delete_project"
    VIEW_TASK = "view_task"
    CREATE_TASK = "create_task"
    EDIT_TASK = "edit_task"
    DELETE_TASK = "delete_task"
    ASSIGN_TASK = "assign_task"
    VIEW_ROLE = "view_role"
    CREATE_ROLE = "create_role"
    EDIT_ROLE = "edit_role"
    DELETE_ROLE = "delete_role"
    ASSIGN_ROLE = "assign_role"
    SYNC_ROLE_PERMISSIONS = "sync_role_permissions"
    CREATE_TEAM = "create_team"
    MANAGE_TEAM_MEMBERS = "manage_team_members"
    TRANSFER_PROJECT_OWNERSHIP = "transfer_project_ownership"


ADMIN_ONLY_ACTIONS = frozenset({
    Action.CREATE_ROLE,
    Action.ASSIGN_ROLE,
    Action.SYNC_ROLE_PERMISSIONS,
    Action.CREATE_TEAM,
    Action.MANAGE_TEAM_MEMBERS,
    Action.TRANSFER_PROJECT_OWNERSHIP,
})

# Permission strings that grant an action; the first entry is the direct grant.
ACTION_PERMISSIONS: Dict[Action, tuple[str, ...]] = {
    Action.CREATE_PROJECT: (PermissionName.CREATE_PROJECT.value,),
    Action.VIEW_PROJECT: (PermissionName.VIEW_PROJECT.value,),
    Action.EDIT_PROJECT: (PermissionName.EDIT_PROJECT.value,),
    Action.DELETE_PROJECT: (PermissionName.DELETE_PROJECT.value,),
    Action.VIEW_TASK: (PermissionName.VIEW_TASK.value,),
    Action.CREATE_TASK: (PermissionName.CREATE_TASK.value, PermissionName.EDIT_PROJECT.value),
    Action.EDIT_TASK: (PermissionName.EDIT_TASK.value,),
    Action.DELETE_TASK: (PermissionName.DELETE_TASK.value,),
    Action.VIEW_ROLE: (PermissionName.VIEW_ROLE.value,),
    Action.EDIT_ROLE: (PermissionName.EDIT_ROLE.value,),
    Action.DELETE_ROLE: (PermissionName.DELETE_ROLE.value,),
}


# ============================================================================
# Context and verdict
# ============================================================================

@dataclass(frozen=True)
class AuthorizationContext:
    """
    What an action targets.

    resource is the loaded row for actions on existing resources; teams are
    proposed teams for creates and team changes. team_ids are the teams whose
    memberships count towards permission-string and legacy-role rules.
    """
    resource_type: Optional[ResourceType] = None
    resource: Any = None
    teams: tuple[Team, ...] = ()
    team_ids: frozenset[str] = frozenset()
    assignee_ids: frozenset[str] = frozenset()

    @classmethod
    def for_project(
        cls,
        project: Project,
        teams: Iterable[Team] = (),
        assignee_ids: Iterable[str] = (),
    ) -> "AuthorizationContext":
        """Actions on a project, or on tasks about to be created in it."""
        teams = tuple(teams)
        return cls(
            resource_type=ResourceType.PROJECT,
            resource=project,
            teams=teams,
            team_ids=project_team_ids(project) | {team.id for team in teams},
            assignee_ids=frozenset(assignee_ids),
        )

    @classmethod
    def for_task(
        cls,
        task: Task,
        assignee_ids: Iterable[str] = (),
    ) -> "AuthorizationContext":
        return cls(
            resource_type=ResourceType.TASK,
            resource=task,
            team_ids=task_team_ids(task),
            assignee_ids=frozenset(assignee_ids),
        )

    @classmethod
    def for_team(cls, team: Team) -> "AuthorizationContext":
        return cls(resource_type=ResourceType.TEAM, resource=team, team_ids=frozenset({team.id}))

    @classmethod
    def for_role(cls, role: Role, actor: Actor) -> "AuthorizationContext":
        """Roles have no team; the actor's memberships inside the role's tenant apply."""
        team_ids = frozenset(
            m.team_id for m in actor.memberships if m.tenant_admin_id == role.admin_id
        )
        return cls(resource_type=ResourceType.ROLE, resource=role, team_ids=team_ids)

    @classmethod
    def for_new_resource(cls, teams: Iterable[Team] = ()) -> "AuthorizationContext":
        """Creates: every proposed team must be in scope."""
        teams = tuple(teams)
        return cls(teams=teams, team_ids=frozenset(team.id for team in teams))


@dataclass(frozen=True)
class Decision:
    allowed: bool
    rule: str
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


def _allow(rule: str) -> Decision:
    return Decision(True, rule)


def _deny(rule: str, reason: str) -> Decision:
    return Decision(False, rule, reason)


# ============================================================================
# Rule chain
# ============================================================================

def _in_scope(actor: Actor, context: AuthorizationContext) -> bool:
    if context.resource is not None and context.resource_type is not None:
        if not scope_filter(actor, context.resource_type).matches(context.resource):
            return False
    if context.teams:
        if not scope_filter(actor, ResourceType.TEAM).matches_all(context.teams):
            return False
    return True


def _relevant_memberships(actor: Actor, context: AuthorizationContext):
    return [m for m in actor.memberships if m.team_id in context.team_ids]


def decide(actor: Actor, action: Action, context: AuthorizationContext = AuthorizationContext()) -> Decision:
    action = Action(action)

    if actor.is_super_admin:
        return _allow("super_admin")

    if not _in_scope(actor, context):
        return _deny("tenant_scope", "Resource is outside your tenant")

    if actor.is_admin:
        return _allow("tenant_admin")

    if action is Action.ASSIGN_TASK:
        if context.assignee_ids and context.assignee_ids <= {actor.id}:
            return _allow("self_assignment")
        return _deny("assign_requires_admin", "Only administrators can assign tasks to other users")

    if action in ADMIN_ONLY_ACTIONS:
        return _deny("admin_required", "Admin privileges required")

    memberships = _relevant_memberships(actor, context)
    granting = ACTION_PERMISSIONS.get(action, ())
    for membership in memberships:
        if any(permission in membership.permissions for permission in granting):
            return _allow("team_permission")

    for membership in memberships:
        if membership.is_legacy_admin:
            return _allow("legacy_team_admin")

    return _deny("missing_permission", f"You do not have '{action.value}' permission for this resource")


def ensure_allowed(
    actor: Actor,
    action: Action,
    context: AuthorizationContext = AuthorizationContext(),
) -> Decision:
    """Raise Forbidden unless decide() allows the action."""
    decision = decide(actor, action, context)
    log.debug(
        "Authorization actor=%s action=%s rule=%s allowed=%s",
        actor.id, Action(action).value, decision.rule, decision.allowed,
    )
    if not decision.allowed:
        log.info("Denied %s for user %s (%s)", Action(action).value, actor.id, decision.rule)
        raise Forbidden(decision.reason)
    return decision


def ensure_team_owner(actor: Actor, team: Team) -> None:
    """
    Member management on a team requires owning it outright.

    Runs after ensure_allowed; legacy teams are managed only by their creator.
    """
    if actor.is_super_admin:
        return
    if not admin_controls(actor, ownership_of(team)):
        log.info("Team ownership denied on team %s for user %s", team.id, actor.id)
        raise Forbidden("Only the team's owning administrator can manage its members")


def ensure_in_scope(actor: Actor, resource_type: ResourceType, resource: Any, detail: Optional[str] = None) -> None:
    """Tenant scope check for reads: 403 when an existing resource is outside the actor's tenant."""
    if not scope_filter(actor, resource_type).matches(resource):
        log.info("Scope denied %s %s for user %s", resource_type.value, getattr(resource, "id", None), actor.id)
        raise Forbidden(detail or f"Not authorized to access this {resource_type.value}")


# ============================================================================
# Audit Logging
# ============================================================================

def create_audit_log(
    db: AsyncSession,
    actor: Optional[Actor],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    team_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> AuditLog:
    """
    Stage an audit log entry in the caller's session.

    The row is committed together with the mutation it records.
    """
    audit_log = AuditLog(
        user_id=actor.id if actor else None,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        team_id=team_id,
        details=details,
        ip_address=request.client.host if request is not None and request.client else None,
        user_agent=request.headers.get("user-agent") if request is not None else None,
    )
    db.add(audit_log)

    log.info(
        "Audit: user=%s action=%s resource=%s:%s team=%s",
        audit_log.user_id, action, resource_type, resource_id, team_id,
    )
    return audit_log


# ============================================================================
# Dependencies
# ============================================================================

async def get_role_by_id(
    role_id: str,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Role:
    """Get role by ID or raise 404."""
    result = await db.execute(select(Role).where(Role.id == role_id))
    role = result.scalar_one_or_none()

    if role is None:
        raise NotFound("Role")

    return role

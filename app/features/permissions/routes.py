"""
Role and permission management API routes.

Roles belong to one administrator tenant. Assigning a role copies its
permission list into the member's TeamMembership; later role edits reach a
membership only through re-assignment or the explicit /sync route.
"""
from typing import Annotated, List
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import Conflict, Forbidden, NotFound, ValidationError
from app.features.permissions.dependencies import (
    Action,
    AuthorizationContext,
    create_audit_log,
    ensure_allowed,
    ensure_team_owner,
    ensure_in_scope,
    get_role_by_id,
)
from app.features.permissions.models import PERMISSION_CATALOG, Role
from app.features.permissions.schemas import (
    AssignRole,
    MembershipPermissionsResponse,
    MembershipTarget,
    PermissionCatalogResponse,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    SyncRolePermissions,
)
from app.features.permissions.scope import ResourceType, scope_filter
from app.features.teams.dependencies import find_user, get_membership_or_404, get_team_by_id
from app.features.teams.models import MembershipRole, TeamMembership
from app.features.users.actor import Actor
from app.features.users.dependencies import get_current_actor
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def _role_name_taken(db: AsyncSession, admin_id: str, role_name: str, exclude_id: str | None = None) -> bool:
    stmt = select(Role.id).where(Role.admin_id == admin_id, Role.role_name == role_name)
    if exclude_id:
        stmt = stmt.where(Role.id != exclude_id)
    result = await db.execute(stmt)
    return result.first() is not None


async def _resolve_role_owner(db: AsyncSession, actor: Actor, admin_id: str | None) -> str:
    if not admin_id or admin_id == actor.id:
        return actor.id
    if not actor.is_super_admin:
        raise Forbidden("Only super administrators can create roles for another administrator")
    result = await db.execute(select(User).where(User.id == admin_id))
    owner = result.scalar_one_or_none()
    if owner is None or not owner.is_admin:
        raise ValidationError("admin_id must reference an administrator")
    return owner.id


async def _load_target_membership(
    db: AsyncSession,
    actor: Actor,
    action: Action,
    target: MembershipTarget,
) -> tuple[User, TeamMembership]:
    """Resolve (user, team) for an assignment and check team ownership."""
    team = await get_team_by_id(target.team_id, db)
    ensure_allowed(actor, action, AuthorizationContext.for_team(team))
    ensure_team_owner(actor, team)
    user = await find_user(db, target.user_id, target.email)
    membership = await get_membership_or_404(db, user.id, team.id)
    return user, membership


def _membership_response(user: User, membership: TeamMembership) -> MembershipPermissionsResponse:
    return MembershipPermissionsResponse(
        user_id=user.id,
        team_id=membership.team_id,
        role_id=membership.role_id,
        role=membership.role,
        permissions=list(membership.permissions or []),
    )


# ============================================================================
# Permission Catalog
# ============================================================================

@router.get("/permissions", response_model=PermissionCatalogResponse)
async def list_permissions(
    actor: Annotated[Actor, Depends(get_current_actor)]
):
    """Return the fixed permission catalog."""
    return PermissionCatalogResponse(permissions=list(PERMISSION_CATALOG))


# ============================================================================
# Role Routes
# ============================================================================

@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    payload: RoleCreate,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a role in the actor's tenant (administrators only)."""
    ensure_allowed(actor, Action.CREATE_ROLE)
    owner_id = await _resolve_role_owner(db, actor, payload.admin_id)

    if await _role_name_taken(db, owner_id, payload.role_name):
        raise Conflict("Role name already exists")

    role = Role(
        role_name=payload.role_name,
        permissions=payload.permissions,
        admin_id=owner_id,
        created_by_id=actor.id,
    )
    db.add(role)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Role name already exists")
    create_audit_log(
        db, actor, "create", "role",
        resource_id=role.id,
        details={"role_name": role.role_name, "permissions": role.permissions},
        request=request,
    )
    await db.commit()
    await db.refresh(role)
    return role


@router.get("", response_model=List[RoleResponse])
async def list_roles(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List roles of the actor's tenant (all roles for super administrators)."""
    stmt = scope_filter(actor, ResourceType.ROLE).apply(select(Role)).order_by(Role.role_name)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role: Annotated[Role, Depends(get_role_by_id)],
    actor: Annotated[Actor, Depends(get_current_actor)]
):
    """Get one role."""
    ensure_allowed(actor, Action.VIEW_ROLE, AuthorizationContext.for_role(role, actor))
    return role


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    payload: RoleUpdate,
    request: Request,
    role: Annotated[Role, Depends(get_role_by_id)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Rename a role and/or replace its permission set.

    Existing memberships keep their permission snapshot.
    """
    ensure_allowed(actor, Action.EDIT_ROLE, AuthorizationContext.for_role(role, actor))

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "role_name" in changes and changes["role_name"] != role.role_name:
        if await _role_name_taken(db, role.admin_id, changes["role_name"], exclude_id=role.id):
            raise Conflict("Role name already exists")
        role.role_name = changes["role_name"]
    if "permissions" in changes:
        role.permissions = changes["permissions"]

    create_audit_log(db, actor, "update", "role", resource_id=role.id, details=changes, request=request)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Role name already exists")
    await db.refresh(role)
    return role


@router.delete("/{role_id}")
async def delete_role(
    request: Request,
    role: Annotated[Role, Depends(get_role_by_id)],
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a role. Permissions already copied into memberships are kept."""
    ensure_allowed(actor, Action.DELETE_ROLE, AuthorizationContext.for_role(role, actor))

    create_audit_log(
        db, actor, "delete", "role",
        resource_id=role.id,
        details={"role_name": role.role_name},
        request=request,
    )
    await db.delete(role)
    await db.commit()
    return {"message": "Role deleted"}


# ============================================================================
# Assignment Routes
# ============================================================================

@router.post("/assign", response_model=MembershipPermissionsResponse)
async def assign_role(
    payload: AssignRole,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Assign a role to a team member.

    The role's permissions are copied into the membership and the legacy
    role field collapses to "member".
    """
    role = await get_role_by_id(payload.role_id, db)
    ensure_in_scope(actor, ResourceType.ROLE, role, "Not authorized to use this role")
    user, membership = await _load_target_membership(db, actor, Action.ASSIGN_ROLE, payload)

    membership.role_id = role.id
    membership.permissions = list(role.permissions)
    membership.role = MembershipRole.MEMBER.value

    create_audit_log(
        db, actor, "assign", "role",
        resource_id=role.id, team_id=membership.team_id,
        details={"user_id": user.id, "permissions": membership.permissions},
        request=request,
    )
    await db.commit()
    return _membership_response(user, membership)


@router.post("/sync", response_model=MembershipPermissionsResponse)
async def sync_role_permissions(
    payload: SyncRolePermissions,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Re-copy the current permissions of a member's role into their membership."""
    user, membership = await _load_target_membership(db, actor, Action.SYNC_ROLE_PERMISSIONS, payload)

    if not membership.role_id:
        raise ValidationError("Membership has no assigned role")
    result = await db.execute(select(Role).where(Role.id == membership.role_id))
    role = result.scalar_one_or_none()
    if role is None:
        raise NotFound("Role")

    previous = list(membership.permissions or [])
    membership.permissions = list(role.permissions)

    create_audit_log(
        db, actor, "sync", "role",
        resource_id=role.id, team_id=membership.team_id,
        details={"user_id": user.id, "previous": previous, "permissions": membership.permissions},
        request=request,
    )
    await db.commit()
    return _membership_response(user, membership)

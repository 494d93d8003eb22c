"""Roles API router."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from taskgate.core.audit import AuditAction, EntityType, audited, path_param
from taskgate.core.permissions import P
from taskgate.core.security import Identity, RequirePermission, get_current_identity
from taskgate.db.session import get_db
from taskgate.schemas.schemas import (
    MessageResponse, RoleCreate, RoleOut, RolePermissionsUpdate, RoleUpdate,
)
from taskgate.services.role_service import role_service

router = APIRouter(prefix="/roles", tags=["roles"])

_role_id = path_param("role_id")


def _role_out(role, user_count=None) -> RoleOut:
    return RoleOut(
        id=role.id,
        name=role.name,
        description=role.description,
        is_system=role.is_system,
        permissions=role.permissions,
        user_count=user_count,
        created_at=role.created_at,
    )


@router.get("/")
async def list_roles(
    db: Session = Depends(get_db),
    _: Identity = Depends(RequirePermission(P.VIEW_ROLES)),
):
    """List roles with the number of users holding each."""
    return [_role_out(row["role"], row["user_count"]) for row in role_service.list_roles(db)]


@router.post("/", response_model=RoleOut, status_code=201)
@audited(entity_type=EntityType.ROLE, success_status=201,
         get_after_state=lambda r: {"name": r.name, "permissions": r.permissions})
async def create_role(
    request: Request,
    body: RoleCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Create a custom role."""
    RequirePermission(P.CREATE_ROLES).check(db, identity)
    role = role_service.create(db, body.name, body.description, body.permissions)
    return _role_out(role, 0)


@router.get("/{role_id}", response_model=RoleOut)
async def get_role(
    role_id: int,
    db: Session = Depends(get_db),
    _: Identity = Depends(RequirePermission(P.VIEW_ROLES)),
):
    return _role_out(role_service.get(db, role_id))


@router.put("/{role_id}", response_model=RoleOut)
@audited(entity_type=EntityType.ROLE, get_entity_id=_role_id)
async def update_role(
    request: Request,
    role_id: int,
    body: RoleUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Update a role's name, description or permissions."""
    RequirePermission(P.EDIT_ROLES).check(db, identity)
    if body.permissions is not None:
        # Changing the permission set is its own capability.
        RequirePermission(P.ASSIGN_PERMISSIONS).check(db, identity)
    role = role_service.update(db, role_id, body.name, body.description, body.permissions)
    return _role_out(role)


@router.put("/{role_id}/permissions", response_model=RoleOut)
@audited(
    action=AuditAction.GRANT_PERMISSION, entity_type=EntityType.ROLE, get_entity_id=_role_id,
    get_after_state=lambda r: {"permissions": r.permissions},
)
async def set_role_permissions(
    request: Request,
    role_id: int,
    body: RolePermissionsUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Replace a role's whole permission set."""
    RequirePermission(P.ASSIGN_PERMISSIONS).check(db, identity)
    role = role_service.set_permissions(db, role_id, body.permissions)
    return _role_out(role)


@router.delete("/{role_id}", response_model=MessageResponse)
@audited(entity_type=EntityType.ROLE, get_entity_id=_role_id)
async def delete_role(
    request: Request,
    role_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Delete a custom role and its assignments."""
    RequirePermission(P.DELETE_ROLES).check(db, identity)
    role_service.delete(db, role_id)
    return MessageResponse(message="Role deleted")

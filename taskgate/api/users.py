"""User role assignment API router."""

from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from taskgate.core.audit import AuditAction, EntityType, audited, path_param
from taskgate.core.permissions import P
from taskgate.core.security import Identity, RequirePermission, get_current_identity
from taskgate.db.session import get_db
from taskgate.schemas.schemas import (
    MessageResponse, MyPermissionsOut, RoleAssignmentCreate, RoleAssignmentOut,
)
from taskgate.services.permission_service import permission_service
from taskgate.services.role_service import role_service

router = APIRouter(tags=["users"])


@router.get("/me/permissions", response_model=MyPermissionsOut)
async def my_permissions(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Effective permissions of the caller, for client-side gating."""
    return MyPermissionsOut(
        user_id=identity.user_id,
        permissions=sorted(permission_service.get_user_permissions(db, identity.user_id)),
        roles=[r.name for r in permission_service.get_user_roles(db, identity.user_id)],
    )


@router.get("/users/{user_id}/roles", response_model=List[RoleAssignmentOut])
async def list_user_roles(
    user_id: int,
    db: Session = Depends(get_db),
    _: Identity = Depends(RequirePermission(P.VIEW_ROLES)),
):
    return role_service.list_assignments(db, user_id)


@router.post("/users/{user_id}/roles", response_model=RoleAssignmentOut, status_code=201)
@audited(
    action=AuditAction.ASSIGN_ROLE, entity_type=EntityType.USER,
    get_entity_id=path_param("user_id"), success_status=201,
    get_metadata=lambda request, result: {"role_id": getattr(result, "role_id", None)},
)
async def grant_role(
    request: Request,
    user_id: int,
    body: RoleAssignmentCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Assign a role to a user. Granting a held role is a no-op."""
    RequirePermission(P.MANAGE_USER_ROLES).check(db, identity)
    return role_service.grant(db, user_id, body.role_id, assigned_by=identity.user_id)


@router.delete("/users/{user_id}/roles/{role_id}", response_model=MessageResponse)
@audited(
    action=AuditAction.REMOVE_ROLE, entity_type=EntityType.USER,
    get_entity_id=path_param("user_id"),
    get_metadata=lambda request, result: {"role_id": request.path_params.get("role_id")},
)
async def revoke_role(
    request: Request,
    user_id: int,
    role_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Remove a role from a user."""
    RequirePermission(P.MANAGE_USER_ROLES).check(db, identity)
    removed = role_service.revoke(db, user_id, role_id)
    return MessageResponse(message="Role removed" if removed else "Role was not assigned")

"""Permission catalog API router."""

from fastapi import APIRouter, Depends

from taskgate.core.permissions import PERMISSIONS, P, by_category
from taskgate.core.security import RequirePermission
from taskgate.schemas.schemas import PermissionCatalogOut, PermissionOut

router = APIRouter(prefix="/permissions", tags=["permissions"])


def _out(perm) -> PermissionOut:
    return PermissionOut(key=perm.key, description=perm.description, category=perm.category)


@router.get("/", response_model=PermissionCatalogOut)
async def list_permissions(_=Depends(RequirePermission(P.VIEW_PERMISSIONS))):
    """The full catalog, flat and grouped by category."""
    return PermissionCatalogOut(
        permissions=[_out(p) for p in PERMISSIONS],
        categorized={cat: [_out(p) for p in perms] for cat, perms in by_category().items()},
    )

"""Permission evaluator: resolves what a user may do."""

import logging
from typing import FrozenSet, List

from sqlalchemy.orm import Session

from taskgate.core.legacy_roles import legacy_permissions
from taskgate.core.permissions import PERMISSION_KEYS, is_known
from taskgate.models.role import Role, RoleAssignment
from taskgate.models.user import User
from taskgate.services.cache_service import permission_cache

logger = logging.getLogger("taskgate.permissions")


class PermissionService:
    """Unions permissions across a user's roles and their legacy role.

    Holds no state between calls, so concurrent evaluations for different
    users (or the same user) need no coordination.
    """

    @staticmethod
    def get_user_roles(db: Session, user_id: int) -> List[Role]:
        """Roles assigned to a user, by name."""
        return (
            db.query(Role)
            .join(RoleAssignment, RoleAssignment.role_id == Role.id)
            .filter(RoleAssignment.user_id == user_id)
            .order_by(Role.name)
            .all()
        )

    @staticmethod
    def get_user_permissions(db: Session, user_id: int) -> FrozenSet[str]:
        """Effective permission set; empty for unknown users."""
        cached = permission_cache.get(user_id)
        if cached is not None:
            return cached

        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            return frozenset()

        granted = set(legacy_permissions(user.legacy_role))
        for role in PermissionService.get_user_roles(db, user_id):
            granted.update(role.permissions)

        # Roles are validated on write; intersecting keeps a hand-edited row harmless.
        effective = frozenset(granted & PERMISSION_KEYS)
        permission_cache.set(user_id, effective)
        return effective

    @staticmethod
    def has_permission(db: Session, user_id: int, key: str) -> bool:
        """True if the user holds ``key``. Unknown keys and users are simply False."""
        if not is_known(key):
            logger.debug("permission check for unknown key %r", key)
            return False
        return key in PermissionService.get_user_permissions(db, user_id)


permission_service = PermissionService()

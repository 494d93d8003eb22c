"""Role service: role CRUD, permission sets, and user role assignments."""

import logging
from typing import Dict, Iterable, List, Optional, Any

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taskgate.core.exceptions import (
    ResourceConflictError, ResourceNotFoundError, ValidationError,
)
from taskgate.core.permissions import unknown_keys
from taskgate.models.role import Role, RoleAssignment
from taskgate.models.user import User
from taskgate.services.cache_service import permission_cache

logger = logging.getLogger("taskgate.roles")


def _validated_keys(keys: Iterable[str]) -> List[str]:
    keys = list(keys)
    unknown = unknown_keys(keys)
    if unknown:
        raise ValidationError(f"Unknown permission(s): {', '.join(unknown)}")
    return sorted(set(keys))


class RoleService:
    """Manages roles and who holds them.

    Every write path validates permission keys against the catalog, so a
    role's permission set can never reference a key the catalog lacks.
    """

    @staticmethod
    def create(
        db: Session,
        name: str,
        description: Optional[str] = None,
        permissions: Iterable[str] = (),
        is_system: bool = False,
    ) -> Role:
        """Create a role. Raises ResourceConflictError on a duplicate name."""
        keys = _validated_keys(permissions)
        if db.query(Role).filter(Role.name == name).first():
            raise ResourceConflictError(f"Role '{name}' already exists")

        role = Role(name=name, description=description, is_system=is_system)
        role.permissions = keys
        db.add(role)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race with a concurrent create of the same name.
            db.rollback()
            raise ResourceConflictError(f"Role '{name}' already exists")
        db.refresh(role)
        logger.info("role created: %s (%s permissions)", name, len(keys))
        return role

    @staticmethod
    def get(db: Session, role_id: int) -> Role:
        role = db.query(Role).filter(Role.id == role_id).first()
        if not role:
            raise ResourceNotFoundError(f"Role {role_id} not found")
        return role

    @staticmethod
    def list_roles(db: Session) -> List[Dict[str, Any]]:
        """All roles with the number of users holding each."""
        rows = (
            db.query(Role, func.count(RoleAssignment.id))
            .outerjoin(RoleAssignment, RoleAssignment.role_id == Role.id)
            .group_by(Role.id)
            .order_by(Role.name)
            .all()
        )
        return [{"role": role, "user_count": count} for role, count in rows]

    @staticmethod
    def update(
        db: Session,
        role_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        permissions: Optional[Iterable[str]] = None,
    ) -> Role:
        """Update a role. System roles keep their name; everything else may change."""
        role = RoleService.get(db, role_id)

        if name is not None and name != role.name:
            if role.is_system:
                raise ValidationError("Cannot rename system roles")
            if db.query(Role).filter(Role.name == name, Role.id != role_id).first():
                raise ResourceConflictError(f"Role '{name}' already exists")
            role.name = name
        if description is not None:
            role.description = description
        if permissions is not None:
            role.permissions = _validated_keys(permissions)

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ResourceConflictError(f"Role '{name}' already exists")
        db.refresh(role)
        if permissions is not None:
            permission_cache.invalidate_all()
        return role

    @staticmethod
    def set_permissions(db: Session, role_id: int, permissions: Iterable[str]) -> Role:
        """Replace a role's whole permission set."""
        keys = _validated_keys(permissions)
        role = RoleService.get(db, role_id)
        role.permissions = keys
        db.commit()
        db.refresh(role)
        permission_cache.invalidate_all()
        logger.info("role %s permissions replaced (%s keys)", role.name, len(keys))
        return role

    @staticmethod
    def delete(db: Session, role_id: int) -> None:
        """Delete a non-system role together with its assignments."""
        role = RoleService.get(db, role_id)
        if role.is_system:
            raise ValidationError("Cannot delete system roles")

        affected = [
            user_id for (user_id,) in
            db.query(RoleAssignment.user_id).filter(RoleAssignment.role_id == role_id).all()
        ]
        db.query(RoleAssignment).filter(RoleAssignment.role_id == role_id).delete(
            synchronize_session=False
        )
        name = role.name
        db.delete(role)
        db.commit()
        for user_id in affected:
            permission_cache.invalidate_user(user_id)
        logger.info("role deleted: %s (%s assignments removed)", name, len(affected))

    # ---- Assignments ----

    @staticmethod
    def grant(
        db: Session,
        user_id: int,
        role_id: int,
        assigned_by: Optional[int] = None,
    ) -> RoleAssignment:
        """Assign a role to a user. Re-granting returns the existing assignment."""
        if not db.query(User).filter(User.id == user_id).first():
            raise ResourceNotFoundError(f"User {user_id} not found")
        RoleService.get(db, role_id)

        existing = RoleService._assignment(db, user_id, role_id)
        if existing:
            return existing

        assignment = RoleAssignment(user_id=user_id, role_id=role_id, assigned_by=assigned_by)
        db.add(assignment)
        try:
            db.commit()
        except IntegrityError:
            # A concurrent grant won; the unique constraint kept it single.
            db.rollback()
            return RoleService._assignment(db, user_id, role_id)
        db.refresh(assignment)
        permission_cache.invalidate_user(user_id)
        return assignment

    @staticmethod
    def revoke(db: Session, user_id: int, role_id: int) -> bool:
        """Remove a role from a user. Returns False when there was nothing to remove."""
        removed = (
            db.query(RoleAssignment)
            .filter(RoleAssignment.user_id == user_id, RoleAssignment.role_id == role_id)
            .delete(synchronize_session=False)
        )
        db.commit()
        if removed:
            permission_cache.invalidate_user(user_id)
        return bool(removed)

    @staticmethod
    def list_assignments(db: Session, user_id: int) -> List[RoleAssignment]:
        return (
            db.query(RoleAssignment)
            .filter(RoleAssignment.user_id == user_id)
            .order_by(RoleAssignment.assigned_at)
            .all()
        )

    @staticmethod
    def _assignment(db: Session, user_id: int, role_id: int) -> Optional[RoleAssignment]:
        return (
            db.query(RoleAssignment)
            .filter(RoleAssignment.user_id == user_id, RoleAssignment.role_id == role_id)
            .first()
        )


role_service = RoleService()

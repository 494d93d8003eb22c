"""Seed the administrator user from env vars."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from taskgate.core.config import settings
from taskgate.core.legacy_roles import LegacyRole
from taskgate.db.seeds.seed_roles import ADMINISTRATOR
from taskgate.models.role import Role
from taskgate.models.user import User
from taskgate.services.role_service import role_service

logger = logging.getLogger("taskgate.seeds")


def seed_admin(db: Session) -> Optional[User]:
    """Create the admin user if missing and make sure it holds the Administrator role."""
    admin_role = db.query(Role).filter(Role.name == ADMINISTRATOR).first()
    if not admin_role:
        logger.warning("%s role not found; run seed_roles first", ADMINISTRATOR)
        return None

    admin = db.query(User).filter(User.email == settings.ADMIN_EMAIL).first()
    if admin is None:
        admin = User(
            email=settings.ADMIN_EMAIL,
            full_name="Administrator",
            legacy_role=LegacyRole.employee,
            tenant_id=settings.ADMIN_TENANT_ID,
        )
        db.add(admin)
        db.commit()
        db.refresh(admin)
        logger.info("created admin user %s", settings.ADMIN_EMAIL)

    role_service.grant(db, admin.id, admin_role.id)
    return admin

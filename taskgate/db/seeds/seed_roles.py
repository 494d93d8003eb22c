"""Seed the system roles into the database."""

import logging

from sqlalchemy.orm import Session

from taskgate.core.legacy_roles import CUSTOMER_PERMISSIONS, EMPLOYEE_PERMISSIONS
from taskgate.core.permissions import P, PERMISSION_KEYS
from taskgate.models.role import Role

logger = logging.getLogger("taskgate.seeds")

ADMINISTRATOR = "Administrator"

SYSTEM_ROLES = [
    {
        "name": ADMINISTRATOR,
        "description": "Full access to every function",
        "permissions": sorted(PERMISSION_KEYS),
    },
    {
        "name": "Employee",
        "description": "Staff member working on client tasks",
        "permissions": sorted(EMPLOYEE_PERMISSIONS),
    },
    {
        "name": "Customer",
        "description": "Client submitting their own tasks",
        "permissions": sorted(CUSTOMER_PERMISSIONS),
    },
    {
        "name": "Viewer",
        "description": "Read-only access to tasks",
        "permissions": [P.VIEW_DASHBOARD, P.VIEW_TASKS],
    },
]


def seed_roles(db: Session) -> int:
    """Insert the system roles that don't exist yet. Returns how many were added."""
    added = 0
    for data in SYSTEM_ROLES:
        existing = db.query(Role).filter(Role.name == data["name"]).first()
        if existing:
            continue
        role = Role(name=data["name"], description=data["description"], is_system=True)
        role.permissions = data["permissions"]
        db.add(role)
        added += 1

    db.commit()
    logger.info("seeded %s of %s system roles", added, len(SYSTEM_ROLES))
    return added

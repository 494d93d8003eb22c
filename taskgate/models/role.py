"""Role and role-assignment models for RBAC."""

import json
import logging
from typing import List

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint, func
)
from sqlalchemy.orm import relationship
from taskgate.db.base import Base

logger = logging.getLogger("taskgate.permissions")


class Role(Base):
    """Named bundle of catalog permissions.

    System roles are seeded at setup and keep their names forever; their
    permission sets stay editable.
    """
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(String(255), nullable=True)
    is_system = Column(Boolean, default=False, nullable=False)
    permissions_json = Column(Text, nullable=False, default="[]")  # JSON list of catalog keys
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    assignments = relationship(
        "RoleAssignment",
        back_populates="role",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def permissions(self) -> List[str]:
        try:
            keys = json.loads(self.permissions_json or "[]")
        except ValueError:
            logger.warning("role %s has undecodable permissions_json; treating as empty", self.id)
            return []
        if not isinstance(keys, list):
            logger.warning("role %s permissions_json is not a list; treating as empty", self.id)
            return []
        return sorted(str(key) for key in keys)

    @permissions.setter
    def permissions(self, keys) -> None:
        self.permissions_json = json.dumps(sorted(set(keys)))


class RoleAssignment(Base):
    """Grant of one role to one user."""
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_at = Column(DateTime, server_default=func.now(), nullable=False)

    role = relationship("Role", back_populates="assignments")
    user = relationship("User", back_populates="role_assignments", foreign_keys=[user_id])

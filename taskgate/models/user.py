"""User model.

Users are owned by the identity side of the application; this service only
reads them to resolve the legacy role and tenant, and hangs role assignments
off them.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, func
from sqlalchemy.orm import relationship
from taskgate.db.base import Base
from taskgate.core.legacy_roles import LegacyRole


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    legacy_role = Column(Enum(LegacyRole), nullable=True)
    tenant_id = Column(Integer, nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    role_assignments = relationship(
        "RoleAssignment",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        foreign_keys="[RoleAssignment.user_id]",
    )

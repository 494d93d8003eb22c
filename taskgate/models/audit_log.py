"""Audit log model: append-only."""

from sqlalchemy import Column, Integer, String, Text, DateTime, func
from taskgate.db.base import Base


class AuditLog(Base):
    """Immutable audit trail of observed operations, successful or rejected.

    This table is APPEND-ONLY: no UPDATE or DELETE operations should ever
    be performed on it (enforced at application level). Rows may be committed
    out of order; display ordering uses ``occurred_at``.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(String(100), nullable=False, index=True)  # e.g. "UPDATE", "SUBMIT"
    entity_type = Column(String(50), nullable=False, index=True)  # task, role, user, ...
    entity_id = Column(String(100), nullable=True, index=True)
    # No FK: records outlive the users they mention.
    actor_user_id = Column(Integer, nullable=True, index=True)
    actor_email = Column(String(255), nullable=False)
    source_ip = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    changes_json = Column(Text, nullable=True)
    metadata_json = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="success")  # success/failed/error
    error_message = Column(Text, nullable=True)
    occurred_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

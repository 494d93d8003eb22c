"""Task and task message models."""

import enum

from sqlalchemy import (
    CheckConstraint, Column, Integer, String, Text, DateTime, ForeignKey, Enum, func
)
from sqlalchemy.orm import relationship
from taskgate.db.base import Base
from taskgate.core.traffic_light import TrafficLight


class TaskStatus(str, enum.Enum):
    open = "open"
    submitted = "submitted"
    completed = "completed"


class Task(Base):
    """Unit of work exchanged between a tenant (client) and the managing side.

    ``status`` only changes through the state machine in
    ``taskgate.services.task_service``. ``traffic_light`` is a cache refreshed
    by a background job and must not be read for display.
    """
    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint(
            "(status = 'completed' AND completed_at IS NOT NULL AND completed_by IS NOT NULL)"
            " OR (status != 'completed' AND completed_at IS NULL AND completed_by IS NULL)",
            name="ck_tasks_completion_metadata",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Enum(TaskStatus), default=TaskStatus.open, nullable=False, index=True)
    traffic_light = Column(Enum(TrafficLight), default=TrafficLight.green, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    completed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    messages = relationship(
        "TaskMessage",
        back_populates="task",
        order_by="TaskMessage.created_at",
        lazy="selectin",
    )


class TaskMessage(Base):
    """Comment attached to a task; return reasons are stored here."""
    __tablename__ = "task_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    task = relationship("Task", back_populates="messages")

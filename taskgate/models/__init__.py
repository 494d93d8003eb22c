"""Models package: import all models so metadata.create_all can discover them."""

from taskgate.models.user import User
from taskgate.models.role import Role, RoleAssignment
from taskgate.models.task import Task, TaskMessage, TaskStatus
from taskgate.models.audit_log import AuditLog

__all__ = [
    "User", "Role", "RoleAssignment",
    "Task", "TaskMessage", "TaskStatus",
    "AuditLog",
]

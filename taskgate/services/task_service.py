"""Task service: creation, tenant-scoped reads, and the status state machine.

    open ──submit──▶ submitted ──complete──▶ completed
      ▲                  │
      └─────return───────┘

Each transition is guarded (identity, tenant, specific permission, current
status) and then written as one conditional UPDATE keyed on the status the
guards saw. If another writer moved the task in between, the UPDATE matches
no row and the caller gets a ResourceConflictError; nothing is retried here.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from taskgate.core.exceptions import (
    AuthenticationError, AuthorizationError, InternalError, InvalidTransitionError,
    ResourceConflictError, ResourceNotFoundError, ValidationError,
)
from taskgate.core.permissions import P
from taskgate.core.security import Identity
from taskgate.core.traffic_light import age_in_days, light_for, sort_by_urgency, traffic_light
from taskgate.models.task import Task, TaskMessage, TaskStatus
from taskgate.services.permission_service import permission_service

logger = logging.getLogger("taskgate.tasks")

RETURN_MESSAGE_PREFIX = "Returned to client: "


# ---- Domain states ----
# A task's status and its completion metadata travel together: only the
# Completed variant can carry them, and rows are written from these variants.

@dataclass(frozen=True)
class OpenTask:
    status = TaskStatus.open


@dataclass(frozen=True)
class SubmittedTask:
    status = TaskStatus.submitted


@dataclass(frozen=True)
class CompletedTask:
    at: datetime
    by: int
    status = TaskStatus.completed


TaskState = Union[OpenTask, SubmittedTask, CompletedTask]


def task_state(task: Task) -> TaskState:
    """Read a row into its domain variant."""
    status = TaskStatus(task.status)
    if status is TaskStatus.completed:
        if task.completed_at is None or task.completed_by is None:
            raise InternalError(f"Task {task.id} is completed without completion metadata")
        return CompletedTask(at=task.completed_at, by=task.completed_by)
    if status is TaskStatus.submitted:
        return SubmittedTask()
    return OpenTask()


def state_columns(state: TaskState) -> Dict[Any, Any]:
    """Column values that persist ``state``, completion metadata included."""
    if isinstance(state, CompletedTask):
        return {Task.status: state.status, Task.completed_at: state.at, Task.completed_by: state.by}
    return {Task.status: state.status, Task.completed_at: None, Task.completed_by: None}


@dataclass(frozen=True)
class Transition:
    name: str
    source: TaskStatus
    target: TaskStatus
    permission: str


SUBMIT = Transition("submit", TaskStatus.open, TaskStatus.submitted, P.SUBMIT_TASK)
COMPLETE = Transition("complete", TaskStatus.submitted, TaskStatus.completed, P.COMPLETE_TASK)
RETURN = Transition("return", TaskStatus.submitted, TaskStatus.open, P.RETURN_TASK)

TRANSITIONS = {t.name: t for t in (SUBMIT, COMPLETE, RETURN)}


class TaskService:
    """Guards and executes task operations on behalf of an identity."""

    # ---- Guards ----

    @staticmethod
    def _require_identity(identity: Optional[Identity]) -> Identity:
        if identity is None:
            raise AuthenticationError("Not authenticated")
        return identity

    @staticmethod
    def _load(db: Session, task_id: int) -> Task:
        task = db.query(Task).filter(Task.id == task_id).first()
        if not task:
            raise ResourceNotFoundError(f"Task {task_id} not found")
        return task

    @staticmethod
    def _check_tenant(db: Session, identity: Identity, task: Task) -> None:
        if task.tenant_id == identity.tenant_id:
            return
        if permission_service.has_permission(db, identity.user_id, P.VIEW_ALL_TASKS):
            return
        raise AuthorizationError("Access denied")

    @staticmethod
    def _check_permission(db: Session, identity: Identity, permission: str) -> None:
        if not permission_service.has_permission(db, identity.user_id, permission):
            raise AuthorizationError(f"Missing permission '{permission}'")

    # ---- Writes ----

    @staticmethod
    def _write(
        db: Session,
        task_id: int,
        expected: TaskStatus,
        state: TaskState,
        message: Optional[TaskMessage] = None,
    ) -> None:
        """Compare-and-set the task from ``expected`` to ``state`` in one transaction."""
        values = state_columns(state)
        values[Task.updated_at] = datetime.now(timezone.utc)
        try:
            matched = (
                db.query(Task)
                .filter(Task.id == task_id, Task.status == expected)
                .update(values, synchronize_session=False)
            )
            if matched != 1:
                db.rollback()
                raise ResourceConflictError(
                    f"Task {task_id} was changed by someone else; reload and try again"
                )
            if message is not None:
                db.add(message)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("task %s write failed", task_id)
            raise InternalError("Could not update task")

    @staticmethod
    def transition(
        db: Session,
        identity: Optional[Identity],
        task_id: int,
        name: str,
        reason: Optional[str] = None,
    ) -> Task:
        """Run a named transition (``submit``, ``complete`` or ``return``)."""
        if name not in TRANSITIONS:
            raise ValidationError(f"Unknown transition '{name}'")
        t = TRANSITIONS[name]

        identity = TaskService._require_identity(identity)
        task = TaskService._load(db, task_id)
        TaskService._check_tenant(db, identity, task)
        TaskService._check_permission(db, identity, t.permission)

        current = TaskStatus(task.status)
        if current is not t.source:
            raise InvalidTransitionError(current.value, t.target.value)

        message = None
        if t is RETURN:
            reason = (reason or "").strip()
            if not reason:
                raise ValidationError("A reason is required to return a task")
            message = TaskMessage(
                task_id=task_id,
                user_id=identity.user_id,
                content=f"{RETURN_MESSAGE_PREFIX}{reason}",
            )

        if t.target is TaskStatus.completed:
            state: TaskState = CompletedTask(at=datetime.now(timezone.utc), by=identity.user_id)
        elif t.target is TaskStatus.submitted:
            state = SubmittedTask()
        else:
            state = OpenTask()

        TaskService._write(db, task_id, current, state, message)
        logger.info("task %s: %s -> %s by user %s", task_id, current.value, t.target.value, identity.user_id)
        db.expire_all()
        return TaskService._load(db, task_id)

    @staticmethod
    def submit(db: Session, identity: Optional[Identity], task_id: int) -> Task:
        return TaskService.transition(db, identity, task_id, "submit")

    @staticmethod
    def complete(db: Session, identity: Optional[Identity], task_id: int) -> Task:
        return TaskService.transition(db, identity, task_id, "complete")

    @staticmethod
    def return_task(db: Session, identity: Optional[Identity], task_id: int, reason: str) -> Task:
        return TaskService.transition(db, identity, task_id, "return", reason=reason)

    @staticmethod
    def override_status(
        db: Session,
        identity: Optional[Identity],
        task_id: int,
        status: str,
    ) -> Task:
        """Administrative status change; bypasses the transition graph only."""
        identity = TaskService._require_identity(identity)
        task = TaskService._load(db, task_id)
        TaskService._check_tenant(db, identity, task)
        TaskService._check_permission(db, identity, P.EDIT_TASK)

        try:
            target = TaskStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown task status '{status}'")

        current = TaskStatus(task.status)
        if target is current:
            return task

        if target is TaskStatus.completed:
            state: TaskState = CompletedTask(at=datetime.now(timezone.utc), by=identity.user_id)
        elif target is TaskStatus.submitted:
            state = SubmittedTask()
        else:
            state = OpenTask()

        TaskService._write(db, task_id, current, state)
        logger.warning(
            "task %s: status overridden %s -> %s by user %s",
            task_id, current.value, target.value, identity.user_id,
        )
        db.expire_all()
        return TaskService._load(db, task_id)

    # ---- Create / read ----

    @staticmethod
    def create(
        db: Session,
        identity: Optional[Identity],
        title: str,
        description: Optional[str] = None,
        tenant_id: Optional[int] = None,
    ) -> Task:
        """Create an open task, by default in the caller's own tenant."""
        identity = TaskService._require_identity(identity)
        TaskService._check_permission(db, identity, P.CREATE_TASK)

        if tenant_id is not None and tenant_id != identity.tenant_id:
            if not permission_service.has_permission(db, identity.user_id, P.VIEW_ALL_TASKS):
                raise AuthorizationError("Cannot create tasks for another tenant")
        tenant = tenant_id if tenant_id is not None else identity.tenant_id
        if tenant is None:
            raise ValidationError("tenant_id is required")
        if not title or not title.strip():
            raise ValidationError("title must not be empty")

        task = Task(
            tenant_id=tenant,
            title=title.strip(),
            description=description,
            status=TaskStatus.open,
            traffic_light=traffic_light(0),
            created_by=identity.user_id,
        )
        db.add(task)
        db.commit()
        db.refresh(task)
        logger.info("task %s created in tenant %s by user %s", task.id, tenant, identity.user_id)
        return task

    @staticmethod
    def get(db: Session, identity: Optional[Identity], task_id: int) -> Task:
        identity = TaskService._require_identity(identity)
        TaskService._check_permission(db, identity, P.VIEW_TASKS)
        task = TaskService._load(db, task_id)
        TaskService._check_tenant(db, identity, task)
        return task

    @staticmethod
    def list_tasks(
        db: Session,
        identity: Optional[Identity],
        status: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[Task]:
        """Visible tasks, most urgent first."""
        identity = TaskService._require_identity(identity)
        TaskService._check_permission(db, identity, P.VIEW_TASKS)

        query = db.query(Task)
        if not permission_service.has_permission(db, identity.user_id, P.VIEW_ALL_TASKS):
            query = query.filter(Task.tenant_id == identity.tenant_id)
        if status:
            try:
                query = query.filter(Task.status == TaskStatus(status))
            except ValueError:
                raise ValidationError(f"Unknown task status '{status}'")
        return sort_by_urgency(query.all(), now)

    @staticmethod
    def to_out(task: Task, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Serialize a task, recomputing its traffic light rather than trusting the cache."""
        return {
            "id": task.id,
            "tenant_id": task.tenant_id,
            "title": task.title,
            "description": task.description,
            "status": TaskStatus(task.status).value,
            "traffic_light": light_for(task.created_at, now).value,
            "age_days": max(age_in_days(task.created_at, now), 0),
            "created_by": task.created_by,
            "created_at": task.created_at,
            "completed_at": task.completed_at,
            "completed_by": task.completed_by,
            "messages": list(task.messages),
        }

    # ---- Cache maintenance ----

    @staticmethod
    def refresh_cached_traffic_lights(db: Session, now: Optional[datetime] = None) -> int:
        """Rewrite stale ``tasks.traffic_light`` values. Returns the number changed."""
        changed = 0
        pending = db.query(Task).filter(Task.status != TaskStatus.completed).all()
        for task in pending:
            fresh = light_for(task.created_at, now)
            if task.traffic_light != fresh:
                task.traffic_light = fresh
                changed += 1
        db.commit()
        logger.info("traffic lights refreshed: %s of %s open tasks changed", changed, len(pending))
        return changed


task_service = TaskService()

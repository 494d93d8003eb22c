"""Tasks API router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from taskgate.core.audit import AuditAction, EntityType, audited
from taskgate.core.security import Identity, get_optional_identity
from taskgate.db.session import get_db
from taskgate.schemas.schemas import (
    TaskCreate, TaskListResponse, TaskOut, TaskReturnRequest, TaskStatusOverride,
)
from taskgate.services.task_service import task_service

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _task_id(request: Request) -> Optional[str]:
    value = request.path_params.get("task_id")
    return str(value) if value is not None else None


def _task_snapshot(result) -> Optional[dict]:
    if isinstance(result, TaskOut):
        return {"status": result.status, "completed_by": result.completed_by}
    return None


@router.get("/", response_model=TaskListResponse)
@audited(entity_type=EntityType.TASK)
async def list_tasks(
    request: Request,
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    identity: Optional[Identity] = Depends(get_optional_identity),
):
    """List visible tasks, most urgent first."""
    tasks = task_service.list_tasks(db, identity, status)
    return TaskListResponse(
        tasks=[TaskOut(**task_service.to_out(t)) for t in tasks],
        total=len(tasks),
    )


@router.post("/", response_model=TaskOut, status_code=201)
@audited(entity_type=EntityType.TASK, success_status=201, get_after_state=_task_snapshot)
async def create_task(
    request: Request,
    body: TaskCreate,
    db: Session = Depends(get_db),
    identity: Optional[Identity] = Depends(get_optional_identity),
):
    """Create an open task."""
    task = task_service.create(db, identity, body.title, body.description, body.tenant_id)
    return TaskOut(**task_service.to_out(task))


@router.get("/{task_id}", response_model=TaskOut)
@audited(entity_type=EntityType.TASK, get_entity_id=_task_id)
async def get_task(
    request: Request,
    task_id: int,
    db: Session = Depends(get_db),
    identity: Optional[Identity] = Depends(get_optional_identity),
):
    """Get one task with its recomputed traffic light."""
    task = task_service.get(db, identity, task_id)
    return TaskOut(**task_service.to_out(task))


@router.post("/{task_id}/submit", response_model=TaskOut)
@audited(
    action=AuditAction.SUBMIT, entity_type=EntityType.TASK,
    get_entity_id=_task_id, get_after_state=_task_snapshot,
)
async def submit_task(
    request: Request,
    task_id: int,
    db: Session = Depends(get_db),
    identity: Optional[Identity] = Depends(get_optional_identity),
):
    """Submit an open task."""
    task = task_service.submit(db, identity, task_id)
    return TaskOut(**task_service.to_out(task))


@router.post("/{task_id}/complete", response_model=TaskOut)
@audited(
    action=AuditAction.COMPLETE, entity_type=EntityType.TASK,
    get_entity_id=_task_id, get_after_state=_task_snapshot,
)
async def complete_task(
    request: Request,
    task_id: int,
    db: Session = Depends(get_db),
    identity: Optional[Identity] = Depends(get_optional_identity),
):
    """Complete a submitted task."""
    task = task_service.complete(db, identity, task_id)
    return TaskOut(**task_service.to_out(task))


@router.post("/{task_id}/return", response_model=TaskOut)
@audited(
    action=AuditAction.RETURN, entity_type=EntityType.TASK,
    get_entity_id=_task_id, get_after_state=_task_snapshot,
)
async def return_task(
    request: Request,
    task_id: int,
    body: TaskReturnRequest,
    db: Session = Depends(get_db),
    identity: Optional[Identity] = Depends(get_optional_identity),
):
    """Return a submitted task to the client with a reason."""
    task = task_service.return_task(db, identity, task_id, body.reason)
    return TaskOut(**task_service.to_out(task))


@router.put("/{task_id}/status", response_model=TaskOut)
@audited(entity_type=EntityType.TASK, get_entity_id=_task_id, get_after_state=_task_snapshot)
async def override_task_status(
    request: Request,
    task_id: int,
    body: TaskStatusOverride,
    db: Session = Depends(get_db),
    identity: Optional[Identity] = Depends(get_optional_identity),
):
    """Set a task's status directly (administrative)."""
    task = task_service.override_status(db, identity, task_id, body.status)
    return TaskOut(**task_service.to_out(task))

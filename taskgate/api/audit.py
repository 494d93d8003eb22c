"""Audit log API router."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from taskgate.core.permissions import P
from taskgate.core.security import Identity, RequirePermission
from taskgate.db.session import get_db
from taskgate.schemas.schemas import AuditLogListResponse
from taskgate.services.audit_service import audit_service

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("/", response_model=AuditLogListResponse)
async def get_audit_logs(
    actor_user_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    _: Identity = Depends(RequirePermission(P.VIEW_AUDIT_LOGS)),
):
    """Query the audit trail, newest first."""
    return audit_service.query_logs(
        db, actor_user_id, action, entity_type, entity_id, status, start, end, page, page_size,
    )

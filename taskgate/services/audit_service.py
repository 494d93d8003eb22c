"""Audit service: append-only audit trail writer and reader."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from taskgate.core.config import settings
from taskgate.models.audit_log import AuditLog
from taskgate.schemas.schemas import AuditEntry

# Side channel for audit failures; never routed back to callers.
logger = logging.getLogger("taskgate.audit")

REDACT_KEYS = {"password", "token", "access_token", "refresh_token", "secret", "authorization"}


def _sanitize(meta: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for k, v in (meta or {}).items():
        if k.lower() in REDACT_KEYS:
            out[k] = "***"
        elif isinstance(v, dict):
            out[k] = _sanitize(v)
        else:
            out[k] = v
    return out


def _utc_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class AuditRecorder:
    """Writes one audit record per call and never raises.

    Each write uses its own short-lived session, so a failing audit insert
    can never roll back (or be rolled back by) the business transaction it
    describes.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory
        self.failed_writes = 0

    def configure(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def _factory(self) -> Callable[[], Session]:
        if self._session_factory is None:
            from taskgate.db.session import SessionLocal
            self._session_factory = SessionLocal
        return self._session_factory

    @staticmethod
    def build(entry: AuditEntry) -> AuditLog:
        """Turn an entry into a row; may raise on unserializable payloads."""
        return AuditLog(
            action=str(entry.action)[:100],
            entity_type=str(entry.entity_type)[:50],
            entity_id=str(entry.entity_id)[:100] if entry.entity_id is not None else None,
            actor_user_id=entry.actor_user_id,
            actor_email=entry.actor_email or settings.AUDIT_ANONYMOUS_EMAIL,
            source_ip=entry.source_ip[:45] if entry.source_ip else None,
            user_agent=entry.user_agent[:500] if entry.user_agent else None,
            changes_json=json.dumps(entry.changes, default=str) if entry.changes else None,
            metadata_json=json.dumps(_sanitize(entry.metadata), default=str) if entry.metadata else None,
            status=entry.status,
            error_message=entry.error_message,
            occurred_at=_utc_naive(entry.occurred_at),
        )

    def record(self, entry: AuditEntry) -> None:
        """Persist ``entry``. Failures are logged and counted, never raised."""
        db = None
        try:
            row = self.build(entry)
            db = self._factory()()
            db.add(row)
            db.commit()
        except Exception:
            self.failed_writes += 1
            logger.exception(
                "Failed to write audit record action=%s entity=%s/%s",
                getattr(entry, "action", None),
                getattr(entry, "entity_type", None),
                getattr(entry, "entity_id", None),
            )
            if db is not None:
                try:
                    db.rollback()
                except Exception:
                    logger.debug("rollback after failed audit write also failed", exc_info=True)
        finally:
            if db is not None:
                try:
                    db.close()
                except Exception:
                    logger.debug("closing audit session failed", exc_info=True)


class AuditService:
    """Read side of the audit trail."""

    @staticmethod
    def query_logs(
        db: Session,
        actor_user_id: Optional[int] = None,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Dict[str, Any]:
        """Query audit logs with filters and pagination, newest first."""
        query = db.query(AuditLog)

        if actor_user_id:
            query = query.filter(AuditLog.actor_user_id == actor_user_id)
        if action:
            query = query.filter(AuditLog.action == action)
        if entity_type:
            query = query.filter(AuditLog.entity_type == entity_type)
        if entity_id:
            query = query.filter(AuditLog.entity_id == str(entity_id))
        if status:
            query = query.filter(AuditLog.status == status)
        if start:
            query = query.filter(AuditLog.occurred_at >= _utc_naive(start))
        if end:
            query = query.filter(AuditLog.occurred_at <= _utc_naive(end))

        total = query.count()
        logs = (
            query.order_by(AuditLog.occurred_at.desc(), AuditLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )

        return {
            "logs": [AuditService.to_out(log) for log in logs],
            "total": total,
            "page": page,
            "page_size": page_size,
            "has_more": total > page * page_size,
        }

    @staticmethod
    def to_out(log: AuditLog) -> Dict[str, Any]:
        return {
            "id": log.id,
            "action": log.action,
            "entity_type": log.entity_type,
            "entity_id": log.entity_id,
            "actor_user_id": log.actor_user_id,
            "actor_email": log.actor_email,
            "source_ip": log.source_ip,
            "user_agent": log.user_agent,
            "changes": json.loads(log.changes_json) if log.changes_json else None,
            "metadata": json.loads(log.metadata_json) if log.metadata_json else None,
            "status": log.status,
            "error_message": log.error_message,
            "occurred_at": log.occurred_at,
        }


audit_recorder = AuditRecorder()
audit_service = AuditService()

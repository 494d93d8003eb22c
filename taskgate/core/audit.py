"""Audit interception for route handlers.

``wrap(handler, AuditConfig(...))`` (or the ``@audited(...)`` decorator) runs
the handler unchanged and, when the request carries an identity, hands an
audit entry describing the call to the background dispatcher. Nothing in here
may turn a working request into a failing one: errors while deriving audit
metadata only cost the audit record.
"""

import enum
import functools
import inspect
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from fastapi import HTTPException, Request

from taskgate.core.exceptions import TaskGateError
from taskgate.core.security import Identity, identity_from_request
from taskgate.schemas.schemas import AuditEntry

logger = logging.getLogger("taskgate.audit")


class AuditAction(str, enum.Enum):
    # Auth
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    LOGIN_FAILED = "LOGIN_FAILED"

    # CRUD
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    # Workflow
    SUBMIT = "SUBMIT"
    COMPLETE = "COMPLETE"
    RETURN = "RETURN"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    UPLOAD = "UPLOAD"
    DOWNLOAD = "DOWNLOAD"
    EXPORT = "EXPORT"

    # Access control
    GRANT_PERMISSION = "GRANT_PERMISSION"
    REVOKE_PERMISSION = "REVOKE_PERMISSION"
    ASSIGN_ROLE = "ASSIGN_ROLE"
    REMOVE_ROLE = "REMOVE_ROLE"


class EntityType(str, enum.Enum):
    USER = "user"
    TASK = "task"
    FILE = "file"
    COMPANY = "company"
    ROLE = "role"
    PERMISSION = "permission"
    COMMENT = "comment"
    NOTIFICATION = "notification"
    AUDIT_LOG = "audit_log"


METHOD_ACTIONS: Dict[str, AuditAction] = {
    "GET": AuditAction.READ,
    "HEAD": AuditAction.READ,
    "POST": AuditAction.CREATE,
    "PUT": AuditAction.UPDATE,
    "PATCH": AuditAction.UPDATE,
    "DELETE": AuditAction.DELETE,
}

_API_SEGMENT = re.compile(r"/api/([^/]+)")


def infer_action(method: str) -> str:
    """Action for an HTTP method; unmapped methods are logged under their own name."""
    method = method.upper()
    action = METHOD_ACTIONS.get(method)
    return action.value if action else method


def infer_entity_type(path: str) -> str:
    """First segment after ``/api/`` with one trailing "s" removed.

    Deliberately naive: ``/api/tasks`` gives "task" but ``/api/companies``
    gives "companie". Routes where that is wrong should set ``entity_type``.
    """
    match = _API_SEGMENT.search(path)
    if not match:
        return "unknown"
    return re.sub(r"s$", "", match.group(1)) or "unknown"


def classify_status(status_code: int) -> str:
    if 200 <= status_code < 300:
        return "success"
    if 400 <= status_code < 500:
        return "failed"
    return "error"


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None


def path_param(name: str) -> Callable[[Request], Optional[str]]:
    """Entity id extractor reading a named route parameter."""
    def extract(request: Request) -> Optional[str]:
        value = request.path_params.get(name)
        return str(value) if value is not None else None
    return extract


def _text(value: Union[enum.Enum, str]) -> str:
    return value.value if isinstance(value, enum.Enum) else str(value)


@dataclass
class AuditConfig:
    """How to describe an intercepted operation.

    Explicit values win over inference; every callable receives the request
    (``get_metadata`` and ``get_after_state`` also get the handler result).
    """

    action: Optional[Union[AuditAction, str]] = None
    entity_type: Optional[Union[EntityType, str]] = None
    get_entity_id: Optional[Callable[[Request], Optional[str]]] = None
    skip: Optional[Callable[[Request], bool]] = None
    get_metadata: Optional[Callable[[Request, Any], Dict[str, Any]]] = None
    get_before_state: Optional[Callable[[Request], Any]] = None
    get_after_state: Optional[Callable[[Any], Any]] = None
    identity_provider: Optional[Callable[[Request], Optional[Identity]]] = None
    dispatcher: Any = None
    success_status: int = 200


def resolve_entity_id(request: Request, config: AuditConfig) -> Optional[str]:
    if config.get_entity_id is not None:
        return config.get_entity_id(request)
    entity_id = request.path_params.get("id")
    if entity_id is None:
        entity_id = request.query_params.get("id")
    return str(entity_id) if entity_id is not None else None


def _status_of(result: Any, error: Optional[BaseException], config: AuditConfig) -> int:
    source = error if error is not None else result
    code = getattr(source, "status_code", None)
    if isinstance(code, int):
        return code
    return 500 if error is not None else config.success_status


def _error_message(status_code: int, error: Optional[BaseException]) -> Optional[str]:
    if isinstance(error, TaskGateError):
        return error.message
    if isinstance(error, HTTPException):
        return str(error.detail)
    if classify_status(status_code) != "success":
        return f"HTTP {status_code}"
    return None


class _Interception:
    """Per-call state of one audited invocation."""

    def __init__(self, config: AuditConfig, request: Request, identity: Identity):
        self.config = config
        self.request = request
        self.identity = identity
        self.before: Any = None
        self.started = 0.0

    def begin(self) -> None:
        if self.config.get_before_state is not None:
            try:
                self.before = self.config.get_before_state(self.request)
            except Exception:
                logger.warning("before-state capture failed for %s", self.request.url.path, exc_info=True)
        self.started = time.perf_counter()

    def finish(self, result: Any = None, error: Optional[BaseException] = None) -> None:
        try:
            entry = self._build(result, error)
        except Exception:
            logger.warning("Could not build audit entry for %s", self.request.url.path, exc_info=True)
            return
        dispatcher = self.config.dispatcher
        if dispatcher is None:
            from taskgate.services.audit_dispatcher import audit_dispatcher
            dispatcher = audit_dispatcher
        try:
            dispatcher.dispatch(entry)
        except Exception:
            logger.warning("Audit dispatch failed for %s", self.request.url.path, exc_info=True)

    def _build(self, result: Any, error: Optional[BaseException]) -> AuditEntry:
        config, request = self.config, self.request
        duration_ms = round((time.perf_counter() - self.started) * 1000, 2)
        method = request.method.upper()

        action = _text(config.action) if config.action else infer_action(method)
        entity_type = _text(config.entity_type) if config.entity_type else infer_entity_type(request.url.path)
        entity_id = resolve_entity_id(request, config)
        status_code = _status_of(result, error, config)
        status = classify_status(status_code)

        after = None
        if config.get_after_state is not None and status == "success":
            after = config.get_after_state(result)
        changes = None
        if self.before is not None or after is not None:
            changes = {"before": self.before, "after": after}

        metadata: Dict[str, Any] = {}
        if config.get_metadata is not None:
            metadata.update(config.get_metadata(request, result) or {})
        metadata.update({
            "path": request.url.path,
            "method": method,
            "response_status": status_code,
            "duration_ms": duration_ms,
        })
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            metadata["request_id"] = request_id

        return AuditEntry(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_user_id=self.identity.user_id,
            actor_email=self.identity.email,
            source_ip=client_ip(request),
            user_agent=request.headers.get("user-agent"),
            changes=changes,
            metadata=metadata,
            status=status,
            error_message=_error_message(status_code, error),
        )


def _find_request(args, kwargs) -> Optional[Request]:
    candidate = kwargs.get("request")
    if isinstance(candidate, Request):
        return candidate
    for arg in args:
        if isinstance(arg, Request):
            return arg
    return None


def _start(config: AuditConfig, args, kwargs) -> Optional[_Interception]:
    """Return the interception for this call, or None to run the handler unobserved."""
    request = _find_request(args, kwargs)
    if request is None:
        return None
    try:
        if config.skip is not None and config.skip(request):
            return None
        provider = config.identity_provider or identity_from_request
        identity = provider(request)
    except Exception:
        logger.warning("Audit pre-checks failed for %s", request.url.path, exc_info=True)
        return None
    if identity is None:
        return None
    interception = _Interception(config, request, identity)
    interception.begin()
    return interception


def wrap(operation: Callable, config: Optional[AuditConfig] = None) -> Callable:
    """Wrap ``operation`` (sync or async) with audit interception."""
    config = config or AuditConfig()

    if inspect.iscoroutinefunction(operation):
        @functools.wraps(operation)
        async def async_wrapper(*args, **kwargs):
            interception = _start(config, args, kwargs)
            if interception is None:
                return await operation(*args, **kwargs)
            try:
                result = await operation(*args, **kwargs)
            except Exception as exc:
                interception.finish(error=exc)
                raise
            interception.finish(result=result)
            return result

        return async_wrapper

    @functools.wraps(operation)
    def wrapper(*args, **kwargs):
        interception = _start(config, args, kwargs)
        if interception is None:
            return operation(*args, **kwargs)
        try:
            result = operation(*args, **kwargs)
        except Exception as exc:
            interception.finish(error=exc)
            raise
        interception.finish(result=result)
        return result

    return wrapper


def audited(config: Optional[AuditConfig] = None, **options) -> Callable[[Callable], Callable]:
    """Decorator form of :func:`wrap`; keyword options build an AuditConfig."""
    cfg = config or AuditConfig(**options)

    def decorator(operation: Callable) -> Callable:
        return wrap(operation, cfg)

    return decorator

"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone


# ---- Generic ----
class MessageResponse(BaseModel):
    message: str


# ---- Permissions ----
class PermissionOut(BaseModel):
    key: str
    description: str
    category: str

class PermissionCatalogOut(BaseModel):
    permissions: List[PermissionOut]
    categorized: Dict[str, List[PermissionOut]]

class MyPermissionsOut(BaseModel):
    user_id: int
    permissions: List[str]
    roles: List[str]


# ---- Roles ----
class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    permissions: List[str] = []

class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    permissions: Optional[List[str]] = None

class RolePermissionsUpdate(BaseModel):
    permissions: List[str]

class RoleOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    is_system: bool
    permissions: List[str]
    user_count: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---- Role assignments ----
class RoleAssignmentCreate(BaseModel):
    role_id: int

class RoleAssignmentOut(BaseModel):
    user_id: int
    role_id: int
    assigned_by: Optional[int] = None
    assigned_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---- Tasks ----
class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    tenant_id: Optional[int] = None

class TaskReturnRequest(BaseModel):
    reason: str

class TaskStatusOverride(BaseModel):
    status: str

class TaskMessageOut(BaseModel):
    id: int
    user_id: Optional[int] = None
    content: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class TaskOut(BaseModel):
    id: int
    tenant_id: int
    title: str
    description: Optional[str] = None
    status: str
    traffic_light: str  # recomputed on every read
    age_days: int
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[int] = None
    messages: List[TaskMessageOut] = []

class TaskListResponse(BaseModel):
    tasks: List[TaskOut]
    total: int


# ---- Audit ----
class AuditEntry(BaseModel):
    """Input to the audit recorder. Only ``action`` and ``entity_type`` are required."""
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    actor_user_id: Optional[int] = None
    actor_email: Optional[str] = None
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    changes: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = {}
    status: str = "success"
    error_message: Optional[str] = None

class AuditLogOut(BaseModel):
    id: int
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    actor_user_id: Optional[int] = None
    actor_email: str
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None
    changes: Optional[Any] = None
    metadata: Optional[Dict[str, Any]] = None
    status: str
    error_message: Optional[str] = None
    occurred_at: datetime

class AuditLogListResponse(BaseModel):
    logs: List[AuditLogOut]
    total: int
    page: int
    page_size: int
    has_more: bool

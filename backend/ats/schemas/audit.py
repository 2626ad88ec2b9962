from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

AuditAction = Literal[
    "JOB_CREATED",
    "JOB_UPDATED",
    "JOB_PUBLISHED",
    "JOB_CLOSED",
    "JOB_REOPENED",
    "FIELD_ADDED",
    "FIELD_UPDATED",
    "FIELD_DELETED",
    "FIELDS_REORDERED",
    "APPLICATION_SUBMITTED",
    "APPLICATION_UPDATED",
    "STAGE_CHANGED",
    "EXPORT_DATA",
    "SETTINGS_CHANGED",
]
AuditResource = Literal["Job", "JobField", "Application", "System"]
AuditStatus = Literal["success", "failure", "warning"]
AuditSeverity = Literal["low", "medium", "high", "critical"]


class AuditEntryCreate(BaseModel):
    actor_id: str = Field(min_length=1)
    action: AuditAction
    resource_type: AuditResource
    resource_id: str | None = None
    details: dict[str, Any] = {}
    status: AuditStatus = "success"
    severity: AuditSeverity = "low"
    ip_address: str | None = None
    user_agent: str | None = None


class AuditEntryResponse(BaseModel):
    id: str
    actor_id: str
    action: str
    resource_type: str
    resource_id: str | None
    details: dict[str, Any]
    status: str
    severity: str
    ip_address: str | None
    user_agent: str | None
    created_at: str


class AuditFilters(BaseModel):
    actor_id: str | None = None
    action: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    status: str | None = None
    severity: str | None = None
    start: datetime | None = None
    end: datetime | None = None


class Pagination(BaseModel):
    total: int
    page: int
    pages: int
    limit: int


class AuditPage(BaseModel):
    entries: list[AuditEntryResponse]
    pagination: Pagination

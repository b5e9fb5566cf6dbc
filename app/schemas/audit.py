"""Audit log schemas."""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.models.audit import AuditAction, ChangeType
from app.schemas.common import PaginatedResponse
from app.utils.sensitivity import MASK

ExportFormat = Literal["json", "csv", "xlsx"]


class AuditContext(BaseModel):
    """Who/where of one inbound request, snapshotted onto every audit entry."""

    user_id: Optional[UUID] = None
    user_email: str
    user_name: Optional[str] = None
    user_role: Optional[str] = None
    module: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    request_path: Optional[str] = None
    request_method: Optional[str] = None


class AuditEntityChangeCreate(BaseModel):
    """Change row for a manual audit entry."""

    field_name: str
    field_type: Optional[str] = None
    old_value: Any = None
    new_value: Any = None
    is_sensitive: Optional[bool] = None


class AuditLogCreate(BaseModel):
    """Manual audit entry; actor fields default to the caller."""

    action: str
    entity_type: str
    entity_id: str
    entity_name: Optional[str] = None
    module: str
    user_id: Optional[UUID] = None
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    user_role: Optional[str] = None
    operation_context: Optional[Dict[str, Any]] = None
    changes: List[AuditEntityChangeCreate] = []


class AuditLogFilters(BaseModel):
    """Filters over AuditLog fields."""

    user_id: Optional[UUID] = None
    user_email: Optional[str] = None
    user_role: Optional[str] = None
    action: Optional[List[AuditAction]] = None
    module: Optional[List[str]] = None
    entity_type: Optional[List[str]] = None
    entity_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    ip_address: Optional[str] = None
    session_id: Optional[str] = None
    search: Optional[str] = None


class AuditExportRequest(AuditLogFilters):
    """Export request: the listing filters plus rendering options."""

    format: ExportFormat = "json"
    include_changes: bool = False
    include_sensitive_data: bool = False


class AuditCleanupResponse(BaseModel):
    """Retention cleanup result."""

    deleted_count: int
    days_to_keep: int
    cutoff: datetime


class AuditEntityChangeResponse(BaseModel):
    """Change row as shown to readers; sensitive raw values are masked."""

    id: UUID
    audit_log_id: UUID
    field_name: str
    field_type: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    change_type: ChangeType
    is_sensitive: bool
    created_at: datetime

    change_description: Optional[str] = None
    field_display_name: Optional[str] = None
    old_display_value: Optional[str] = None
    new_display_value: Optional[str] = None
    full_change_description: Optional[str] = None

    class Config:
        from_attributes = True

    @model_validator(mode="after")
    def mask_sensitive_values(self):
        if self.is_sensitive:
            if self.old_value is not None:
                self.old_value = MASK
            if self.new_value is not None:
                self.new_value = MASK
        return self


class AuditLogResponse(BaseModel):
    """Audit log response schema."""

    id: UUID
    user_id: Optional[UUID] = None
    user_email: str
    user_name: Optional[str] = None
    user_role: Optional[str] = None
    action: AuditAction
    entity_type: str
    entity_id: str
    entity_name: Optional[str] = None
    module: str
    operation_context: Optional[Any] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    request_path: Optional[str] = None
    request_method: Optional[str] = None
    operation_success: bool
    error_message: Optional[str] = None
    created_at: datetime
    changes: Optional[List[AuditEntityChangeResponse]] = None

    action_description: Optional[str] = None
    entity_display_name: Optional[str] = None
    full_description: Optional[str] = None
    change_count: int = 0

    class Config:
        from_attributes = True


class AuditLogListResponse(PaginatedResponse):
    """Page of audit logs."""

    items: List[AuditLogResponse]


class AuditEntityHistoryResponse(BaseModel):
    """Chronological history of one logical entity."""

    entity_type: str
    entity_id: str
    entity_name: Optional[str] = None
    history: List[AuditLogResponse]
    total_changes: int
    first_change: Optional[datetime] = None
    last_change: Optional[datetime] = None
    unique_users: int


class ModuleStat(BaseModel):
    module: str
    count: int
    percentage: float


class UserActivity(BaseModel):
    user_id: Optional[UUID] = None
    user_email: str
    user_name: Optional[str] = None
    action_count: int


class EntityActivity(BaseModel):
    entity_type: str
    entity_id: str
    entity_name: Optional[str] = None
    action_count: int


class AuditStatisticsResponse(BaseModel):
    """Aggregates over a trailing window."""

    window_days: int
    total_actions: int
    actions_by_type: Dict[str, int] = Field(default_factory=dict)
    unique_users: int
    unique_entities: int
    most_active_user: Optional[str] = None
    most_modified_entity_type: Optional[str] = None
    actions_today: int
    actions_this_week: int
    actions_this_month: int
    module_stats: List[ModuleStat] = []
    user_activity: List[UserActivity] = []
    entity_activity: List[EntityActivity] = []

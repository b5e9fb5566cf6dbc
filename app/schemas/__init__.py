"""Schema modules."""
from app.schemas.user import UserCreate, UserUpdate, UserResponse, RoleResponse
from app.schemas.case import CaseCreate, CaseUpdate, CaseResponse
from app.schemas.todo import TodoCreate, TodoUpdate, TodoResponse
from app.schemas.audit import (
    AuditContext,
    AuditLogCreate,
    AuditLogFilters,
    AuditExportRequest,
    AuditCleanupResponse,
    AuditLogResponse,
    AuditEntityChangeResponse,
    AuditLogListResponse,
    AuditEntityHistoryResponse,
    AuditStatisticsResponse,
)
from app.schemas.common import PaginationParams, SortParams, PaginatedResponse

"""Audit trail API endpoints."""
from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies import get_current_active_user, get_locale, require_audit_admin
from app.middleware.audit_context import extract_audit_context
from app.models.audit import AuditAction
from app.models.user import User
from app.schemas.audit import (
    AuditCleanupResponse,
    AuditEntityHistoryResponse,
    AuditExportRequest,
    AuditLogCreate,
    AuditLogFilters,
    AuditLogListResponse,
    AuditLogResponse,
    AuditStatisticsResponse,
)
from app.schemas.common import PaginationParams, SortParams
from app.services.audit_service import audit_service

router = APIRouter()

SortField = Literal["created_at", "action", "entity_type", "user_name", "module"]


def get_filters(
    user_id: Optional[UUID] = None,
    user_email: Optional[str] = None,
    user_role: Optional[str] = None,
    action: Optional[List[AuditAction]] = Query(None),
    module: Optional[List[str]] = Query(None),
    entity_type: Optional[List[str]] = Query(None),
    entity_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    ip_address: Optional[str] = None,
    session_id: Optional[str] = None,
    search: Optional[str] = None,
) -> AuditLogFilters:
    return AuditLogFilters(
        user_id=user_id,
        user_email=user_email,
        user_role=user_role,
        action=action,
        module=module,
        entity_type=entity_type,
        entity_id=entity_id,
        start_date=start_date,
        end_date=end_date,
        ip_address=ip_address,
        session_id=session_id,
        search=search,
    )


@router.get("/logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.AUDIT_DEFAULT_PAGE_SIZE, ge=1),
    sort_by: SortField = "created_at",
    sort_order: Literal["ASC", "DESC"] = "DESC",
    filters: AuditLogFilters = Depends(get_filters),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """List audit logs visible to the caller; limit is capped server-side."""
    return await audit_service.query_logs(
        db,
        filters=filters,
        pagination=PaginationParams(page=page, limit=limit),
        sort=SortParams(sort_by=sort_by, sort_order=sort_order),
        caller=current_user,
    )


@router.get("/logs/{log_id}", response_model=AuditLogResponse)
async def get_audit_log(
    log_id: UUID,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(get_current_active_user),
):
    """Get one audit log with its changes."""
    return await audit_service.get_log(db, log_id=log_id, caller=current_user, locale=locale)


@router.post("/logs", response_model=AuditLogResponse, status_code=status.HTTP_201_CREATED)
async def create_audit_log(
    entry: AuditLogCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(require_audit_admin),
):
    """Record a manual audit entry (downloads, views, session events)."""
    return await audit_service.record_manual_entry(
        db,
        entry=entry,
        context=extract_audit_context(request, current_user),
        locale=locale,
    )


@router.get(
    "/entity/{entity_type}/{entity_id}/history",
    response_model=AuditEntityHistoryResponse,
)
async def get_entity_history(
    entity_type: str,
    entity_id: str,
    include_changes: bool = True,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(get_current_active_user),
):
    """Chronological history of one entity."""
    return await audit_service.get_history(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        include_changes=include_changes,
        caller=current_user,
        locale=locale,
    )


@router.get("/statistics", response_model=AuditStatisticsResponse)
async def get_audit_statistics(
    days: int = 30,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(get_current_active_user),
):
    """Aggregated activity over the last ``days`` days."""
    return await audit_service.get_statistics(db, days=days, caller=current_user, locale=locale)


@router.post("/export")
async def export_audit_logs(
    export_request: AuditExportRequest,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(get_current_active_user),
):
    """Export matching logs as JSON, CSV or XLSX."""
    exported = await audit_service.export_logs(
        db, request=export_request, caller=current_user, locale=locale
    )
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )


@router.delete("/cleanup", response_model=AuditCleanupResponse)
async def cleanup_audit_logs(
    days_to_keep: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(require_audit_admin),
):
    """Delete logs older than the retention window."""
    return await audit_service.purge_older_than(db, days_to_keep=days_to_keep, locale=locale)

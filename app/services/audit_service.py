"""Audit query service: scoped reads, exports, retention and manual entries."""
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.crud.audit import (
    MAX_ENTITY_NAME_LENGTH,
    MAX_FIELD_NAME_LENGTH,
    MAX_MODULE_LENGTH,
    MAX_USER_NAME_LENGTH,
    EntityHistory,
    audit,
)
from app.models.audit import AuditAction, AuditLog
from app.models.user import User
from app.schemas.audit import (
    AuditContext,
    AuditExportRequest,
    AuditLogCreate,
    AuditLogFilters,
    AuditLogListResponse,
    AuditLogResponse,
)
from app.schemas.common import PaginationParams, SortParams
from app.services.audit_export_service import ExportedFile, render_export
from app.utils.diff import FieldChange, infer_field_type
from app.utils.permissions import AuditCapabilities, resolve_audit_capabilities
from app.utils.sensitivity import is_sensitive_field

logger = logging.getLogger(__name__)


def apply_scope(filters: AuditLogFilters, caller: User, capabilities: Optional[AuditCapabilities] = None) -> AuditLogFilters:
    """Narrow filters to what the caller may see.

    View-team currently sees everything: there is no team membership model yet.
    """
    capabilities = capabilities or resolve_audit_capabilities(caller)
    if capabilities.is_administrator or capabilities.can_view_all:
        return filters
    if capabilities.can_view_own:
        return filters.model_copy(update={"user_id": caller.id})
    if capabilities.can_view_team:
        return filters
    return filters.model_copy(update={"user_id": caller.id})


def can_view_log(log: AuditLog, caller: User, capabilities: Optional[AuditCapabilities] = None) -> bool:
    capabilities = capabilities or resolve_audit_capabilities(caller)
    if capabilities.is_administrator or capabilities.can_view_all or capabilities.can_view_team:
        return True
    return log.user_id is not None and log.user_id == caller.id


def retention_cutoff(days_to_keep: int, now: Optional[datetime] = None) -> datetime:
    return (now or datetime.now(timezone.utc)) - timedelta(days=days_to_keep)


def validate_retention(days_to_keep: Optional[int], locale: str = "en") -> int:
    """Return the effective retention window or raise before storage is touched."""
    if days_to_keep is None:
        days_to_keep = settings.AUDIT_DEFAULT_RETENTION_DAYS
    if not settings.AUDIT_MIN_RETENTION_DAYS <= days_to_keep <= settings.AUDIT_MAX_RETENTION_DAYS:
        raise ValidationError(
            locale=locale,
            key="audit.retention_out_of_bounds",
            minimum=settings.AUDIT_MIN_RETENTION_DAYS,
            maximum=settings.AUDIT_MAX_RETENTION_DAYS,
        )
    return days_to_keep


class AuditService:
    """Read side of the audit trail plus retention and manual entries."""

    async def query_logs(
        self,
        db: AsyncSession,
        *,
        filters: AuditLogFilters,
        pagination: PaginationParams,
        sort: SortParams,
        caller: User,
    ) -> AuditLogListResponse:
        scoped = apply_scope(filters, caller)
        logs, total = await audit.query(db, filters=scoped, pagination=pagination, sort=sort)
        limit = pagination.effective_limit
        return AuditLogListResponse(
            total=total,
            page=pagination.page,
            limit=limit,
            total_pages=math.ceil(total / limit) if total else 0,
            has_next_page=pagination.page * limit < total,
            has_prev_page=pagination.page > 1,
            items=[AuditLogResponse.model_validate(log) for log in logs],
        )

    async def get_log(self, db: AsyncSession, *, log_id: UUID, caller: User, locale: str = "en") -> AuditLog:
        capabilities = resolve_audit_capabilities(caller)
        if not capabilities.can_view_any:
            raise ForbiddenError(locale=locale, key="audit.view_denied")
        log = await audit.get_with_changes(db, id=log_id)
        if log is None:
            raise NotFoundError(locale=locale, key="audit.log_not_found")
        if not can_view_log(log, caller, capabilities):
            raise ForbiddenError(locale=locale, key="audit.log_view_denied")
        return log

    async def get_history(
        self,
        db: AsyncSession,
        *,
        entity_type: str,
        entity_id: str,
        caller: User,
        include_changes: bool = True,
        locale: str = "en",
    ) -> dict:
        capabilities = resolve_audit_capabilities(caller)
        if not capabilities.can_view_any:
            raise ForbiddenError(locale=locale, key="audit.view_denied")

        history: EntityHistory = await audit.history_for_entity(
            db, entity_type=entity_type, entity_id=entity_id
        )
        logs = [log for log in history.logs if can_view_log(log, caller, capabilities)]
        if len(logs) != len(history.logs):
            history = EntityHistory(entity_type=entity_type, entity_id=entity_id, logs=logs)

        items = []
        for log in history.logs:
            item = AuditLogResponse.model_validate(log)
            if not include_changes:
                item.changes = None
            items.append(item)

        return {
            "entity_type": entity_type,
            "entity_id": entity_id,
            "entity_name": history.entity_name,
            "history": items,
            "total_changes": history.total,
            "first_change": history.first_timestamp,
            "last_change": history.last_timestamp,
            "unique_users": history.distinct_actors,
        }

    async def get_statistics(
        self,
        db: AsyncSession,
        *,
        days: int,
        caller: User,
        locale: str = "en",
    ) -> dict:
        capabilities = resolve_audit_capabilities(caller)
        if not (capabilities.is_administrator or capabilities.can_view_all or capabilities.can_view_team):
            raise ForbiddenError(locale=locale, key="audit.view_denied")
        if not 1 <= days <= settings.AUDIT_MAX_STATISTICS_DAYS:
            raise ValidationError(
                locale=locale,
                key="audit.statistics_out_of_bounds",
                maximum=settings.AUDIT_MAX_STATISTICS_DAYS,
            )
        return await audit.statistics(db, window_days=days)

    async def export_logs(
        self,
        db: AsyncSession,
        *,
        request: AuditExportRequest,
        caller: User,
        locale: str = "en",
    ) -> ExportedFile:
        capabilities = resolve_audit_capabilities(caller)
        if not capabilities.can_export:
            raise ForbiddenError(locale=locale, key="audit.export_denied")

        filters = AuditLogFilters(**request.dict(include=set(AuditLogFilters.model_fields)))
        scoped = apply_scope(filters, caller, capabilities)
        logs = await audit.query_all(db, filters=scoped)
        reveal = request.include_sensitive_data and capabilities.can_administer

        logger.info(
            "Audit export by %s: %d records as %s", caller.email, len(logs), request.format
        )
        return await render_export(
            logs,
            export_format=request.format,
            filters=scoped.model_dump(mode="json", exclude_none=True),
            include_changes=request.include_changes,
            reveal_sensitive=reveal,
        )

    async def purge_older_than(
        self,
        db: AsyncSession,
        *,
        days_to_keep: Optional[int] = None,
        locale: str = "en",
    ) -> dict:
        """Delete logs older than the retention window; bounds are checked first."""
        days_to_keep = validate_retention(days_to_keep, locale)
        cutoff = retention_cutoff(days_to_keep)
        deleted = await audit.purge_older_than(db, cutoff=cutoff)
        logger.info("Purged %d audit logs older than %s", deleted, cutoff.isoformat())
        return {"deleted_count": deleted, "days_to_keep": days_to_keep, "cutoff": cutoff}

    def _validate_manual_entry(self, entry: AuditLogCreate, user_email: Optional[str], locale: str) -> AuditAction:
        required = {
            "user_email": user_email,
            "action": entry.action,
            "entity_type": entry.entity_type,
            "entity_id": entry.entity_id,
            "module": entry.module,
        }
        for field_name, value in required.items():
            if not value or not str(value).strip():
                raise ValidationError(locale=locale, key="audit.field_required", field=field_name)

        try:
            action = AuditAction(entry.action.upper())
        except ValueError:
            raise ValidationError(locale=locale, key="audit.invalid_action", action=entry.action)

        limits = {
            "entity_name": (entry.entity_name, MAX_ENTITY_NAME_LENGTH),
            "user_name": (entry.user_name, MAX_USER_NAME_LENGTH),
            "module": (entry.module, MAX_MODULE_LENGTH),
        }
        for field_name, (value, maximum) in limits.items():
            if value and len(value) > maximum:
                raise ValidationError(
                    locale=locale, key="audit.field_too_long", field=field_name, maximum=maximum
                )
        for change in entry.changes:
            if not change.field_name:
                raise ValidationError(locale=locale, key="audit.field_required", field="field_name")
            if len(change.field_name) > MAX_FIELD_NAME_LENGTH:
                raise ValidationError(
                    locale=locale,
                    key="audit.field_too_long",
                    field="field_name",
                    maximum=MAX_FIELD_NAME_LENGTH,
                )
        return action

    async def record_manual_entry(
        self,
        db: AsyncSession,
        *,
        entry: AuditLogCreate,
        context: AuditContext,
        locale: str = "en",
    ) -> AuditLog:
        """Persist an entry that does not fit the create/update/delete shape.

        Actor fields left out of ``entry`` come from ``context``.
        """
        user_email = entry.user_email or context.user_email
        action = self._validate_manual_entry(entry, user_email, locale)

        changes = [
            FieldChange(
                field=change.field_name,
                old_value=change.old_value,
                new_value=change.new_value,
                type=change.field_type or infer_field_type(
                    change.new_value if change.new_value is not None else change.old_value
                ),
                is_sensitive=(
                    change.is_sensitive
                    if change.is_sensitive is not None
                    else is_sensitive_field(change.field_name)
                ),
            )
            for change in entry.changes
        ]

        log_data = {
            **context.dict(),
            "user_id": entry.user_id or context.user_id,
            "user_email": user_email,
            "user_name": entry.user_name or context.user_name,
            "user_role": entry.user_role or context.user_role,
            "module": entry.module,
            "action": action,
            "entity_type": entry.entity_type,
            "entity_id": entry.entity_id,
            "entity_name": entry.entity_name,
            "operation_context": entry.operation_context,
        }
        return await audit.append(db, log_data=log_data, changes=changes)


audit_service = AuditService()

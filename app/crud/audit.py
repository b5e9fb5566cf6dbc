"""Audit record store: append-only persistence and queries for AuditLog/AuditEntityChange.

There is no update operation here; logs leave the store only through
``purge_older_than``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuditWriteError
from app.models.audit import AuditAction, AuditEntityChange, AuditLog
from app.schemas.audit import AuditLogFilters
from app.schemas.common import PaginationParams, SortParams
from app.utils.diff import FieldChange, serialize_value

logger = logging.getLogger(__name__)

TOP_ACTIVITY_LIMIT = 10
MAX_ENTITY_NAME_LENGTH = 500
MAX_USER_NAME_LENGTH = 500
MAX_MODULE_LENGTH = 50
MAX_FIELD_NAME_LENGTH = 100
MAX_FIELD_TYPE_LENGTH = 50


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _clip(value: Optional[str], limit: int) -> Optional[str]:
    if value is None:
        return None
    return value[:limit]


def _contains(term: str) -> str:
    """ILIKE pattern matching ``term`` literally anywhere; pair with ``escape="\\"``."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass
class EntityHistory:
    """All logs for one logical entity, oldest first, with summary statistics."""

    entity_type: str
    entity_id: str
    logs: List[AuditLog] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.logs)

    @property
    def first_timestamp(self) -> Optional[datetime]:
        return self.logs[0].created_at if self.logs else None

    @property
    def last_timestamp(self) -> Optional[datetime]:
        return self.logs[-1].created_at if self.logs else None

    @property
    def distinct_actors(self) -> int:
        return len({log.user_id for log in self.logs if log.user_id is not None})

    @property
    def entity_name(self) -> Optional[str]:
        # Latest snapshot wins
        return self.logs[-1].entity_name if self.logs else None


class CRUDAudit:
    """Persistence for audit logs and their change rows."""

    async def append(
        self,
        db: AsyncSession,
        *,
        log_data: Dict[str, Any],
        changes: Sequence[FieldChange] = (),
    ) -> AuditLog:
        """Two-phase write: the log first, then its change rows.

        A failure in the second phase leaves the log without changes; it is logged
        and reported through ``AuditWriteError`` but not rolled back.
        """
        audit_log = AuditLog(
            **{
                **log_data,
                "entity_name": _clip(log_data.get("entity_name"), MAX_ENTITY_NAME_LENGTH),
                "user_name": _clip(log_data.get("user_name"), MAX_USER_NAME_LENGTH),
                "module": _clip(log_data.get("module"), MAX_MODULE_LENGTH),
            }
        )
        db.add(audit_log)
        await db.commit()
        log_id = audit_log.id

        if changes:
            rows = [
                AuditEntityChange(
                    audit_log_id=log_id,
                    field_name=_clip(change.field, MAX_FIELD_NAME_LENGTH),
                    field_type=_clip(change.type, MAX_FIELD_TYPE_LENGTH),
                    old_value=serialize_value(change.old_value),
                    new_value=serialize_value(change.new_value),
                    change_type=change.change_type,
                    is_sensitive=change.is_sensitive,
                )
                for change in changes
            ]
            try:
                db.add_all(rows)
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error(
                    "Audit log %s persisted without its %d change rows: %s",
                    log_id,
                    len(rows),
                    exc,
                )
                raise AuditWriteError(
                    "change rows could not be persisted", audit_log_id=str(log_id)
                ) from exc

        await db.refresh(audit_log, attribute_names=["changes"])
        return audit_log

    async def get_with_changes(self, db: AsyncSession, *, id: UUID) -> Optional[AuditLog]:
        """Return the log with its changes, or None."""
        result = await db.execute(select(AuditLog).where(AuditLog.id == id))
        return result.scalar_one_or_none()

    def build_query(self, filters: AuditLogFilters) -> Select:
        """Translate filters into a SELECT over audit_logs."""
        query = select(AuditLog)

        if filters.user_id:
            query = query.where(AuditLog.user_id == filters.user_id)
        if filters.user_email:
            query = query.where(AuditLog.user_email.ilike(_contains(filters.user_email), escape="\\"))
        if filters.user_role:
            query = query.where(AuditLog.user_role == filters.user_role)
        if filters.action:
            query = query.where(AuditLog.action.in_([AuditAction(a) for a in filters.action]))
        if filters.module:
            query = query.where(AuditLog.module.in_(filters.module))
        if filters.entity_type:
            query = query.where(AuditLog.entity_type.in_(filters.entity_type))
        if filters.entity_id:
            query = query.where(AuditLog.entity_id == filters.entity_id)
        if filters.start_date:
            query = query.where(AuditLog.created_at >= as_utc(filters.start_date))
        if filters.end_date:
            query = query.where(AuditLog.created_at <= as_utc(filters.end_date))
        if filters.ip_address:
            query = query.where(AuditLog.ip_address == filters.ip_address)
        if filters.session_id:
            query = query.where(AuditLog.session_id == filters.session_id)
        if filters.search:
            pattern = _contains(filters.search)
            query = query.where(
                or_(
                    AuditLog.entity_name.ilike(pattern, escape="\\"),
                    AuditLog.user_name.ilike(pattern, escape="\\"),
                    AuditLog.user_email.ilike(pattern, escape="\\"),
                    AuditLog.module.ilike(pattern, escape="\\"),
                )
            )
        return query

    def _order(self, query: Select, sort: SortParams) -> Select:
        column = getattr(AuditLog, sort.sort_by)
        if sort.sort_order == "ASC":
            return query.order_by(column.asc(), AuditLog.id.asc())
        return query.order_by(column.desc(), AuditLog.id.desc())

    async def query(
        self,
        db: AsyncSession,
        *,
        filters: AuditLogFilters,
        pagination: PaginationParams,
        sort: SortParams,
    ) -> Tuple[List[AuditLog], int]:
        """Return one page of matching logs plus the total match count.

        Offsets are not stabilized against concurrent inserts.
        """
        base = self.build_query(filters)
        total_result = await db.execute(select(func.count()).select_from(base.subquery()))
        total = total_result.scalar_one()

        page_query = self._order(base, sort).offset(pagination.offset).limit(pagination.effective_limit)
        result = await db.execute(page_query)
        return list(result.scalars().all()), total

    async def query_all(
        self,
        db: AsyncSession,
        *,
        filters: AuditLogFilters,
        sort: Optional[SortParams] = None,
    ) -> List[AuditLog]:
        """Unpaginated variant used by exports."""
        query = self._order(self.build_query(filters), sort or SortParams())
        result = await db.execute(query)
        return list(result.scalars().all())

    async def history_for_entity(
        self,
        db: AsyncSession,
        *,
        entity_type: str,
        entity_id: str,
    ) -> EntityHistory:
        result = await db.execute(
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        )
        return EntityHistory(
            entity_type=entity_type,
            entity_id=entity_id,
            logs=list(result.scalars().all()),
        )

    async def _count_since(self, db: AsyncSession, since: datetime) -> int:
        result = await db.execute(
            select(func.count(AuditLog.id)).where(AuditLog.created_at >= since)
        )
        return result.scalar_one() or 0

    async def statistics(
        self,
        db: AsyncSession,
        *,
        window_days: int,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Aggregate counts over the trailing ``window_days``."""
        now = as_utc(now) if now else datetime.now(timezone.utc)
        from_date = now - timedelta(days=window_days)
        in_window = AuditLog.created_at >= from_date

        basic = await db.execute(
            select(
                func.count(AuditLog.id),
                func.count(func.distinct(AuditLog.user_id)),
                func.count(func.distinct(AuditLog.entity_type.concat(":").concat(AuditLog.entity_id))),
            ).where(in_window)
        )
        total_actions, unique_users, unique_entities = basic.one()

        by_action_rows = await db.execute(
            select(AuditLog.action, func.count(AuditLog.id)).where(in_window).group_by(AuditLog.action)
        )
        actions_by_type = {
            (action.value if isinstance(action, AuditAction) else str(action)): count
            for action, count in by_action_rows
        }

        module_rows = await db.execute(
            select(AuditLog.module, func.count(AuditLog.id).label("count"))
            .where(in_window)
            .group_by(AuditLog.module)
            .order_by(func.count(AuditLog.id).desc())
        )
        module_counts = [(module, count) for module, count in module_rows]
        module_total = sum(count for _, count in module_counts)
        module_stats = [
            {
                "module": module,
                "count": count,
                "percentage": (count / module_total) * 100 if module_total else 0.0,
            }
            for module, count in module_counts
        ]

        user_rows = await db.execute(
            select(
                AuditLog.user_id,
                AuditLog.user_email,
                AuditLog.user_name,
                func.count(AuditLog.id).label("action_count"),
            )
            .where(in_window)
            .group_by(AuditLog.user_id, AuditLog.user_email, AuditLog.user_name)
            .order_by(func.count(AuditLog.id).desc())
            .limit(TOP_ACTIVITY_LIMIT)
        )
        user_activity = [
            {"user_id": user_id, "user_email": email, "user_name": name, "action_count": count}
            for user_id, email, name, count in user_rows
        ]

        entity_rows = await db.execute(
            select(
                AuditLog.entity_type,
                AuditLog.entity_id,
                AuditLog.entity_name,
                func.count(AuditLog.id).label("action_count"),
            )
            .where(in_window)
            .group_by(AuditLog.entity_type, AuditLog.entity_id, AuditLog.entity_name)
            .order_by(func.count(AuditLog.id).desc())
            .limit(TOP_ACTIVITY_LIMIT)
        )
        entity_activity = [
            {"entity_type": etype, "entity_id": eid, "entity_name": name, "action_count": count}
            for etype, eid, name, count in entity_rows
        ]

        entity_type_row = await db.execute(
            select(AuditLog.entity_type)
            .where(in_window)
            .group_by(AuditLog.entity_type)
            .order_by(func.count(AuditLog.id).desc())
            .limit(1)
        )
        most_modified_entity_type = entity_type_row.scalar_one_or_none()

        today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

        return {
            "window_days": window_days,
            "total_actions": total_actions or 0,
            "actions_by_type": actions_by_type,
            "unique_users": unique_users or 0,
            "unique_entities": unique_entities or 0,
            "most_active_user": user_activity[0]["user_email"] if user_activity else None,
            "most_modified_entity_type": most_modified_entity_type,
            "actions_today": await self._count_since(db, today_start),
            "actions_this_week": await self._count_since(db, now - timedelta(days=7)),
            "actions_this_month": await self._count_since(db, now - timedelta(days=30)),
            "module_stats": module_stats,
            "user_activity": user_activity,
            "entity_activity": entity_activity,
        }

    async def purge_older_than(self, db: AsyncSession, *, cutoff: datetime) -> int:
        """Bulk-delete logs created before ``cutoff`` together with their change rows."""
        cutoff = as_utc(cutoff)
        expired_ids = select(AuditLog.id).where(AuditLog.created_at < cutoff)

        await db.execute(
            delete(AuditEntityChange).where(AuditEntityChange.audit_log_id.in_(expired_ids))
        )
        result = await db.execute(delete(AuditLog).where(AuditLog.created_at < cutoff))
        await db.commit()
        return result.rowcount or 0


audit = CRUDAudit()

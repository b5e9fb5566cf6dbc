"""Audit trail models: one AuditLog per operation, one AuditEntityChange per changed field."""
import enum
import json
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from app.database import Base
from app.db.types import GUID, JSONBType, UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditAction(str, enum.Enum):
    """Audited action kinds."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    RESTORE = "RESTORE"
    ARCHIVE = "ARCHIVE"
    READ = "READ"
    DOWNLOAD = "DOWNLOAD"
    VIEW = "VIEW"
    EXPORT = "EXPORT"
    # Session actions, recorded through manual entries
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    LOGOUT_ALL = "LOGOUT_ALL"
    FORCE_LOGOUT = "FORCE_LOGOUT"


class ChangeType(str, enum.Enum):
    """Kind of a field-level change."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    REMOVED = "REMOVED"


ACTION_DESCRIPTIONS = {
    AuditAction.CREATE: "created",
    AuditAction.UPDATE: "updated",
    AuditAction.DELETE: "deleted",
    AuditAction.RESTORE: "restored",
    AuditAction.ARCHIVE: "archived",
    AuditAction.READ: "accessed",
    AuditAction.DOWNLOAD: "downloaded",
    AuditAction.VIEW: "viewed",
    AuditAction.EXPORT: "exported",
    AuditAction.LOGIN: "logged in to",
    AuditAction.LOGOUT: "logged out of",
    AuditAction.LOGOUT_ALL: "closed all sessions of",
    AuditAction.FORCE_LOGOUT: "forced logout of",
}

CHANGE_DESCRIPTIONS = {
    ChangeType.ADDED: "added",
    ChangeType.MODIFIED: "modified",
    ChangeType.REMOVED: "removed",
}

FIELD_DISPLAY_NAMES = {
    "full_name": "Full name",
    "fullName": "Full name",
    "email": "Email",
    "is_active": "Active",
    "isActive": "Active",
    "role_name": "Role",
    "title": "Title",
    "description": "Description",
    "status": "Status",
    "priority_id": "Priority",
    "due_date": "Due date",
    "resolved_at": "Resolution date",
    "notes": "Notes",
    "is_completed": "Completed",
    "assigned_user_id": "Assigned user",
    "created_at": "Created at",
    "updated_at": "Updated at",
}

MASKED_VALUE = "***"
EMPTY_VALUE = "(empty)"
DISPLAY_TRUNCATE_AT = 100


class AuditLog(Base):
    """Immutable record of one action against one entity."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        Index("ix_audit_logs_user_action_created", "user_id", "action", "created_at"),
    )

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)

    # Actor snapshot; user_id has no FK so the row outlives the user
    user_id = Column(GUID(), nullable=True, index=True)
    user_email = Column(String(255), nullable=False)
    user_name = Column(String(500), nullable=True)
    user_role = Column(String(100), nullable=True)

    action = Column(Enum(AuditAction, name="audit_action"), nullable=False, index=True)

    # Target snapshot
    entity_type = Column(String(100), nullable=False, index=True)
    entity_id = Column(String(255), nullable=False, index=True)
    entity_name = Column(String(500), nullable=True)

    # Context
    module = Column(String(50), nullable=False, index=True)
    operation_context = Column(JSONBType(), nullable=True)
    ip_address = Column(String(64), nullable=True, index=True)
    user_agent = Column(Text, nullable=True)
    session_id = Column(String(255), nullable=True)
    request_path = Column(String(500), nullable=True)
    request_method = Column(String(10), nullable=True)

    # Outcome
    operation_success = Column(Boolean, default=True, nullable=False)
    error_message = Column(Text, nullable=True)

    created_at = Column(UTCDateTime(), default=_utcnow, nullable=False, index=True)

    changes = relationship(
        "AuditEntityChange",
        back_populates="audit_log",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AuditEntityChange.field_name",
        lazy="selectin",
    )

    @property
    def change_count(self) -> int:
        return len(self.changes or [])

    @property
    def entity_display_name(self) -> str:
        return self.entity_name or f"{self.entity_type}#{self.entity_id}"

    @property
    def action_description(self) -> str:
        return ACTION_DESCRIPTIONS.get(AuditAction(self.action), str(self.action))

    @property
    def full_description(self) -> str:
        actor = self.user_name or self.user_email
        return f"{actor} {self.action_description} {self.entity_display_name}"


class AuditEntityChange(Base):
    """One field-level before/after pair belonging to an AuditLog."""

    __tablename__ = "audit_entity_changes"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    audit_log_id = Column(
        GUID(),
        ForeignKey("audit_logs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    field_name = Column(String(100), nullable=False, index=True)
    field_type = Column(String(50), nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    change_type = Column(Enum(ChangeType, name="audit_change_type"), nullable=False, index=True)
    is_sensitive = Column(Boolean, default=False, nullable=False)
    created_at = Column(UTCDateTime(), default=_utcnow, nullable=False)

    audit_log = relationship("AuditLog", back_populates="changes")

    def display_value(self, value):
        """Render a stored value for humans; sensitive values never leave as plain text."""
        if value is None or value == "":
            return EMPTY_VALUE
        if self.is_sensitive:
            return MASKED_VALUE
        try:
            parsed = json.loads(value)
        except (TypeError, ValueError):
            if len(value) > DISPLAY_TRUNCATE_AT:
                return value[:DISPLAY_TRUNCATE_AT] + "..."
            return value
        if isinstance(parsed, (dict, list)):
            return json.dumps(parsed, indent=2, ensure_ascii=False)
        return str(parsed)

    @property
    def old_display_value(self) -> str:
        return self.display_value(self.old_value)

    @property
    def new_display_value(self) -> str:
        return self.display_value(self.new_value)

    @property
    def field_display_name(self) -> str:
        return FIELD_DISPLAY_NAMES.get(self.field_name, self.field_name)

    @property
    def change_description(self) -> str:
        return CHANGE_DESCRIPTIONS.get(ChangeType(self.change_type), str(self.change_type))

    @property
    def full_change_description(self) -> str:
        field = self.field_display_name
        verb = self.change_description
        if self.change_type == ChangeType.ADDED:
            return f"{field} was {verb} with value: {self.new_display_value}"
        if self.change_type == ChangeType.REMOVED:
            return f"{field} was {verb} (previous value: {self.old_display_value})"
        return f'{field} was {verb} from "{self.old_display_value}" to "{self.new_display_value}"'

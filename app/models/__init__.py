"""Model modules."""
from app.models.user import User, Role
from app.models.case import Case
from app.models.todo import Todo
from app.models.audit import AuditLog, AuditEntityChange, AuditAction, ChangeType

__all__ = [
    "User",
    "Role",
    "Case",
    "Todo",
    "AuditLog",
    "AuditEntityChange",
    "AuditAction",
    "ChangeType",
]

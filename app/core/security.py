"""Security constants and permissions."""
from enum import Enum


ADMIN_ROLE_NAME = "admin"


class Permission(str, Enum):
    """Permission constants for RBAC."""

    # Case permissions
    CASE_CREATE = "case.create"
    CASE_VIEW = "case.view"
    CASE_UPDATE = "case.update"
    CASE_DELETE = "case.delete"

    # TODO permissions
    TODO_CREATE = "todo.create"
    TODO_VIEW = "todo.view"
    TODO_UPDATE = "todo.update"
    TODO_DELETE = "todo.delete"

    # User management
    USER_VIEW = "user.view"
    USER_CREATE = "user.create"
    USER_UPDATE = "user.update"
    USER_DELETE = "user.delete"

    # Audit visibility
    AUDIT_VIEW_OWN = "audit.view.own"
    AUDIT_VIEW_TEAM = "audit.view.team"
    AUDIT_VIEW_ALL = "audit.view.all"

    # Audit export
    AUDIT_EXPORT_OWN = "audit.export.own"
    AUDIT_EXPORT_TEAM = "audit.export.team"
    AUDIT_EXPORT_ALL = "audit.export.all"

    # Audit administration
    AUDIT_ADMIN_ALL = "audit.admin.all"
    AUDIT_CONFIG_ALL = "audit.config.all"


# Role definitions with permissions
ROLE_PERMISSIONS = {
    ADMIN_ROLE_NAME: list(Permission),
    "supervisor": [
        Permission.CASE_CREATE,
        Permission.CASE_VIEW,
        Permission.CASE_UPDATE,
        Permission.CASE_DELETE,
        Permission.TODO_CREATE,
        Permission.TODO_VIEW,
        Permission.TODO_UPDATE,
        Permission.TODO_DELETE,
        Permission.USER_VIEW,
        Permission.AUDIT_VIEW_TEAM,
        Permission.AUDIT_EXPORT_TEAM,
    ],
    "agent": [
        Permission.CASE_CREATE,
        Permission.CASE_VIEW,
        Permission.CASE_UPDATE,
        Permission.TODO_CREATE,
        Permission.TODO_VIEW,
        Permission.TODO_UPDATE,
        Permission.AUDIT_VIEW_OWN,
    ],
    "viewer": [
        Permission.CASE_VIEW,
        Permission.TODO_VIEW,
    ],
}

"""RBAC permission helpers and audit capability resolution."""
from dataclasses import dataclass
from typing import List, Set

from app.core.security import ADMIN_ROLE_NAME, Permission
from app.models.user import User


def get_user_permissions(user: User) -> List[str]:
    """Get all permissions for a user."""
    permissions: Set[str] = set()
    for role in user.roles or []:
        if role.permissions:
            permissions.update(role.permissions)
    return list(permissions)


def has_permission(user: User, permission: Permission) -> bool:
    """Check if user has a specific permission."""
    if not user.is_active:
        return False
    return permission.value in get_user_permissions(user)


def is_administrator(user: User) -> bool:
    return any(role.name == ADMIN_ROLE_NAME for role in user.roles or [])


@dataclass(frozen=True)
class AuditCapabilities:
    """What a user may do with the audit trail."""

    can_view_own: bool = False
    can_view_team: bool = False
    can_view_all: bool = False
    is_administrator: bool = False
    can_export: bool = False
    can_administer: bool = False

    @property
    def can_view_any(self) -> bool:
        return (
            self.is_administrator
            or self.can_view_all
            or self.can_view_team
            or self.can_view_own
        )


def resolve_audit_capabilities(user: User) -> AuditCapabilities:
    """Derive audit capabilities from the user's roles; administrators get everything."""
    if not user.is_active:
        return AuditCapabilities()

    if is_administrator(user):
        return AuditCapabilities(
            can_view_own=True,
            can_view_team=True,
            can_view_all=True,
            is_administrator=True,
            can_export=True,
            can_administer=True,
        )

    granted = set(get_user_permissions(user))
    return AuditCapabilities(
        can_view_own=Permission.AUDIT_VIEW_OWN.value in granted,
        can_view_team=Permission.AUDIT_VIEW_TEAM.value in granted,
        can_view_all=Permission.AUDIT_VIEW_ALL.value in granted,
        can_export=bool(
            granted
            & {
                Permission.AUDIT_EXPORT_OWN.value,
                Permission.AUDIT_EXPORT_TEAM.value,
                Permission.AUDIT_EXPORT_ALL.value,
            }
        ),
        can_administer=bool(
            granted & {Permission.AUDIT_ADMIN_ALL.value, Permission.AUDIT_CONFIG_ALL.value}
        ),
    )

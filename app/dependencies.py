"""FastAPI dependencies for authentication and authorization."""
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ForbiddenError, UnauthorizedError
from app.core.security import Permission
from app.database import get_db
from app.localization.helpers import get_locale_from_request
from app.models.user import User
from app.utils.permissions import AuditCapabilities, has_permission, resolve_audit_capabilities
from app.utils.security import token_subject

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_PREFIX}/auth/login")


def get_locale(request: Request) -> str:
    return get_locale_from_request(request)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
) -> User:
    """Get current authenticated user from JWT token."""
    credentials_exception = UnauthorizedError(locale=locale, key="errors.invalid_credentials")

    try:
        user_id = token_subject(token)
    except ValueError:
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise credentials_exception
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
    locale: str = Depends(get_locale),
) -> User:
    """Get current active user."""
    if not current_user.is_active:
        raise ForbiddenError(locale=locale, key="errors.user_inactive")
    return current_user


def require_permission(permission: Permission):
    """Dependency factory for requiring a specific permission."""

    async def permission_checker(
        current_user: User = Depends(get_current_active_user),
        locale: str = Depends(get_locale),
    ) -> User:
        if not has_permission(current_user, permission):
            raise ForbiddenError(locale=locale, key="errors.permission_required", permission=permission.value)
        return current_user

    return permission_checker


async def get_audit_capabilities(
    current_user: User = Depends(get_current_active_user),
) -> AuditCapabilities:
    return resolve_audit_capabilities(current_user)


async def require_audit_admin(
    current_user: User = Depends(get_current_active_user),
    locale: str = Depends(get_locale),
) -> User:
    """Caller must administer the audit trail (manual entries, retention)."""
    if not resolve_audit_capabilities(current_user).can_administer:
        raise ForbiddenError(locale=locale, key="audit.admin_denied")
    return current_user

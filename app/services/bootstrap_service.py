"""Bootstrap utilities for ensuring core roles and the default admin exist."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import ADMIN_ROLE_NAME, ROLE_PERMISSIONS
from app.models.user import Role, User
from app.services.auth_service import AuthService

logger = logging.getLogger(__name__)

DEFAULT_ROLE_DESCRIPTIONS = {
    ADMIN_ROLE_NAME: "Administrator with full access, including audit administration",
    "supervisor": "Supervises agents; sees team audit activity",
    "agent": "Works cases and TODOs; sees own audit activity",
    "viewer": "Read-only access to cases and TODOs",
}

DEFAULT_ADMIN_EMAIL = "admin@example.com"
DEFAULT_ADMIN_PASSWORD = "admin123"
DEFAULT_ADMIN_NAME = "Administrator"


def _role_permissions(role_name: str):
    return sorted(permission.value for permission in ROLE_PERMISSIONS.get(role_name, []))


async def ensure_roles(
    db: AsyncSession,
    *,
    role_names: Iterable[str],
    sync_permissions: bool = False,
) -> Dict[str, Role]:
    """Ensure that the given roles exist and return them in a mapping.

    With ``sync_permissions`` existing roles are reset to the defined permission set.
    """
    role_map: Dict[str, Role] = {}
    changed = False

    for role_name in role_names:
        result = await db.execute(select(Role).where(Role.name == role_name))
        role_obj = result.scalar_one_or_none()
        desired = _role_permissions(role_name)
        if role_obj is None:
            role_obj = Role(
                name=role_name,
                permissions=desired,
                description=DEFAULT_ROLE_DESCRIPTIONS.get(role_name),
            )
            db.add(role_obj)
            await db.flush()
            changed = True
            logger.info("Created role %s", role_name)
        elif sync_permissions and sorted(role_obj.permissions or []) != desired:
            role_obj.permissions = desired
            changed = True
            logger.info("Synchronized permissions for role %s", role_name)

        role_map[role_name] = role_obj

    if changed:
        await db.commit()

    return role_map


async def ensure_default_admin(
    db: AsyncSession,
    *,
    role_map: Optional[Dict[str, Role]] = None,
    email: str = DEFAULT_ADMIN_EMAIL,
    password: str = DEFAULT_ADMIN_PASSWORD,
    full_name: str = DEFAULT_ADMIN_NAME,
) -> User:
    """Ensure that the default administrator account exists and return it."""
    if role_map is None or ADMIN_ROLE_NAME not in role_map:
        role_map = await ensure_roles(db, role_names={ADMIN_ROLE_NAME})

    admin_role = role_map[ADMIN_ROLE_NAME]

    result = await db.execute(select(User).where(User.email == email))
    admin_user = result.scalar_one_or_none()
    if admin_user:
        if admin_role not in admin_user.roles:
            admin_user.roles.append(admin_role)
            await db.commit()
        return admin_user

    admin_user = User(
        email=email,
        password_hash=AuthService.hash_password(password),
        full_name=full_name,
        is_active=True,
    )
    admin_user.roles = [admin_role]
    db.add(admin_user)
    await db.commit()
    await db.refresh(admin_user)
    await db.refresh(admin_user, ["roles"])
    logger.info("Created default administrator %s", email)
    return admin_user

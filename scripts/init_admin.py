"""Script to create the default roles and admin user."""
import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.security import ROLE_PERMISSIONS  # noqa: E402
from app.database import AsyncSessionLocal  # noqa: E402
from app.services.bootstrap_service import (  # noqa: E402
    DEFAULT_ADMIN_EMAIL,
    DEFAULT_ADMIN_PASSWORD,
    ensure_default_admin,
    ensure_roles,
)


async def init_admin():
    """Create roles and the admin user if they don't exist."""
    async with AsyncSessionLocal() as db:
        role_map = await ensure_roles(db, role_names=ROLE_PERMISSIONS.keys(), sync_permissions=True)
        print("✓ Roles ready:", ", ".join(sorted(role_map)))

        admin_user = await ensure_default_admin(db, role_map=role_map)
        print("✓ Admin user ready:", admin_user.email)
        if admin_user.email == DEFAULT_ADMIN_EMAIL:
            print(f"  Default password: {DEFAULT_ADMIN_PASSWORD} (change it)")


if __name__ == "__main__":
    asyncio.run(init_admin())

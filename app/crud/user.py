"""User and role CRUD operations."""
from datetime import datetime, timezone
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.crud.base import CRUDBase
from app.models.user import Role, User
from app.schemas.user import UserCreate, UserUpdate
from app.services.auth_service import AuthService


class CRUDUser(CRUDBase[User, UserCreate, UserUpdate]):
    async def get_by_email(self, db: AsyncSession, *, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def search(
        self,
        db: AsyncSession,
        *,
        query: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[User]:
        """Users ordered by name; ``query`` matches email or full name."""
        stmt = select(User).order_by(User.full_name, User.email)
        if query:
            pattern = f"%{query}%"
            stmt = stmt.where(or_(User.email.ilike(pattern), User.full_name.ilike(pattern)))
        result = await db.execute(stmt.offset(skip).limit(limit))
        return list(result.scalars().all())

    async def resolve_roles(
        self,
        db: AsyncSession,
        *,
        role_ids: Optional[Iterable[UUID]] = None,
        role_names: Optional[Iterable[str]] = None,
    ) -> List[Role]:
        conditions = []
        if role_ids:
            conditions.append(Role.id.in_(list(role_ids)))
        if role_names:
            conditions.append(Role.name.in_(list(role_names)))
        if not conditions:
            return []
        result = await db.execute(select(Role).where(or_(*conditions)).order_by(Role.name))
        return list(result.scalars().all())

    async def _save(self, db: AsyncSession, db_obj: User) -> User:
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        await db.refresh(db_obj, ["roles"])
        return db_obj

    async def create(self, db: AsyncSession, *, obj_in: UserCreate) -> User:
        db_obj = User(
            email=obj_in.email,
            full_name=obj_in.full_name,
            is_active=obj_in.is_active,
            password_hash=AuthService.hash_password(obj_in.password),
        )
        db_obj.roles = await self.resolve_roles(
            db, role_ids=obj_in.role_ids, role_names=obj_in.role_names
        )
        return await self._save(db, db_obj)

    async def update(self, db: AsyncSession, *, db_obj: User, obj_in: UserUpdate) -> User:
        """Apply the fields that were sent; any role list replaces the current roles."""
        changes = obj_in.dict(exclude_unset=True, exclude={"password", "role_ids", "role_names"})
        for name, value in changes.items():
            setattr(db_obj, name, value)
        if obj_in.password:
            db_obj.password_hash = AuthService.hash_password(obj_in.password)
        if obj_in.role_ids is not None or obj_in.role_names is not None:
            db_obj.roles = await self.resolve_roles(
                db, role_ids=obj_in.role_ids, role_names=obj_in.role_names
            )
        return await self._save(db, db_obj)

    async def record_login(self, db: AsyncSession, *, db_obj: User) -> User:
        db_obj.last_login_at = datetime.now(timezone.utc)
        return await self._save(db, db_obj)


user = CRUDUser(User)

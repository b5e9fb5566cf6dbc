"""Case and TODO CRUD operations."""
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.crud.base import CRUDBase
from app.models.case import Case
from app.models.todo import Todo
from app.schemas.case import CaseCreate, CaseUpdate
from app.schemas.todo import TodoCreate, TodoUpdate


class CRUDCase(CRUDBase[Case, CaseCreate, CaseUpdate]):
    """CRUD operations for Case."""

    async def get_by_number(self, db: AsyncSession, *, case_number: str) -> Optional[Case]:
        result = await db.execute(select(Case).where(Case.case_number == case_number))
        return result.scalar_one_or_none()

    async def search(
        self,
        db: AsyncSession,
        *,
        status: Optional[str] = None,
        assigned_user_id: Optional[UUID] = None,
        query: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Case]:
        stmt = select(Case).order_by(Case.created_at.desc(), Case.case_number)
        if status:
            stmt = stmt.where(Case.status == status)
        if assigned_user_id:
            stmt = stmt.where(Case.assigned_user_id == assigned_user_id)
        if query:
            pattern = f"%{query}%"
            stmt = stmt.where(or_(Case.title.ilike(pattern), Case.case_number.ilike(pattern)))
        result = await db.execute(stmt.offset(skip).limit(limit))
        return list(result.scalars().all())


class CRUDTodo(CRUDBase[Todo, TodoCreate, TodoUpdate]):
    """CRUD operations for Todo."""

    async def for_case(self, db: AsyncSession, *, case_id: UUID) -> List[Todo]:
        result = await db.execute(
            select(Todo).where(Todo.case_id == case_id).order_by(Todo.created_at)
        )
        return list(result.scalars().all())


case = CRUDCase(Case)
todo = CRUDTodo(Todo)

"""TODO API endpoints."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.core.security import Permission
from app.crud.case import todo as todo_crud
from app.database import get_db
from app.dependencies import get_locale, require_permission
from app.middleware.audit import AuditedAPIRoute
from app.models.user import User
from app.schemas.todo import TodoCreate, TodoResponse, TodoUpdate

router = APIRouter(route_class=AuditedAPIRoute)


@router.get("", response_model=List[TodoResponse])
async def list_todos(
    skip: int = 0,
    limit: int = 100,
    is_completed: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(Permission.TODO_VIEW)),
):
    """List TODOs."""
    filters = {"is_completed": is_completed} if is_completed is not None else None
    return await todo_crud.get_multi(db, skip=skip, limit=limit, filters=filters)


@router.post("", response_model=TodoResponse, status_code=status.HTTP_201_CREATED)
async def create_todo(
    todo_data: TodoCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(Permission.TODO_CREATE)),
):
    """Create a TODO."""
    return await todo_crud.create(db, obj_in=todo_data)


@router.get("/{todo_id}", response_model=TodoResponse)
async def get_todo(
    todo_id: UUID,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(require_permission(Permission.TODO_VIEW)),
):
    """Get a TODO by ID."""
    todo_obj = await todo_crud.get(db, todo_id)
    if not todo_obj:
        raise NotFoundError(locale=locale, key="errors.todo_not_found")
    return todo_obj


@router.patch("/{todo_id}", response_model=TodoResponse)
async def update_todo(
    todo_id: UUID,
    todo_data: TodoUpdate,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(require_permission(Permission.TODO_UPDATE)),
):
    """Partially update a TODO."""
    todo_obj = await todo_crud.get(db, todo_id)
    if not todo_obj:
        raise NotFoundError(locale=locale, key="errors.todo_not_found")
    return await todo_crud.update(db, db_obj=todo_obj, obj_in=todo_data)


@router.delete("/{todo_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_todo(
    todo_id: UUID,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(require_permission(Permission.TODO_DELETE)),
):
    """Delete a TODO."""
    if not await todo_crud.remove(db, id=todo_id):
        raise NotFoundError(locale=locale, key="errors.todo_not_found")

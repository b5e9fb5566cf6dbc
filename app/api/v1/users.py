"""Users API endpoints (Admin)."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, NotFoundError
from app.core.security import Permission
from app.crud.user import user as user_crud
from app.database import get_db
from app.dependencies import get_locale, require_permission
from app.middleware.audit import AuditedAPIRoute
from app.models.user import User
from app.schemas.user import UserCreate, UserResponse, UserUpdate

router = APIRouter(route_class=AuditedAPIRoute)


@router.get("", response_model=List[UserResponse])
async def list_users(
    skip: int = 0,
    limit: int = 100,
    q: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(Permission.USER_VIEW)),
):
    """List users."""
    return await user_crud.search(db, query=q, skip=skip, limit=limit)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(require_permission(Permission.USER_CREATE)),
):
    """Create a new user."""
    if await user_crud.get_by_email(db, email=user_data.email):
        raise ConflictError(locale=locale, key="errors.user_exists")
    return await user_crud.create(db, obj_in=user_data)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(require_permission(Permission.USER_VIEW)),
):
    """Get a user by ID."""
    user_obj = await user_crud.get(db, user_id)
    if not user_obj:
        raise NotFoundError(locale=locale, key="errors.user_not_found")
    return user_obj


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: UUID,
    user_data: UserUpdate,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(require_permission(Permission.USER_UPDATE)),
):
    """Update a user."""
    user_obj = await user_crud.get(db, user_id)
    if not user_obj:
        raise NotFoundError(locale=locale, key="errors.user_not_found")

    if user_data.email and user_data.email != user_obj.email:
        if await user_crud.get_by_email(db, email=user_data.email):
            raise ConflictError(locale=locale, key="errors.user_exists")

    return await user_crud.update(db, db_obj=user_obj, obj_in=user_data)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(require_permission(Permission.USER_DELETE)),
):
    """Delete a user; their audit entries keep the actor snapshot."""
    if not await user_crud.remove(db, id=user_id):
        raise NotFoundError(locale=locale, key="errors.user_not_found")

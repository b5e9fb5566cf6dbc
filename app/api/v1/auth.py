"""Authentication API endpoints."""
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import UnauthorizedError
from app.crud.user import user as user_crud
from app.database import get_db
from app.dependencies import get_current_active_user, get_locale
from app.middleware.audit import AuditEntry, audit_writer
from app.middleware.audit_context import extract_audit_context
from app.models.audit import AuditAction
from app.models.user import User
from app.schemas.auth import AccessToken, LoginRequest, RefreshRequest, TokenPair
from app.schemas.user import UserResponse
from app.services.auth_service import AuthService

router = APIRouter()


@router.post("/login", response_model=TokenPair)
async def login(
    credentials: LoginRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
):
    """Exchange email and password for access and refresh tokens."""
    user = await AuthService.authenticate_user(db, credentials.email, credentials.password)
    if not user:
        raise UnauthorizedError(locale=locale, key="errors.incorrect_login")

    user = await user_crud.record_login(db, db_obj=user)
    entry = AuditEntry(
        action=AuditAction.LOGIN,
        context=extract_audit_context(request, user),
        entity_type="users",
        entity_id=str(user.id),
        entity_name=user.email,
    )
    background_tasks.add_task(audit_writer.write, entry)
    return AuthService.create_tokens(user)


@router.post("/refresh", response_model=AccessToken)
async def refresh_token(payload: RefreshRequest, db: AsyncSession = Depends(get_db)):
    return await AuthService.refresh_access_token(db, payload.refresh_token)


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_active_user)):
    return current_user

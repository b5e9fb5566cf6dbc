"""Authentication service."""
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import UnauthorizedError
from app.models.user import User
from app.utils.security import (
    create_access_token,
    create_refresh_token,
    get_password_hash,
    token_subject,
    verify_password,
)


class AuthService:
    """Credential checks and token issuance."""

    @staticmethod
    def hash_password(password: str) -> str:
        return get_password_hash(password)

    @staticmethod
    async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
        """The active user owning ``email`` if ``password`` matches, else None."""
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if user is None or not user.is_active:
            return None
        return user if verify_password(password, user.password_hash) else None

    @staticmethod
    def _access_token(user: User) -> dict:
        token = create_access_token(
            data={"sub": str(user.id), "email": user.email},
            expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )
        return {
            "access_token": token,
            "token_type": "bearer",
            "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        }

    @classmethod
    def create_tokens(cls, user: User) -> dict:
        return {
            **cls._access_token(user),
            "refresh_token": create_refresh_token(data={"sub": str(user.id)}),
        }

    @classmethod
    async def refresh_access_token(cls, db: AsyncSession, refresh_token: str) -> dict:
        """New access token for the active owner of a valid refresh token."""
        try:
            user_id = token_subject(refresh_token, "refresh")
        except ValueError:
            raise UnauthorizedError(key="errors.invalid_credentials")

        user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
        if user is None or not user.is_active:
            raise UnauthorizedError(key="errors.invalid_credentials")
        return cls._access_token(user)

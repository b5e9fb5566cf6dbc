"""Login and token schemas."""
from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class AccessToken(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token lifetime in seconds")


class TokenPair(AccessToken):
    """Issued at login; the refresh token is exchanged at ``/auth/refresh``."""

    refresh_token: str


class RefreshRequest(BaseModel):
    refresh_token: str

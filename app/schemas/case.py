"""Case schemas."""
from typing import Optional
from uuid import UUID
from pydantic import BaseModel
from datetime import datetime


class CaseBase(BaseModel):
    """Base case schema."""

    title: str
    description: Optional[str] = None
    status: str = "OPEN"
    priority: str = "MEDIUM"
    assigned_user_id: Optional[UUID] = None


class CaseCreate(CaseBase):
    """Case creation schema."""

    case_number: str


class CaseUpdate(BaseModel):
    """Case update schema; only sent fields are applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    assigned_user_id: Optional[UUID] = None


class CaseResponse(CaseBase):
    """Case response schema."""

    id: UUID
    case_number: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

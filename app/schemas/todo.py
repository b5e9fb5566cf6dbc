"""TODO schemas."""
from typing import Optional
from uuid import UUID
from pydantic import BaseModel
from datetime import date, datetime


class TodoBase(BaseModel):
    """Base TODO schema."""

    title: str
    description: Optional[str] = None
    priority_id: Optional[str] = None
    is_completed: bool = False
    due_date: Optional[date] = None
    case_id: Optional[UUID] = None
    assigned_user_id: Optional[UUID] = None


class TodoCreate(TodoBase):
    """TODO creation schema."""

    pass


class TodoUpdate(BaseModel):
    """TODO update schema; only sent fields are applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    priority_id: Optional[str] = None
    is_completed: Optional[bool] = None
    due_date: Optional[date] = None
    assigned_user_id: Optional[UUID] = None


class TodoResponse(TodoBase):
    """TODO response schema."""

    id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

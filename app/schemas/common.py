"""Common schemas."""
from typing import Literal
from pydantic import BaseModel, Field

from app.config import settings


class PaginationParams(BaseModel):
    """Page-based pagination parameters."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=settings.AUDIT_DEFAULT_PAGE_SIZE, ge=1)

    @property
    def effective_limit(self) -> int:
        """Requested limit clamped to the configured maximum."""
        return min(self.limit, settings.AUDIT_MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.effective_limit


class SortParams(BaseModel):
    """Sort parameters for audit listings."""

    sort_by: Literal["created_at", "action", "entity_type", "user_name", "module"] = "created_at"
    sort_order: Literal["ASC", "DESC"] = "DESC"


class PaginatedResponse(BaseModel):
    """Paginated response."""

    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool
    items: list

    class Config:
        from_attributes = True

"""TODO model."""
from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from app.database import Base
from app.db.types import GUID


class Todo(Base):
    """Work item, optionally attached to a case."""

    __tablename__ = "todos"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    case_id = Column(GUID(), ForeignKey("cases.id", ondelete="CASCADE"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    priority_id = Column(String(50), nullable=True)
    is_completed = Column(Boolean, default=False, nullable=False)
    due_date = Column(Date, nullable=True)
    assigned_user_id = Column(GUID(), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    case = relationship("Case", back_populates="todos")

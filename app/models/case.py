"""Case model."""
from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from app.database import Base
from app.db.types import GUID


class Case(Base):
    """Support case."""

    __tablename__ = "cases"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    case_number = Column(String(50), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(50), nullable=False, default="OPEN", index=True)
    priority = Column(String(50), nullable=False, default="MEDIUM")
    assigned_user_id = Column(GUID(), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    todos = relationship("Todo", back_populates="case", cascade="all, delete-orphan", passive_deletes=True)

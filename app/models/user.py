"""Users and roles."""
import uuid

from sqlalchemy import Boolean, Column, ForeignKey, String, Table, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base
from app.db.types import GUID, JSONBType, UTCDateTime

user_role_association = Table(
    "user_role_association",
    Base.metadata,
    Column("user_id", GUID(), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", GUID(), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(UTCDateTime(), nullable=True)
    created_at = Column(UTCDateTime(), nullable=False, server_default=func.now())
    updated_at = Column(UTCDateTime(), nullable=False, server_default=func.now(), onupdate=func.now())

    roles = relationship("Role", secondary=user_role_association, back_populates="users", lazy="selectin")

    @property
    def role_name(self) -> str:
        """Primary role name, copied into audit snapshots."""
        return self.roles[0].name if self.roles else "unknown"


class Role(Base):
    """Named bundle of permission strings."""

    __tablename__ = "roles"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    permissions = Column(JSONBType(), nullable=False, default=list)

    users = relationship("User", secondary=user_role_association, back_populates="roles")

"""
Formmaker Backend — User Model
================================

What:  ORM model for the `users` table.
Who:   Referenced as creator and member by teams, folders and forms.
       Users are never owned by another entity. A user is removed only by
       deleting their own account (UserService.delete_user), which runs its
       cascade explicitly.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from formmaker.database import Base
from formmaker.models.base import TimestampMixin


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Stored lower-cased; lookups by email are case-insensitive
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    avatar_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # Organization details, editable from the profile
    organization_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    organization_logo: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    __table_args__ = (Index("idx_users_username", "username"),)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"

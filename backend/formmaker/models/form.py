"""
Formmaker Backend — Form Model
================================

What:  ORM model for the `forms` table and the `form_favourites` association.

Placement:
    A form lives in exactly one of four places:

        team_id  folder_id   placement
        ───────  ─────────   ──────────────────────
        NULL     NULL        personal ("my forms")
        NULL     set         personal folder
        set      NULL        team
        set      set         folder of that team

    When both are set, the folder belongs to the same team.

Lifecycle:
    deleted_at NULL → live; deleted_at set → in the trash (soft-deleted).
    A second delete removes the row and every response to it.

Elements:
    `elements` is an ordered JSON list of element descriptors:
        {"id", "type", "config": {...}, "fields": [{"id", "name"}], "gridSize": {"x", "y", "w", "h"}}
    Responses reference elements and fields by id.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Uuid,
    false,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from formmaker.database import Base
from formmaker.models.base import JSONType, TimestampMixin, as_utc, utcnow

form_favourites = Table(
    "form_favourites",
    Base.metadata,
    Column("form_id", Uuid, ForeignKey("forms.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Index("idx_form_favourites_user_id", "user_id"),
)


class Form(TimestampMixin, Base):
    __tablename__ = "forms"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="Untitled form")
    logo_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    settings: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    elements: Mapped[List[Dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)

    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    folder_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("folders.id"), nullable=True, index=True
    )
    team_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("teams.id"), nullable=True, index=True
    )

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    # ── Availability ──────────────────────────────────────────────────────
    disabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    disabled_on_specific_date: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    disabled_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    # When true the creator is not emailed about new responses
    disabled_notification: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    total_submissions: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )

    __table_args__ = (
        Index("idx_forms_creator_created_at", "creator_id", "created_at"),
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def is_accepting_responses(self, now: Optional[datetime] = None) -> bool:
        """False once the form is disabled, trashed, or past its scheduled close date."""
        if self.disabled or self.is_deleted:
            return False
        if self.disabled_on_specific_date and self.disabled_date is not None:
            now = as_utc(now or utcnow())
            if now >= as_utc(self.disabled_date):
                return False
        return True

    def __repr__(self) -> str:
        return (
            f"<Form(id={self.id}, title='{self.title}', "
            f"team_id={self.team_id}, folder_id={self.folder_id})>"
        )

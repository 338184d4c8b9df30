"""
Formmaker Backend — Folder Model
==================================

What:  ORM model for the `folders` table.

A folder is either personal (team_id is NULL) or belongs to exactly one team.
Deleting a folder deletes the forms inside it (and their responses); that
cascade is run explicitly by FolderService, in order, inside one transaction.
"""

import uuid
from typing import Optional

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from formmaker.database import Base
from formmaker.models.base import TimestampMixin


class Folder(TimestampMixin, Base):
    __tablename__ = "folders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    team_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("teams.id"), nullable=True, index=True
    )

    def __repr__(self) -> str:
        return f"<Folder(id={self.id}, name='{self.name}', team_id={self.team_id})>"

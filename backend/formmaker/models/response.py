"""
Formmaker Backend — Response Model
====================================

What:  ORM model for the `responses` table: one submission to one form.

Responses are append-only. They are never edited; they are removed one at a
time, in bulk, or together with their form.

form_answers layout:
    [{"elementId": "...", "answers": [{"fieldId": "...", "text": "..."}]}, ...]
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from formmaker.database import Base
from formmaker.models.base import JSONType, utcnow


class Response(Base):
    __tablename__ = "responses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    form_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False
    )
    # 1-based submission number: the form's total_submissions + 1 at creation
    index: Mapped[int] = mapped_column(Integer, nullable=False)
    form_answers: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_responses_form_id_created_at", "form_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Response(id={self.id}, form_id={self.form_id}, index={self.index})>"

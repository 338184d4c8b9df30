"""
Formmaker Backend — Team Model
================================

What:  ORM models for the `teams` table, the `team_members` association and
       pending `team_invitations`.
How:   Membership is a plain association table. Services insert and delete
       rows on it directly instead of going through an ORM collection, so no
       lazy load is ever triggered inside an async session.

Invariant:
    The creator is always a member and always holds view, edit and delete on
    the team. Membership-removal operations refuse to remove the creator.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Table, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from formmaker.database import Base
from formmaker.models.base import TimestampMixin

team_members = Table(
    "team_members",
    Base.metadata,
    Column("team_id", Uuid, ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Index("idx_team_members_user_id", "user_id"),
)


class Team(TimestampMixin, Base):
    __tablename__ = "teams"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    logo_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name='{self.name}')>"


class TeamInvitation(TimestampMixin, Base):
    """
    An emailed invitation to join a team.

    The invitee joins by presenting the emailed token while signed in with the
    invited email address. Only the token's SHA-256 digest is stored. An
    invitation is single-use and expires at `expires_at`.
    """

    __tablename__ = "team_invitations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    team_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Stored lower-cased, compared with the accepting user's email
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    inviter_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    def __repr__(self) -> str:
        return f"<TeamInvitation(team_id={self.team_id}, email='{self.email}')>"

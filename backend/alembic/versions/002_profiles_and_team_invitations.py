"""Profiles and team invitations

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Adds organization details and password_changed_at to users, and
       creates team_invitations for pending, single-use team invitations.
How:   New user columns are nullable, so existing rows need no backfill.

Rollback: downgrade() drops team_invitations and the new user columns
          (outstanding invitations and organization details are lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("users", sa.Column("organization_name", sa.String(255), nullable=True))
    op.add_column("users", sa.Column("organization_logo", sa.String(1024), nullable=True))
    op.add_column("users", sa.Column("password_changed_at", sa.TIMESTAMP(timezone=True), nullable=True))

    op.create_table(
        "team_invitations",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("team_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.String(320), nullable=False, comment="Stored lower-case"),
        sa.Column("token_hash", sa.String(64), nullable=False, comment="SHA-256 hex digest of the emailed token"),
        sa.Column("inviter_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token_hash"),
    )
    op.create_index("ix_team_invitations_team_id", "team_invitations", ["team_id"])


def downgrade() -> None:
    op.drop_index("ix_team_invitations_team_id", table_name="team_invitations")
    op.drop_table("team_invitations")
    op.drop_column("users", "password_changed_at")
    op.drop_column("users", "organization_logo")
    op.drop_column("users", "organization_name")

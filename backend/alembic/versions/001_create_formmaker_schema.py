"""Create formmaker schema

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates users, teams, team_members, folders, forms, form_favourites,
       responses and permission_grants.
How:   UUID primary keys, TIMESTAMP WITH TIME ZONE, JSONB for form content
       and answers.

Rollback: downgrade() drops every table (destructive: all data lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(320), nullable=False, comment="Stored lower-case"),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("avatar_url", sa.String(1024), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("idx_users_username", "users", ["username"])

    op.create_table(
        "teams",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("logo_url", sa.String(1024), nullable=True),
        sa.Column("creator_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_teams_creator_id", "teams", ["creator_id"])

    op.create_table(
        "team_members",
        sa.Column("team_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.PrimaryKeyConstraint("team_id", "user_id"),
    )
    op.create_index("idx_team_members_user_id", "team_members", ["user_id"])

    op.create_table(
        "folders",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("color", sa.String(32), nullable=True),
        sa.Column("creator_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("team_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("teams.id"), nullable=True,
                  comment="NULL for personal folders"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_folders_creator_id", "folders", ["creator_id"])
    op.create_index("ix_folders_team_id", "folders", ["team_id"])

    op.create_table(
        "forms",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("logo_url", sa.String(1024), nullable=True),
        sa.Column("settings", postgresql.JSONB(), nullable=False),
        sa.Column("elements", postgresql.JSONB(), nullable=False),
        sa.Column("creator_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("folder_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("folders.id"), nullable=True),
        sa.Column("team_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("teams.id"), nullable=True),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True, comment="Set while the form is in the trash"),
        sa.Column("disabled", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("disabled_on_specific_date", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("disabled_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("disabled_notification", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("total_submissions", sa.Integer(), server_default=sa.text("0"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_forms_creator_id", "forms", ["creator_id"])
    op.create_index("ix_forms_folder_id", "forms", ["folder_id"])
    op.create_index("ix_forms_team_id", "forms", ["team_id"])
    op.create_index("idx_forms_creator_created_at", "forms", ["creator_id", "created_at"])

    op.create_table(
        "form_favourites",
        sa.Column("form_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("forms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.PrimaryKeyConstraint("form_id", "user_id"),
    )
    op.create_index("idx_form_favourites_user_id", "form_favourites", ["user_id"])

    op.create_table(
        "responses",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("form_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("forms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("index", sa.Integer(), nullable=False, comment="1-based submission number within the form"),
        sa.Column("form_answers", postgresql.JSONB(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_responses_form_id_created_at", "responses", ["form_id", "created_at"])

    # Per-user capabilities on teams, folders and forms
    op.create_table(
        "permission_grants",
        sa.Column("resource_type", sa.String(16), nullable=False),
        sa.Column("resource_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("capability", sa.String(16), nullable=False),
        sa.Column("origin", sa.String(16), nullable=False),
        sa.PrimaryKeyConstraint("resource_type", "resource_id", "user_id", "capability"),
    )
    op.create_index(
        "idx_permission_grants_user",
        "permission_grants",
        ["resource_type", "user_id", "capability"],
    )


def downgrade() -> None:
    """Drops every table in reverse dependency order."""
    op.drop_index("idx_permission_grants_user", table_name="permission_grants")
    op.drop_table("permission_grants")
    op.drop_index("idx_responses_form_id_created_at", table_name="responses")
    op.drop_table("responses")
    op.drop_index("idx_form_favourites_user_id", table_name="form_favourites")
    op.drop_table("form_favourites")
    for name in ("idx_forms_creator_created_at", "ix_forms_team_id", "ix_forms_folder_id", "ix_forms_creator_id"):
        op.drop_index(name, table_name="forms")
    op.drop_table("forms")
    op.drop_index("ix_folders_team_id", table_name="folders")
    op.drop_index("ix_folders_creator_id", table_name="folders")
    op.drop_table("folders")
    op.drop_index("idx_team_members_user_id", table_name="team_members")
    op.drop_table("team_members")
    op.drop_index("ix_teams_creator_id", table_name="teams")
    op.drop_table("teams")
    op.drop_index("idx_users_username", table_name="users")
    op.drop_table("users")

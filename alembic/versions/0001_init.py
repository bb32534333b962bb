"""init users, bots, files, file_to_bot

Revision ID: 0001_init
Revises:
Create Date: 2026-10-17

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("password_hash", sa.String(length=100), nullable=False),
        sa.Column("openai_api_key", sa.String(length=256), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "bots",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("instruction", sa.Text(), nullable=False),
        sa.Column("assistant_id", sa.String(length=128), nullable=True),
        sa.Column("vector_store_id", sa.String(length=128), nullable=True),
        sa.Column("chat_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("chat_app_id", sa.String(length=128), nullable=True),
        sa.Column("chat_region", sa.String(length=32), nullable=True),
        sa.Column("chat_api_key", sa.String(length=256), nullable=True),
        sa.Column("chat_bot_uid", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_bots_user_id", "bots", ["user_id"])

    op.create_table(
        "files",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("file_id", sa.String(length=128), nullable=False),
        sa.Column("filename", sa.String(length=512), nullable=False),
        sa.Column("purpose", sa.String(length=32), nullable=False),
        sa.Column("bytes", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("file_id", name="uq_files_file_id"),
    )
    op.create_index("ix_files_user_id", "files", ["user_id"])

    op.create_table(
        "file_to_bot",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("file_id", sa.String(length=36), sa.ForeignKey("files.id"), nullable=False),
        sa.Column("bot_id", sa.String(length=36), sa.ForeignKey("bots.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("file_id", "bot_id", name="uq_file_to_bot_pair"),
    )
    op.create_index("ix_file_to_bot_file_id", "file_to_bot", ["file_id"])
    op.create_index("ix_file_to_bot_bot_id", "file_to_bot", ["bot_id"])


def downgrade() -> None:
    op.drop_index("ix_file_to_bot_bot_id", table_name="file_to_bot")
    op.drop_index("ix_file_to_bot_file_id", table_name="file_to_bot")
    op.drop_table("file_to_bot")
    op.drop_index("ix_files_user_id", table_name="files")
    op.drop_table("files")
    op.drop_index("ix_bots_user_id", table_name="bots")
    op.drop_table("bots")
    op.drop_table("users")

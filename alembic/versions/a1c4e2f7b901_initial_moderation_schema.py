"""initial moderation schema

Revision ID: a1c4e2f7b901
Revises:
Create Date: 2026-10-19 12:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c4e2f7b901"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "managed_chats",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("chat_name", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        sa.Column("health_status", sa.String(length=20), nullable=False),
        sa.Column("last_health_check", sa.DateTime(), nullable=True),
        sa.Column("added_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_managed_chats_chat_id", "managed_chats", ["chat_id"], unique=True)

    op.create_table(
        "chat_admins",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("telegram_id", sa.BigInteger(), nullable=False),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("is_creator", sa.Boolean(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_linked", sa.Boolean(), nullable=False),
        sa.Column("promoted_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("chat_id", "telegram_id", name="uq_chat_admin"),
    )
    op.create_index("ix_chat_admins_telegram_id", "chat_admins", ["telegram_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("message_id", sa.BigInteger(), nullable=False),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=True),
        sa.Column("text", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("deletion_source", sa.String(length=50), nullable=True),
        sa.UniqueConstraint("chat_id", "message_id", name="uq_message_chat"),
    )
    op.create_index("ix_messages_user_id", "messages", ["user_id"])

    op.create_table(
        "user_actions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "action_type",
            sa.Enum("BAN", "WARN", "TRUST", "UNTRUST", "UNBAN", "RESTRICT", name="user_action_type_enum", native_enum=False),
            nullable=False,
        ),
        sa.Column("chat_id", sa.BigInteger(), nullable=True),
        sa.Column("message_id", sa.BigInteger(), nullable=True),
        sa.Column("issued_by_type", sa.String(length=30), nullable=False),
        sa.Column("issued_by_id", sa.String(length=64), nullable=True),
        sa.Column("issued_by_name", sa.String(), nullable=True),
        sa.Column("issued_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
    )
    op.create_index("ix_user_actions_user_type", "user_actions", ["user_id", "action_type"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("actor_type", sa.String(length=30), nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=True),
        sa.Column("actor_name", sa.String(), nullable=True),
        sa.Column("target_user_id", sa.BigInteger(), nullable=True),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("message_id", sa.BigInteger(), nullable=False),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("reported_by_user_id", sa.BigInteger(), nullable=True),
        sa.Column("reported_by_name", sa.String(), nullable=True),
        sa.Column("reported_at", sa.DateTime(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("PENDING", "REVIEWED", "DISMISSED", name="report_status_enum", native_enum=False),
            nullable=False,
        ),
        sa.Column("is_automated", sa.Boolean(), nullable=False),
        sa.Column("admin_notes", sa.Text(), nullable=True),
    )

    op.create_table(
        "training_samples",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("message_text", sa.Text(), nullable=False),
        sa.Column("is_spam", sa.Boolean(), nullable=False),
        sa.Column("source", sa.String(length=30), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("added_by_type", sa.String(length=30), nullable=True),
        sa.Column("added_by_id", sa.String(length=64), nullable=True),
        sa.Column("added_at", sa.DateTime(), nullable=True),
        sa.Column("message_id", sa.BigInteger(), nullable=True),
        sa.Column("content_hash", sa.String(length=16), nullable=True),
    )
    op.create_index("ix_training_samples_content_hash", "training_samples", ["content_hash"])

    op.create_table(
        "moderation_config",
        sa.Column("chat_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("auto_ban_threshold", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("review_threshold", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("confident_threshold", sa.Integer(), nullable=False, server_default="85"),
        sa.Column("critical_checks", sa.Text(), nullable=True),
        sa.Column("warn_auto_ban_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("warn_auto_ban_threshold", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("warn_auto_ban_reason", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("moderation_config")
    op.drop_index("ix_training_samples_content_hash", table_name="training_samples")
    op.drop_table("training_samples")
    op.drop_table("reports")
    op.drop_table("audit_log")
    op.drop_index("ix_user_actions_user_type", table_name="user_actions")
    op.drop_table("user_actions")
    op.drop_index("ix_messages_user_id", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_chat_admins_telegram_id", table_name="chat_admins")
    op.drop_table("chat_admins")
    op.drop_index("ix_managed_chats_chat_id", table_name="managed_chats")
    op.drop_table("managed_chats")

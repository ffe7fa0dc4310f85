from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_create_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "conversation_sessions",
        sa.Column("user_id", sa.String(), primary_key=True),
        sa.Column("step", sa.String(), nullable=False, server_default="start"),
        sa.Column("intended_action", sa.String(), nullable=False, server_default="none"),
        sa.Column("invalid_prompt_warned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("data", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "build_requests",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("intended_action", sa.String(), nullable=False, server_default="create"),
        sa.Column("dedupe_key", sa.String(), nullable=False),
        sa.Column("hosting_slot_id", sa.String(), nullable=True),
        sa.Column("result_url", sa.String(), nullable=True),
        sa.Column("thumbnail_url", sa.String(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("dedupe_key", name="uq_build_requests_dedupe_key"),
    )
    op.create_index("ix_build_requests_user_id", "build_requests", ["user_id"])
    op.create_index("ix_build_requests_hosting_slot_id", "build_requests", ["hosting_slot_id"])
    op.create_index("ix_build_requests_result_url", "build_requests", ["result_url"])
    op.create_index("ix_build_requests_user_status", "build_requests", ["user_id", "status"])

    op.create_table(
        "whatsapp_message_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("direction", sa.String(), nullable=False),
        sa.Column("to_phone", sa.String(), nullable=True),
        sa.Column("from_phone", sa.String(), nullable=True),
        sa.Column("message_type", sa.String(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("provider_message_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_whatsapp_message_log_to_phone", "whatsapp_message_log", ["to_phone"])


def downgrade() -> None:
    op.drop_index("ix_whatsapp_message_log_to_phone", table_name="whatsapp_message_log")
    op.drop_table("whatsapp_message_log")
    op.drop_index("ix_build_requests_user_status", table_name="build_requests")
    op.drop_index("ix_build_requests_result_url", table_name="build_requests")
    op.drop_index("ix_build_requests_hosting_slot_id", table_name="build_requests")
    op.drop_index("ix_build_requests_user_id", table_name="build_requests")
    op.drop_table("build_requests")
    op.drop_table("conversation_sessions")

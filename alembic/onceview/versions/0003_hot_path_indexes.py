"""add hot-path indexes and the one-active-default-video guard

Revision ID: 0003_hot_path_indexes
Revises: 0002_activity_log_immutability
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "0003_hot_path_indexes"
down_revision = "0002_activity_log_immutability"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_index(
        "ix_video_tokens_owner_id_created_at",
        "video_tokens",
        ["owner_id", "created_at"],
    )
    op.create_index(
        "ix_video_tokens_owner_id_status_expires_at",
        "video_tokens",
        ["owner_id", "status", "expires_at"],
    )
    op.create_index(
        "ix_token_activity_logs_created_at",
        "token_activity_logs",
        ["created_at"],
    )
    op.create_index(
        "ix_outbox_events_status_created_at",
        "outbox_events",
        ["status", "created_at"],
    )
    op.create_index(
        "uq_videos_owner_active_default",
        "videos",
        ["owner_id"],
        unique=True,
        postgresql_where=sa.text("kind = 'default' AND is_active"),
    )


def downgrade() -> None:
    op.drop_index("uq_videos_owner_active_default", table_name="videos")
    op.drop_index("ix_outbox_events_status_created_at", table_name="outbox_events")
    op.drop_index("ix_token_activity_logs_created_at", table_name="token_activity_logs")
    op.drop_index("ix_video_tokens_owner_id_status_expires_at", table_name="video_tokens")
    op.drop_index("ix_video_tokens_owner_id_created_at", table_name="video_tokens")

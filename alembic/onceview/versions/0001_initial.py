"""initial onceview schema

Revision ID: 0001_onceview
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_onceview"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("profile_token", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=100), nullable=True),
        sa.Column("age", sa.Integer(), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("job_title", sa.String(length=150), nullable=True),
        sa.Column("hobbies", sa.Text(), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_profiles_profile_token", "profiles", ["profile_token"], unique=True)

    op.create_table(
        "profile_photos",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("photo_url", sa.Text(), nullable=False),
        sa.Column("photo_order", sa.Integer(), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["owner_id"], ["profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("owner_id", "photo_order", name="uq_profile_photo_order"),
    )
    op.create_index("ix_profile_photos_owner_id", "profile_photos", ["owner_id"])

    op.create_table(
        "profile_social_links",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("platform", sa.String(length=50), nullable=False),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(["owner_id"], ["profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("owner_id", "platform", name="uq_profile_social_platform"),
    )
    op.create_index("ix_profile_social_links_owner_id", "profile_social_links", ["owner_id"])

    op.create_table(
        "videos",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("video_url", sa.Text(), nullable=False),
        sa.Column("thumbnail_url", sa.Text(), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_viewed", sa.Boolean(), nullable=False),
        sa.Column("first_viewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("viewer_token_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("duration_seconds >= 15 AND duration_seconds <= 35", name="ck_videos_duration"),
        sa.CheckConstraint("kind IN ('default', 'custom')", name="ck_videos_kind"),
        sa.ForeignKeyConstraint(["owner_id"], ["profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_videos_owner_id", "videos", ["owner_id"])
    op.create_index("ix_videos_is_active", "videos", ["is_active"])

    op.create_table(
        "video_tokens",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("token_code", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("state_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("video_id", sa.String(), nullable=False),
        sa.Column("private_label", sa.String(length=255), nullable=True),
        sa.Column("private_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("viewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("viewer_ip", sa.String(length=64), nullable=True),
        sa.Column("viewer_user_agent", sa.Text(), nullable=True),
        sa.CheckConstraint("status IN ('active', 'viewed', 'expired', 'revoked')", name="ck_video_tokens_status"),
        sa.ForeignKeyConstraint(["owner_id"], ["profiles.id"]),
        sa.ForeignKeyConstraint(["video_id"], ["videos.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_video_tokens_token_code", "video_tokens", ["token_code"], unique=True)
    op.create_index("ix_video_tokens_status", "video_tokens", ["status"])
    op.create_index("ix_video_tokens_owner_id", "video_tokens", ["owner_id"])
    op.create_index("ix_video_tokens_video_id", "video_tokens", ["video_id"])
    op.create_index("ix_video_tokens_expires_at", "video_tokens", ["expires_at"])

    op.create_table(
        "token_activity_logs",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("log_type", sa.String(length=20), nullable=False),
        sa.Column("profile_id", sa.String(), nullable=True),
        sa.Column("video_token_id", sa.String(), nullable=True),
        sa.Column("activity_type", sa.String(length=50), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "(profile_id IS NOT NULL AND video_token_id IS NULL) OR "
            "(profile_id IS NULL AND video_token_id IS NOT NULL)",
            name="ck_activity_one_target",
        ),
        sa.ForeignKeyConstraint(["profile_id"], ["profiles.id"]),
        sa.ForeignKeyConstraint(["video_token_id"], ["video_tokens.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_token_activity_logs_profile_id", "token_activity_logs", ["profile_id"])
    op.create_index("ix_token_activity_logs_video_token_id", "token_activity_logs", ["video_token_id"])
    op.create_index("ix_token_activity_logs_activity_type", "token_activity_logs", ["activity_type"])

    op.create_table(
        "viewer_responses",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("response_type", sa.String(length=20), nullable=False),
        sa.Column("profile_id", sa.String(), nullable=True),
        sa.Column("video_token_id", sa.String(), nullable=True),
        sa.Column("interest_level", sa.String(length=20), nullable=False),
        sa.Column("viewer_name", sa.String(length=100), nullable=False),
        sa.Column("viewer_email", sa.String(length=255), nullable=True),
        sa.Column("viewer_phone", sa.String(length=20), nullable=True),
        sa.Column("viewer_instagram", sa.String(length=100), nullable=True),
        sa.Column("preferred_contact_method", sa.String(length=20), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "(profile_id IS NOT NULL AND video_token_id IS NULL) OR "
            "(profile_id IS NULL AND video_token_id IS NOT NULL)",
            name="ck_response_one_target",
        ),
        sa.CheckConstraint(
            "interest_level IN ('interested', 'maybe_later', 'not_interested')",
            name="ck_response_interest_level",
        ),
        sa.ForeignKeyConstraint(["profile_id"], ["profiles.id"]),
        sa.ForeignKeyConstraint(["video_token_id"], ["video_tokens.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_viewer_responses_profile_id", "viewer_responses", ["profile_id"])
    op.create_index("uq_viewer_responses_video_token_id", "viewer_responses", ["video_token_id"], unique=True)

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_email_sent", sa.Boolean(), nullable=False),
        sa.Column("email_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["owner_id"], ["profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_owner_id_is_read", "notifications", ["owner_id", "is_read"])

    op.create_table(
        "outbox_events",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("aggregate_type", sa.String(), nullable=False),
        sa.Column("aggregate_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("topic", sa.String(), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_outbox_events_aggregate_id", "outbox_events", ["aggregate_id"])
    op.create_index("ix_outbox_events_event_type", "outbox_events", ["event_type"])
    op.create_index("ix_outbox_events_status", "outbox_events", ["status"])


def downgrade() -> None:
    op.drop_index("ix_outbox_events_status", table_name="outbox_events")
    op.drop_index("ix_outbox_events_event_type", table_name="outbox_events")
    op.drop_index("ix_outbox_events_aggregate_id", table_name="outbox_events")
    op.drop_table("outbox_events")
    op.drop_index("ix_notifications_owner_id_is_read", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("uq_viewer_responses_video_token_id", table_name="viewer_responses")
    op.drop_index("ix_viewer_responses_profile_id", table_name="viewer_responses")
    op.drop_table("viewer_responses")
    op.drop_index("ix_token_activity_logs_activity_type", table_name="token_activity_logs")
    op.drop_index("ix_token_activity_logs_video_token_id", table_name="token_activity_logs")
    op.drop_index("ix_token_activity_logs_profile_id", table_name="token_activity_logs")
    op.drop_table("token_activity_logs")
    op.drop_index("ix_video_tokens_expires_at", table_name="video_tokens")
    op.drop_index("ix_video_tokens_video_id", table_name="video_tokens")
    op.drop_index("ix_video_tokens_owner_id", table_name="video_tokens")
    op.drop_index("ix_video_tokens_status", table_name="video_tokens")
    op.drop_index("ix_video_tokens_token_code", table_name="video_tokens")
    op.drop_table("video_tokens")
    op.drop_index("ix_videos_is_active", table_name="videos")
    op.drop_index("ix_videos_owner_id", table_name="videos")
    op.drop_table("videos")
    op.drop_index("ix_profile_social_links_owner_id", table_name="profile_social_links")
    op.drop_table("profile_social_links")
    op.drop_index("ix_profile_photos_owner_id", table_name="profile_photos")
    op.drop_table("profile_photos")
    op.drop_index("ix_profiles_profile_token", table_name="profiles")
    op.drop_table("profiles")

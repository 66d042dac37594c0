"""Token store database models.

This DB is the source of truth for profiles, videos, disposable video tokens,
and the append-only activity trail written by every token state change.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from onceview.common.db import Base, JSONType, utcnow


class Profile(Base):
    """One per owner; carries the permanent, reusable profile token."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    profile_token: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    job_title: Mapped[str | None] = mapped_column(String(150), nullable=True)
    hobbies: Mapped[str | None] = mapped_column(Text, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ProfilePhoto(Base):
    __tablename__ = "profile_photos"
    __table_args__ = (UniqueConstraint("owner_id", "photo_order", name="uq_profile_photo_order"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    owner_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), index=True)
    photo_url: Mapped[str] = mapped_column(Text)
    photo_order: Mapped[int] = mapped_column(Integer)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)


class ProfileSocialLink(Base):
    __tablename__ = "profile_social_links"
    __table_args__ = (UniqueConstraint("owner_id", "platform", name="uq_profile_social_platform"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    owner_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), index=True)
    platform: Mapped[str] = mapped_column(String(50))
    username: Mapped[str] = mapped_column(String(100))
    url: Mapped[str] = mapped_column(Text)


class Video(Base):
    """Uploaded clip reference; `default` videos are retired on replacement."""

    __tablename__ = "videos"
    __table_args__ = (
        CheckConstraint("duration_seconds >= 15 AND duration_seconds <= 35", name="ck_videos_duration"),
        CheckConstraint("kind IN ('default', 'custom')", name="ck_videos_kind"),
        Index(
            "uq_videos_owner_active_default",
            "owner_id",
            unique=True,
            postgresql_where=text("kind = 'default' AND is_active"),
            sqlite_where=text("kind = 'default' AND is_active"),
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    owner_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), index=True)
    video_url: Mapped[str] = mapped_column(Text)
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    duration_seconds: Mapped[int] = mapped_column(Integer)
    kind: Mapped[str] = mapped_column(String(20))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    is_viewed: Mapped[bool] = mapped_column(Boolean, default=False)
    first_viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    viewer_token_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class VideoToken(Base):
    """Disposable, single-redemption credential bound to one video."""

    __tablename__ = "video_tokens"
    __table_args__ = (
        CheckConstraint("status IN ('active', 'viewed', 'expired', 'revoked')", name="ck_video_tokens_status"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    token_code: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    status: Mapped[str] = mapped_column(String(20), default="active", index=True)
    state_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    owner_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), index=True)
    video_id: Mapped[str] = mapped_column(ForeignKey("videos.id"), index=True)
    private_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    private_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    viewer_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    viewer_user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)


class TokenActivityLog(Base):
    """Immutable lifecycle fact for a profile or video token."""

    __tablename__ = "token_activity_logs"
    __table_args__ = (
        CheckConstraint(
            "(profile_id IS NOT NULL AND video_token_id IS NULL) OR "
            "(profile_id IS NULL AND video_token_id IS NOT NULL)",
            name="ck_activity_one_target",
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    log_type: Mapped[str] = mapped_column(String(20))
    profile_id: Mapped[str | None] = mapped_column(ForeignKey("profiles.id"), nullable=True, index=True)
    video_token_id: Mapped[str | None] = mapped_column(ForeignKey("video_tokens.id"), nullable=True, index=True)
    activity_type: Mapped[str] = mapped_column(String(50), index=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

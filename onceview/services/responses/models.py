"""Viewer response persistence model."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from onceview.common.db import Base, utcnow


class ViewerResponse(Base):
    """Anonymous interest submission tied to exactly one profile or video token."""

    __tablename__ = "viewer_responses"
    __table_args__ = (
        CheckConstraint(
            "(profile_id IS NOT NULL AND video_token_id IS NULL) OR "
            "(profile_id IS NULL AND video_token_id IS NOT NULL)",
            name="ck_response_one_target",
        ),
        CheckConstraint(
            "interest_level IN ('interested', 'maybe_later', 'not_interested')",
            name="ck_response_interest_level",
        ),
        # NULLs are distinct, so profile responses are unconstrained.
        Index("uq_viewer_responses_video_token_id", "video_token_id", unique=True),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    response_type: Mapped[str] = mapped_column(String(20))
    profile_id: Mapped[str | None] = mapped_column(ForeignKey("profiles.id"), nullable=True, index=True)
    video_token_id: Mapped[str | None] = mapped_column(ForeignKey("video_tokens.id"), nullable=True)
    interest_level: Mapped[str] = mapped_column(String(20))
    viewer_name: Mapped[str] = mapped_column(String(100))
    viewer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    viewer_phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    viewer_instagram: Mapped[str | None] = mapped_column(String(100), nullable=True)
    preferred_contact_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    responded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

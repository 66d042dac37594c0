"""API request schemas for owner token and video endpoints."""

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ProfileCreateRequest(_CamelModel):
    """Profile bootstrap payload sent once the identity provider creates an owner."""

    email: str = Field(min_length=3, max_length=255)
    full_name: str | None = Field(default=None, alias="fullName", max_length=100)


class VideoRegisterRequest(_CamelModel):
    """Reference to a clip already stored by the object store."""

    video_url: str = Field(alias="videoUrl", min_length=1)
    thumbnail_url: str | None = Field(default=None, alias="thumbnailUrl")
    duration_seconds: int = Field(alias="durationSeconds")
    kind: str = "default"
    title: str | None = Field(default=None, max_length=255)


class IssueTokenRequest(_CamelModel):
    video_id: str = Field(alias="videoId", min_length=1)
    private_label: str | None = Field(default=None, alias="privateLabel")
    private_notes: str | None = Field(default=None, alias="privateNotes")
    days_valid: int | None = Field(default=None, alias="daysValid")


class CustomVideoRequest(_CamelModel):
    video_url: str = Field(alias="videoUrl", min_length=1)
    thumbnail_url: str | None = Field(default=None, alias="thumbnailUrl")
    duration_seconds: int = Field(alias="durationSeconds")
    title: str = Field(min_length=1, max_length=255)
    private_label: str | None = Field(default=None, alias="privateLabel")
    private_notes: str | None = Field(default=None, alias="privateNotes")
    days_valid: int | None = Field(default=None, alias="daysValid")

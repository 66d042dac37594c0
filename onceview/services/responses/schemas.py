"""Viewer response payload accepted from the HTTP layer."""

from pydantic import BaseModel, ConfigDict, Field


class ResponseSubmission(BaseModel):
    """Raw viewer fields; business validation happens in `ResponseService`."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str | None = None
    interest_level: str | None = Field(default=None, alias="interestLevel")
    email: str | None = None
    phone: str | None = None
    instagram: str | None = None
    preferred_contact: str | None = Field(default=None, alias="preferredContact")
    message: str | None = None

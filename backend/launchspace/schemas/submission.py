from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field

# Fields are optional here so the service can answer with its own coded errors
# (MISSING_FIELDS, INVALID_URL, ...) instead of a generic 422.
class SubmissionIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    short_description: str | None = None
    full_description: str | None = None
    website_url: str | None = None
    logo_url: str | None = None
    video_url: str | None = None
    screenshots: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    pricing: str | None = None
    contact_email: str | None = None
    maker_name: str | None = None
    maker_twitter: str | None = None
    plan: str | None = None
    launch_week: str | None = None
    backlink_url: str | None = None

class SubmissionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    short_description: str | None = None
    full_description: str | None = None
    logo_url: str | None = None
    video_url: str | None = None
    screenshots: list[str] | None = None
    categories: list[str] | None = None
    tags: list[str] | None = None
    pricing: str | None = None
    maker_name: str | None = None
    maker_twitter: str | None = None
    backlink_url: str | None = None

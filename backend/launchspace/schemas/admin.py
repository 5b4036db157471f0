from __future__ import annotations
from pydantic import BaseModel, Field

class ApproveIn(BaseModel):
    directoryId: str
    action: str
    rejectionReason: str | None = None

class LinkTypeIn(BaseModel):
    action: str
    directoryId: str | None = None
    directoryIds: list[str] | None = None
    linkType: str | None = None

class WinnerBadgeIn(BaseModel):
    directoryId: str
    weekly_position: int | None = Field(default=None)

from __future__ import annotations
from pydantic import BaseModel

class VoteIn(BaseModel):
    appId: str | None = None
    action: str | None = None

class VoteOut(BaseModel):
    appId: str
    action: str
    newVoteCount: int
    userVoted: bool

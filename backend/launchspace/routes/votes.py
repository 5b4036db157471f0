from __future__ import annotations
from fastapi import APIRouter, Depends, Query, Request

from launchspace.deps import get_current_user, get_optional_user, get_voting
from launchspace.errors import ValidationFailed
from launchspace.schemas.vote import VoteIn, VoteOut
from launchspace.services.voting import VotingLedger

router = APIRouter(tags=["votes"])


@router.post("/vote", response_model=VoteOut)
async def cast_vote(
    payload: VoteIn,
    request: Request,
    user: dict = Depends(get_current_user),
    ledger: VotingLedger = Depends(get_voting),
):
    missing = [f for f in ("appId", "action") if not getattr(payload, f)]
    if missing:
        raise ValidationFailed("App ID and action are required", code="MISSING_FIELDS", fields=missing)
    ip = request.headers.get("x-forwarded-for", "").split(",")[0].strip() or (request.client.host if request.client else None)
    outcome = await ledger.cast_vote(user["id"], payload.appId, payload.action,
                                     ip_address=ip, user_agent=request.headers.get("user-agent"))
    return outcome.to_dict()


@router.get("/vote")
async def vote_status(
    appId: str | None = Query(default=None),
    user: dict | None = Depends(get_optional_user),
    ledger: VotingLedger = Depends(get_voting),
):
    if not appId:
        raise ValidationFailed("App ID is required", code="MISSING_FIELDS", fields=["appId"])
    return await ledger.vote_status(appId, user["id"] if user else None)

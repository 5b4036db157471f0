from __future__ import annotations
from dataclasses import dataclass
import structlog

from launchspace.clock import Clock, system_clock
from launchspace.enums import EventType, SubmissionStatus, VoteAction
from launchspace.errors import Conflict, NotFound, ValidationFailed
from launchspace.services.events import EventDispatcher, LogOnlyDispatcher, safe_emit
from launchspace.services.weeks import window_state
from launchspace.store.base import APPS, COMPETITIONS, USERS, VOTES, DocumentStore, DuplicateKeyError

log = structlog.get_logger()


@dataclass(frozen=True)
class VoteOutcome:
    app_id: str
    action: VoteAction
    vote_count: int
    user_voted: bool

    def to_dict(self) -> dict:
        return {"appId": self.app_id, "action": self.action.value,
                "newVoteCount": self.vote_count, "userVoted": self.user_voted}


class VotingLedger:
    """
    One upvote per user per submission, only while the submission's competition is running.

    Uniqueness is the store's unique key on (user_id, app_id): two concurrent upvotes
    from the same user cannot both insert, so counters move at most once.
    """

    def __init__(self, store: DocumentStore, clock: Clock = system_clock, events: EventDispatcher | None = None):
        self.store = store
        self.clock = clock
        self.events = events or LogOnlyDispatcher()

    async def _votable(self, app_id: str) -> tuple[dict, dict]:
        app = await self.store.find_one(APPS, {"id": app_id})
        if not app:
            raise NotFound("AI project not found", project_id=app_id)
        if app.get("status") != SubmissionStatus.live.value:
            raise ValidationFailed("Voting is only open for live projects", code="NOT_LIVE")
        if not app.get("weekly_competition_id"):
            raise ValidationFailed("This project is not part of a competition", code="NO_COMPETITION")
        comp = await self.store.find_one(COMPETITIONS, {"id": app["weekly_competition_id"]})
        if not comp:
            raise NotFound("Competition not found", code="COMPETITION_NOT_FOUND")
        if window_state(comp["start_date"], comp["end_date"], self.clock.now()) != "active":
            raise ValidationFailed("Voting is closed for this competition", code="VOTING_CLOSED",
                                   competition_id=comp.get("competition_id"))
        return app, comp

    async def _bump(self, user_id: str, app_id: str, competition_id: str, delta: int) -> None:
        await self.store.update_one(APPS, {"id": app_id}, {"$inc": {"upvotes": delta}})
        await self.store.update_one(USERS, {"id": user_id}, {"$inc": {"total_votes": delta}})
        await self.store.update_one(COMPETITIONS, {"id": competition_id}, {"$inc": {"total_votes": delta}})

    async def cast_vote(self, user_id: str, app_id: str, action: VoteAction | str,
                        ip_address: str | None = None, user_agent: str | None = None) -> VoteOutcome:
        try:
            action = VoteAction(action)
        except ValueError:
            raise ValidationFailed("Invalid action. Use 'upvote' or 'remove'", code="INVALID_ACTION")
        app, comp = await self._votable(app_id)

        if action == VoteAction.upvote:
            try:
                await self.store.insert_one(VOTES, {
                    "user_id": user_id,
                    "app_id": app_id,
                    "weekly_competition_id": comp["id"],
                    "vote_type": "upvote",
                    "ip_address": ip_address,
                    "user_agent": (user_agent or "")[:512] or None,
                    "created_at": self.clock.now(),
                })
            except DuplicateKeyError:
                raise Conflict("You have already voted for this project", code="ALREADY_VOTED")
            await self._bump(user_id, app_id, comp["id"], 1)
        else:
            res = await self.store.delete_one(VOTES, {"user_id": user_id, "app_id": app_id})
            if not res.deleted_count:
                raise ValidationFailed("No vote to remove", code="NO_VOTE")
            await self._bump(user_id, app_id, comp["id"], -1)

        fresh = await self.store.find_one(APPS, {"id": app_id}) or app
        outcome = VoteOutcome(app_id=app_id, action=action, vote_count=int(fresh.get("upvotes") or 0),
                              user_voted=action == VoteAction.upvote)
        log.info("vote_cast", app_id=app_id, user_id=user_id, action=action.value, upvotes=outcome.vote_count)
        await safe_emit(self.events, EventType.vote_cast, {
            "vote": {"app_id": app_id, "user_id": user_id, "action": action.value,
                     "competition_id": comp.get("competition_id"), "vote_count": outcome.vote_count},
        })
        return outcome

    async def has_voted(self, user_id: str, app_id: str) -> bool:
        return await self.store.count(VOTES, {"user_id": user_id, "app_id": app_id}) > 0

    async def vote_status(self, app_id: str, user_id: str | None = None) -> dict:
        app = await self.store.find_one(APPS, {"id": app_id})
        if not app:
            raise NotFound("AI project not found", project_id=app_id)
        voted = await self.has_voted(user_id, app_id) if user_id else False
        return {"appId": app_id, "voteCount": int(app.get("upvotes") or 0), "userVoted": voted}

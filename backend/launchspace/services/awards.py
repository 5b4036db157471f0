from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any
import structlog

from launchspace.clock import Clock, system_clock
from launchspace.enums import (
    CompetitionStatus, DofollowReason, EventType, LinkType, Plan, SubmissionStatus, SYSTEM_ACTOR,
)
from launchspace.errors import Conflict, NotFound, ValidationFailed
from launchspace.services.audit import LinkTypeChange, LinkTypeJournal
from launchspace.services.events import EventDispatcher, LogOnlyDispatcher, safe_emit
from launchspace.store.base import APPS, COMPETITIONS, LINK_TYPE_CHANGES, DocumentStore

log = structlog.get_logger()

WINNER_COUNT = 3
RANKING = [("upvotes", -1), ("created_at", 1)]


@dataclass
class AwardResult:
    competition: dict
    winners: list[dict] = field(default_factory=list)  # ranked top three, position = index + 1
    newly_awarded: list[str] = field(default_factory=list)
    already_awarded: bool = False


@dataclass
class BulkResult:
    successful: int = 0
    failed: int = 0
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"successful": self.successful, "failed": self.failed, "errors": self.errors}


def check_dofollow_eligibility(app: dict) -> dict:
    if app.get("plan") == Plan.premium.value:
        return {"eligible": True, "reason": "Premium plan - automatic dofollow", "requiresAction": False}
    if app.get("weekly_winner"):
        return {"eligible": True, "reason": f"Weekly winner (Position {app.get('weekly_position')})",
                "requiresAction": False}
    if app.get("link_type") == LinkType.dofollow.value and app.get("dofollow_reason") == DofollowReason.manual_upgrade.value:
        return {"eligible": True, "reason": "Manually upgraded by admin", "requiresAction": False}
    return {"eligible": False, "reason": "Standard plan - requires weekly win or manual upgrade", "requiresAction": True}


def _ordinal(n: int) -> str:
    return {1: "1st", 2: "2nd", 3: "3rd"}.get(n, f"{n}th")


class AwardEngine:
    """Selects weekly winners and owns every link-type transition on a submission."""

    def __init__(self, store: DocumentStore, clock: Clock = system_clock,
                 events: EventDispatcher | None = None, journal: LinkTypeJournal | None = None):
        self.store = store
        self.clock = clock
        self.events = events or LogOnlyDispatcher()
        self.journal = journal or LinkTypeJournal(store)

    async def _get_app(self, project_id: str) -> dict:
        app = await self.store.find_one(APPS, {"id": project_id})
        if not app:
            raise NotFound("Project not found", project_id=project_id)
        return app

    async def _journal(self, project_id: str, from_type: str, to_type: str, changed_by: str, reason: str) -> None:
        await self.journal.append(LinkTypeChange(
            project_id=project_id,
            from_type=LinkType(from_type or LinkType.nofollow.value),
            to_type=LinkType(to_type),
            changed_by=changed_by,
            reason=reason,
            timestamp=self.clock.now(),
        ))

    # ---------- weekly awards ----------

    async def rank(self, competition: dict, limit: int | None = WINNER_COUNT) -> list[dict]:
        """
        Standard-plan live submissions of the competition, most upvoted first.
        Ties go to the earlier submission.
        """
        return await self.store.find(
            APPS,
            {"weekly_competition_id": competition["id"], "plan": Plan.standard.value, "status": SubmissionStatus.live.value},
            sort=RANKING,
            limit=limit,
        )

    async def award_winners(self, competition: dict) -> AwardResult:
        """
        Award dofollow to the top three and record the results on the competition.

        Safe to run again for the same competition: a competition already carrying
        `awarded_at` is returned untouched. Each winner's journal row is written
        before the winner itself, so a retry after a partial failure finishes the
        winners that are missing either half and never journals one twice.
        """
        if competition.get("awarded_at"):
            return AwardResult(competition=competition, already_awarded=True)

        now = self.clock.now()
        top = await self.rank(competition)
        newly: list[str] = []
        for position, app in enumerate(top, start=1):
            if app.get("weekly_position") is not None:
                log.info("winner_already_awarded", project_id=app["id"], competition=competition.get("competition_id"))
                continue
            reason = f"weekly_winner_position_{position}"
            if not await self.store.count(LINK_TYPE_CHANGES, {"project_id": app["id"], "reason": reason}):
                await self._journal(app["id"], app.get("link_type"), LinkType.dofollow.value, SYSTEM_ACTOR, reason)
            res = await self.store.update_one(
                APPS,
                {"id": app["id"], "weekly_position": None},
                {"$set": {
                    "link_type": LinkType.dofollow.value,
                    "dofollow_status": True,
                    "dofollow_reason": DofollowReason.weekly_winner.value,
                    "dofollow_awarded_at": now,
                    "weekly_winner": True,
                    "weekly_position": position,
                    "updated_at": now,
                }},
            )
            if not res.matched_count:
                log.info("winner_already_awarded", project_id=app["id"], competition=competition.get("competition_id"))
                continue
            newly.append(app["id"])
            await safe_emit(self.events, EventType.competition_winner, {
                "competition": {"id": competition["id"], "competition_id": competition.get("competition_id")},
                "winner": {"id": app["id"], "name": app.get("name"), "slug": app.get("slug"),
                           "position": position, "upvotes": app.get("upvotes", 0)},
            })

        await self.store.update_many(
            APPS,
            {"weekly_competition_id": competition["id"], "entered_weekly": True},
            {"$set": {"entered_weekly": False, "weekly_competition_ended": True, "updated_at": now}},
        )

        # awarded_at is written last.
        ids = [a["id"] for a in top]
        participants = await self.store.count(APPS, {
            "weekly_competition_id": competition["id"], "status": SubmissionStatus.live.value,
        })
        res = await self.store.update_one(
            COMPETITIONS,
            {"id": competition["id"], "awarded_at": None},
            {"$set": {
                "status": CompetitionStatus.completed.value,
                "completed_at": competition.get("completed_at") or now,
                "awarded_at": now,
                "winner_id": ids[0] if ids else None,
                "runner_up_ids": ids[1:],
                "top_three_ids": ids,
                "total_participants": participants,
                "updated_at": now,
            }},
        )
        updated = res.document or await self.store.find_one(COMPETITIONS, {"id": competition["id"]}) or competition
        log.info("competition_awarded", competition=competition.get("competition_id"),
                 winners=len(ids), newly_awarded=len(newly))
        return AwardResult(competition=updated, winners=top, newly_awarded=newly)

    # ---------- manual overrides ----------

    async def _set_link(self, app: dict, to_type: LinkType, admin_id: str, reason: str) -> dict:
        now = self.clock.now()
        if to_type == LinkType.dofollow:
            update: dict[str, Any] = {"$set": {
                "link_type": LinkType.dofollow.value,
                "dofollow_status": True,
                "dofollow_reason": DofollowReason.manual_upgrade.value,
                "dofollow_awarded_at": now,
                "updated_at": now,
            }}
        else:
            update = {
                "$set": {"link_type": LinkType.nofollow.value, "dofollow_status": False, "updated_at": now},
                "$unset": ["dofollow_reason", "dofollow_awarded_at"],
            }
        # Conditional on the link type that was read.
        res = await self.store.update_one(APPS, {"id": app["id"], "link_type": app.get("link_type")}, update)
        if not res.matched_count:
            raise Conflict("Link type changed concurrently, reload and retry", code="CONCURRENT_UPDATE",
                           project_id=app["id"])
        await self._journal(app["id"], app.get("link_type"), to_type.value, admin_id, reason)
        log.info("link_type_changed", project_id=app["id"], to=to_type.value, by=admin_id, reason=reason)
        return res.document

    async def toggle_link_type(self, project_id: str, admin_id: str) -> dict:
        app = await self._get_app(project_id)
        target = LinkType.nofollow if app.get("link_type") == LinkType.dofollow.value else LinkType.dofollow
        return await self._set_link(app, target, admin_id, "manual")

    async def upgrade_to_dofollow(self, project_id: str, admin_id: str) -> dict:
        app = await self._get_app(project_id)
        if app.get("link_type") == LinkType.dofollow.value:
            return app
        return await self._set_link(app, LinkType.dofollow, admin_id, "manual_upgrade")

    async def downgrade_to_nofollow(self, project_id: str, admin_id: str) -> dict:
        app = await self._get_app(project_id)
        if app.get("link_type") == LinkType.nofollow.value:
            return app
        return await self._set_link(app, LinkType.nofollow, admin_id, "manual_downgrade")

    async def bulk_update_link_types(self, project_ids: list[str], link_type: LinkType, admin_id: str) -> BulkResult:
        result = BulkResult()
        for pid in project_ids:
            try:
                if LinkType(link_type) == LinkType.dofollow:
                    await self.upgrade_to_dofollow(pid, admin_id)
                else:
                    await self.downgrade_to_nofollow(pid, admin_id)
                result.successful += 1
            except Exception as e:
                result.failed += 1
                result.errors.append({"directoryId": pid, "error": getattr(e, "message", str(e))})
        log.info("link_type_bulk_update", successful=result.successful, failed=result.failed, by=admin_id)
        return result

    async def set_winner_badge(self, project_id: str, position: int | None, admin_id: str) -> tuple[dict, str]:
        if position is not None and position not in (1, 2, 3):
            raise ValidationFailed("weekly_position must be 1, 2, 3, or null", code="INVALID_POSITION")
        app = await self._get_app(project_id)
        now = self.clock.now()
        values: dict[str, Any] = {"weekly_position": position, "weekly_winner": position is not None, "updated_at": now}
        if position is not None:
            values.update({
                "link_type": LinkType.dofollow.value,
                "dofollow_status": True,
                "dofollow_reason": DofollowReason.weekly_winner.value,
                "dofollow_awarded_at": now,
            })
        elif app.get("dofollow_reason") == DofollowReason.weekly_winner.value:
            # Removing the badge keeps the link; it is now an admin decision.
            values["dofollow_reason"] = DofollowReason.manual_upgrade.value
        res = await self.store.update_one(APPS, {"id": project_id}, {"$set": values})
        if position is not None and app.get("link_type") != LinkType.dofollow.value:
            await self._journal(project_id, app.get("link_type"), LinkType.dofollow.value, admin_id,
                                f"winner_badge_position_{position}")
        message = f"Winner badge updated to {_ordinal(position)} place" if position else "Winner badge removed"
        return res.document or {**app, **values}, message

    # ---------- reporting ----------

    async def link_type_history(self, project_id: str) -> list[LinkTypeChange]:
        return await self.journal.history(project_id)

    async def link_type_stats(self) -> dict:
        live = {"status": SubmissionStatus.live.value}
        total = await self.store.count(APPS, live)
        dofollow = await self.store.count(APPS, {**live, "link_type": LinkType.dofollow.value})
        nofollow = await self.store.count(APPS, {**live, "link_type": LinkType.nofollow.value})
        breakdown = {}
        for key, reason in (("weekly_winners", DofollowReason.weekly_winner),
                            ("manual_upgrades", DofollowReason.manual_upgrade),
                            ("premium_plans", DofollowReason.premium_plan)):
            breakdown[key] = await self.store.count(APPS, {**live, "dofollow_reason": reason.value})

        def pct(n: int) -> float:
            return round(n / total * 100, 2) if total else 0.0

        return {
            "total": total,
            "dofollow": dofollow,
            "nofollow": nofollow,
            "breakdown": breakdown,
            "percentages": {"dofollow": pct(dofollow), "nofollow": pct(nofollow)},
        }

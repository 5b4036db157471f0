from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, timedelta
import structlog

from launchspace.clock import Clock, system_clock
from launchspace.config import settings
from launchspace.enums import CompetitionStatus, CompetitionType, Plan, SubmissionStatus
from launchspace.errors import Conflict, NotFound, ValidationFailed
from launchspace.services.awards import AwardEngine, AwardResult
from launchspace.services.events import EventDispatcher
from launchspace.services.slots import check_availability
from launchspace.services.weeks import (
    competition_code, competition_tz, local_monday, next_monday, time_left, week_window,
)
from launchspace.store.base import APPS, COMPETITIONS, DocumentStore, DuplicateKeyError

log = structlog.get_logger()

OPEN_STATUSES = [CompetitionStatus.active.value, CompetitionStatus.upcoming.value]


@dataclass
class ReconcileReport:
    created: list[str] = field(default_factory=list)
    activated: list[str] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"created": self.created, "activated": self.activated,
                "completed": self.completed, "errors": self.errors}


class CompetitionLifecycle:
    """
    Keeps the weekly calendar populated and moves competitions through
    upcoming -> active -> completed on wall-clock time.

    Every status change is a conditional write on the status the caller expects, so
    concurrent reconcilers (cron + lazy read path + worker) never double-activate or
    double-award a week.
    """

    def __init__(self, store: DocumentStore, clock: Clock = system_clock, awards: AwardEngine | None = None,
                 events: EventDispatcher | None = None, tz_name: str | None = None):
        self.store = store
        self.clock = clock
        self.awards = awards or AwardEngine(store, clock, events)
        self.tz_name = tz_name or settings.competition_timezone
        self.tz = competition_tz(self.tz_name)

    def new_competition(self, monday: date) -> dict:
        start, end = week_window(monday, self.tz)
        now = self.clock.now()
        return {
            "competition_id": competition_code(start, self.tz),
            "type": CompetitionType.weekly.value,
            "start_date": start,
            "end_date": end,
            "timezone": self.tz_name,
            "status": CompetitionStatus.upcoming.value,
            "total_submissions": 0,
            "standard_submissions": 0,
            "premium_submissions": 0,
            "max_standard_slots": settings.max_standard_slots,
            "max_premium_slots": settings.max_premium_extra_slots,
            "total_votes": 0,
            "total_participants": 0,
            "runner_up_ids": [],
            "top_three_ids": [],
            "theme": "Weekly Launch Competition",
            "description": f"Compete with other AI tools launched the week of {monday.isoformat()}.",
            "prize_description": "Top 3 standard launches earn a dofollow backlink and a winner badge.",
            "created_at": now,
            "updated_at": now,
        }

    async def ensure_upcoming_weeks(self, horizon_weeks: int | None = None) -> list[str]:
        """
        Top up the calendar so `horizon_weeks` future weeks exist.

        Continues from the latest existing week rather than from today, never creates a
        week that starts in the past, and treats an existing code as already done.
        """
        horizon = settings.horizon_weeks if horizon_weeks is None else horizon_weeks
        now = self.clock.now()
        have = await self.store.count(COMPETITIONS, {
            "type": CompetitionType.weekly.value,
            "status": {"$in": OPEN_STATUSES},
            "start_date": {"$gte": now},
        })
        deficit = horizon - have
        if deficit <= 0:
            return []

        first = next_monday(now, self.tz)
        latest = await self.store.find_one(COMPETITIONS, {"type": CompetitionType.weekly.value},
                                           sort=[("start_date", -1)])
        if latest:
            after_latest = local_monday(latest["start_date"], self.tz) + timedelta(days=7)
            first = max(first, after_latest)

        created: list[str] = []
        for i in range(deficit):
            doc = self.new_competition(first + timedelta(days=7 * i))
            code = doc["competition_id"]
            if await self.store.find_one(COMPETITIONS, {"type": doc["type"], "competition_id": code}):
                continue
            try:
                await self.store.insert_one(COMPETITIONS, doc)
            except DuplicateKeyError:
                log.info("competition_exists", competition=code)
                continue
            created.append(code)
        if created:
            log.info("competitions_created", count=len(created), first=created[0], last=created[-1])
        return created

    async def activate(self, competition: dict) -> bool:
        now = self.clock.now()
        res = await self.store.update_one(
            COMPETITIONS,
            {"id": competition["id"], "status": CompetitionStatus.upcoming.value},
            {"$set": {"status": CompetitionStatus.active.value, "updated_at": now}},
        )
        if not res.matched_count:
            return False
        launched = await self.store.update_many(
            APPS,
            {"weekly_competition_id": competition["id"], "status": SubmissionStatus.scheduled.value},
            {"$set": {"status": SubmissionStatus.live.value, "published_at": now, "launched_at": now, "updated_at": now}},
        )
        log.info("competition_activated", competition=competition.get("competition_id"), launched=launched.modified_count)
        return True

    async def close_competition(self, competition: dict, from_statuses: tuple[str, ...] = (CompetitionStatus.active.value,)) -> AwardResult | None:
        """
        Claim the competition (status -> completed) and award it. Returns None when another
        caller already holds the claim. If awarding fails the claim is released so the
        next run retries, and the error propagates.
        """
        now = self.clock.now()
        claim = await self.store.update_one(
            COMPETITIONS,
            {"id": competition["id"], "status": {"$in": list(from_statuses)}},
            {"$set": {"status": CompetitionStatus.completed.value, "completed_at": now, "updated_at": now}},
        )
        if not claim.matched_count:
            return None
        try:
            return await self.awards.award_winners(claim.document or competition)
        except Exception:
            await self.store.update_one(
                COMPETITIONS,
                {"id": competition["id"], "status": CompetitionStatus.completed.value, "awarded_at": None},
                {"$set": {"status": competition.get("status", CompetitionStatus.active.value), "completed_at": None}},
            )
            log.warning("competition_claim_released", competition=competition.get("competition_id"))
            raise

    async def reconcile_statuses(self) -> ReconcileReport:
        now = self.clock.now()
        report = ReconcileReport()

        # Activation runs first so a week whose window passed unnoticed is closed in the same pass.
        due = await self.store.find(COMPETITIONS, {
            "type": CompetitionType.weekly.value,
            "status": CompetitionStatus.upcoming.value,
            "start_date": {"$lte": now},
        }, sort=[("start_date", 1)])
        for comp in due:
            try:
                if await self.activate(comp):
                    report.activated.append(comp["competition_id"])
            except Exception as e:
                log.exception("competition_activation_failed", competition=comp.get("competition_id"))
                report.errors.append({"step": "activate", "competition_id": comp.get("competition_id"), "error": str(e)})

        ended = await self.store.find(COMPETITIONS, {
            "type": CompetitionType.weekly.value,
            "status": CompetitionStatus.active.value,
            "end_date": {"$lt": now},
        }, sort=[("start_date", 1)])
        for comp in ended:
            try:
                if await self.close_competition(comp) is not None:
                    report.completed.append(comp["competition_id"])
            except Exception as e:
                log.exception("competition_close_failed", competition=comp.get("competition_id"))
                report.errors.append({"step": "complete", "competition_id": comp.get("competition_id"), "error": str(e)})
        return report

    async def run(self, horizon_weeks: int | None = None) -> ReconcileReport:
        """Full scheduler tick: top up the calendar, then reconcile statuses."""
        try:
            created = await self.ensure_upcoming_weeks(horizon_weeks)
        except Exception as e:
            log.exception("competition_create_failed")
            created = []
            failed = {"step": "create", "error": str(e)}
        else:
            failed = None
        report = await self.reconcile_statuses()
        report.created = created
        if failed:
            report.errors.insert(0, failed)
        log.info("competitions_reconciled", **{k: len(v) for k, v in report.to_dict().items()})
        return report

    async def complete_competition(self, code: str) -> AwardResult:
        """Admin-triggered close of a week by its code, e.g. 2025-W03."""
        comp = await self.store.find_one(COMPETITIONS, {"competition_id": code, "type": CompetitionType.weekly.value})
        if not comp:
            raise NotFound("Competition not found", competition_id=code)
        if comp["status"] == CompetitionStatus.completed.value:
            raise ValidationFailed("Competition already completed", code="ALREADY_COMPLETED", competition_id=code)
        if comp["status"] == CompetitionStatus.cancelled.value:
            raise Conflict("Competition was cancelled", code="COMPETITION_CANCELLED", competition_id=code)
        result = await self.close_competition(comp, from_statuses=tuple(OPEN_STATUSES))
        if result is None:
            raise ValidationFailed("Competition already completed", code="ALREADY_COMPLETED", competition_id=code)
        return result

    # ---------- read side ----------

    async def current_competition(self) -> tuple[dict | None, dict | None]:
        """The active weekly competition, else the next upcoming one, with time to its next boundary."""
        now = self.clock.now()
        comp = await self.store.find_one(COMPETITIONS, {
            "type": CompetitionType.weekly.value, "status": CompetitionStatus.active.value,
        }, sort=[("start_date", -1)])
        if not comp:
            comp = await self.store.find_one(COMPETITIONS, {
                "type": CompetitionType.weekly.value,
                "status": CompetitionStatus.upcoming.value,
                "start_date": {"$gt": now},
            }, sort=[("start_date", 1)])
        if not comp:
            return None, None
        target = comp["start_date"] if comp["start_date"] > now else comp["end_date"]
        return comp, (time_left(target, now) if target > now else None)

    async def available_weeks(self, plan: Plan | None = None, limit: int | None = None) -> list[dict]:
        await self.ensure_upcoming_weeks()
        weeks = await self.store.find(COMPETITIONS, {
            "type": CompetitionType.weekly.value,
            "status": {"$in": OPEN_STATUSES},
            "end_date": {"$gt": self.clock.now()},
        }, sort=[("start_date", 1)], limit=limit or settings.available_weeks_limit)
        if plan is None:
            return weeks
        return [w for w in weeks if check_availability(w, Plan(plan)).available]

from __future__ import annotations
from dataclasses import dataclass
import structlog

from launchspace.enums import Plan
from launchspace.errors import Conflict
from launchspace.store.base import COMPETITIONS, DocumentStore

log = structlog.get_logger()

DEFAULT_STANDARD_SLOTS = 15
DEFAULT_PREMIUM_EXTRA_SLOTS = 10


@dataclass(frozen=True)
class SlotAvailability:
    available: bool
    remaining: int
    ceiling: int
    used: int


def plan_ceiling(competition: dict, plan: Plan) -> int:
    """
    Slots 0..14 are shared by both tiers; 15..24 are premium-only.
    There is no separate premium quota: premium admission only looks at the total.
    """
    standard = int(competition.get("max_standard_slots") or DEFAULT_STANDARD_SLOTS)
    if Plan(plan) == Plan.premium:
        return standard + int(competition.get("max_premium_slots") or DEFAULT_PREMIUM_EXTRA_SLOTS)
    return standard


def check_availability(competition: dict, plan: Plan) -> SlotAvailability:
    ceiling = plan_ceiling(competition, plan)
    used = int(competition.get("total_submissions") or 0)
    return SlotAvailability(available=used < ceiling, remaining=max(0, ceiling - used), ceiling=ceiling, used=used)


def week_full_error(plan: Plan, competition: dict) -> Conflict:
    if Plan(plan) == Plan.premium:
        msg = f"This week is full. All {plan_ceiling(competition, Plan.premium)} slots are taken. Please select another week."
    else:
        msg = (f"This week is full. All {plan_ceiling(competition, Plan.standard)} standard slots are taken. "
               "Upgrade to Premium for guaranteed placement or select another week.")
    return Conflict(msg, code="WEEK_FULL", competition_id=competition.get("competition_id"))


async def admit(store: DocumentStore, competition: dict, plan: Plan) -> dict:
    """
    Take one slot with a single conditional increment: the write only happens while
    total_submissions is below the plan ceiling, so concurrent callers can never overshoot it.
    Returns the competition as updated.
    """
    plan = Plan(plan)
    ceiling = plan_ceiling(competition, plan)
    res = await store.update_one(
        COMPETITIONS,
        {"id": competition["id"], "total_submissions": {"$lt": ceiling}},
        {"$inc": {"total_submissions": 1, f"{plan.value}_submissions": 1}},
    )
    if not res.matched_count:
        log.info("slot_rejected", competition=competition.get("competition_id"), plan=plan.value, ceiling=ceiling)
        raise week_full_error(plan, competition)
    return res.document or competition


async def release(store: DocumentStore, competition_id: str, plan: Plan) -> None:
    """Give back a slot taken by `admit` whose submission write did not happen."""
    plan = Plan(plan)
    await store.update_one(
        COMPETITIONS,
        {"id": competition_id, "total_submissions": {"$gt": 0}},
        {"$inc": {"total_submissions": -1, f"{plan.value}_submissions": -1}},
    )
    log.info("slot_released", competition_id=competition_id, plan=plan.value)

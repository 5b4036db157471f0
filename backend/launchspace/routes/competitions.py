from __future__ import annotations
import hmac
from fastapi import APIRouter, Depends, Header, Query
import structlog

from launchspace.clock import Clock
from launchspace.config import settings
from launchspace.deps import get_clock, get_lifecycle, get_store
from launchspace.enums import CompetitionStatus, Plan
from launchspace.errors import Unauthorized, ValidationFailed
from launchspace.services.lifecycle import CompetitionLifecycle
from launchspace.services.weeks import time_left
from launchspace.store.base import COMPETITIONS, DocumentStore

router = APIRouter(tags=["competitions"])
log = structlog.get_logger()


@router.get("/competitions")
async def list_competitions(
    type: str | None = Query(default=None),
    status: str | None = Query(default=None),
    current: bool = Query(default=False),
    available: bool = Query(default=False),
    plan: str | None = Query(default=None),
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    lifecycle: CompetitionLifecycle = Depends(get_lifecycle),
):
    now = clock.now()
    if current:
        if settings.lazy_reconcile:
            report = await lifecycle.reconcile_statuses()
            if report.errors:
                log.warning("lazy_reconcile_errors", errors=report.errors)
        comp, left = await lifecycle.current_competition()
        comps = [{**comp, "timeLeft": left}] if comp else []
        return {"success": True, "data": {"competitions": comps, "currentTime": now.isoformat()}}

    if available:
        plan_value = None
        if plan:
            try:
                plan_value = Plan(plan)
            except ValueError:
                raise ValidationFailed("Plan must be standard or premium", code="INVALID_PLAN")
        weeks = await lifecycle.available_weeks(plan_value)
        return {"success": True, "data": {"weeks": weeks, "currentTime": now.isoformat()}}

    filt: dict = {}
    if type:
        filt["type"] = type
    if status:
        filt["status"] = status
    comps = await store.find(COMPETITIONS, filt, sort=[("start_date", -1)])
    out = []
    for c in comps:
        left = None
        if c["status"] == CompetitionStatus.active.value and c["end_date"] > now:
            left = time_left(c["end_date"], now)
        out.append({**c, "timeLeft": left})
    return {"success": True, "data": {"competitions": out, "currentTime": now.isoformat()}}


def _check_cron(authorization: str | None) -> None:
    expected = f"Bearer {settings.cron_secret}"
    if not settings.cron_secret or not authorization or not hmac.compare_digest(authorization, expected):
        raise Unauthorized("Unauthorized")


@router.post("/cron/competitions")
async def run_competition_cron(
    authorization: str | None = Header(default=None),
    clock: Clock = Depends(get_clock),
    lifecycle: CompetitionLifecycle = Depends(get_lifecycle),
):
    _check_cron(authorization)
    report = await lifecycle.run()
    return {
        "success": True,
        "message": "Competition cron job completed",
        "results": {"timestamp": clock.now().isoformat(), **report.to_dict()},
    }

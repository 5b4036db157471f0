from __future__ import annotations
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Any
from urllib.parse import urlparse
import structlog
from pydantic import HttpUrl, TypeAdapter, ValidationError

from launchspace.clock import Clock, system_clock
from launchspace.config import settings
from launchspace.enums import (
    CompetitionStatus, CompetitionType, DofollowReason, EventType, LinkType, NotificationType,
    Plan, Pricing, ReviewAction, SubmissionStatus,
)
from launchspace.errors import Forbidden, InvalidTransition, NotFound, ValidationFailed, Conflict
from launchspace.schemas.submission import SubmissionIn, SubmissionUpdate
from launchspace.services.audit import LinkTypeChange, LinkTypeJournal
from launchspace.services.events import EventDispatcher, LogOnlyDispatcher, project_payload, safe_emit, safe_notify
from launchspace.services.slots import admit, check_availability, release, week_full_error
from launchspace.store.base import APPS, COMPETITIONS, USERS, DocumentStore, DuplicateKeyError

log = structlog.get_logger()

REQUIRED_FIELDS = ("name", "short_description", "website_url", "categories", "contact_email", "plan", "launch_week")
MAX_CATEGORIES = 3
NOT_CLEARABLE = ("short_description", "screenshots", "categories", "tags", "pricing")

PLAN_CONFIG = {
    Plan.standard: {"price": 0, "homepage_duration": 7, "premium_badge": False, "skip_queue": False},
    Plan.premium: {"price": 15, "homepage_duration": 7, "premium_badge": True, "skip_queue": True},
}

_url = TypeAdapter(HttpUrl)
_slug_junk = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    return _slug_junk.sub("-", name.lower()).strip("-")


def normalize_url(url: str) -> str:
    """Duplicate-detection key: lower-case host without www. plus path without a trailing slash."""
    parsed = urlparse(url.strip())
    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    path = parsed.path
    if path.endswith("/"):
        path = path[:-1]
    return host + path


def is_http_url(value: str | None) -> bool:
    if not value:
        return False
    try:
        _url.validate_python(value)
    except ValidationError:
        return False
    return True


def _resubmittable(existing: dict, user_id: str) -> bool:
    unpaid_premium = existing.get("plan") == Plan.premium.value and not existing.get("payment_status")
    return existing.get("submitted_by") == user_id and bool(existing.get("is_draft") or unpaid_premium)


@dataclass
class SubmitResult:
    project: dict
    updated_existing: bool
    competition: dict


class SubmissionService:
    """Intake and review of projects: draft -> pending -> scheduled/live, or rejected."""

    def __init__(self, store: DocumentStore, clock: Clock = system_clock, events: EventDispatcher | None = None,
                 journal: LinkTypeJournal | None = None):
        self.store = store
        self.clock = clock
        self.events = events or LogOnlyDispatcher()
        self.journal = journal or LinkTypeJournal(store)

    # ---------- intake ----------

    def _validate(self, data: SubmissionIn) -> Plan:
        missing = [f for f in REQUIRED_FIELDS if not getattr(data, f)]
        if missing:
            raise ValidationFailed(f"Missing required fields: {', '.join(missing)}", code="MISSING_FIELDS", fields=missing)
        if not is_http_url(data.website_url):
            raise ValidationFailed("Please enter a valid website URL (e.g., https://example.com)",
                                   code="INVALID_URL", fields=["website_url"])
        if not data.logo_url:
            raise ValidationFailed("Logo is required", code="MISSING_LOGO", fields=["logo_url"])
        if not is_http_url(data.logo_url):
            raise ValidationFailed("Please enter a valid logo URL", code="INVALID_LOGO_URL", fields=["logo_url"])
        if data.video_url and data.video_url.strip() and not is_http_url(data.video_url):
            raise ValidationFailed("Please enter a valid video URL or leave it empty",
                                   code="INVALID_VIDEO_URL", fields=["video_url"])
        if len(data.categories) > MAX_CATEGORIES:
            raise ValidationFailed(f"Choose between 1 and {MAX_CATEGORIES} categories",
                                   code="INVALID_CATEGORIES", fields=["categories"])
        if data.pricing and data.pricing not in {p.value for p in Pricing}:
            raise ValidationFailed("Pricing must be Free, Freemium or Paid", code="INVALID_PRICING", fields=["pricing"])
        try:
            plan = Plan(data.plan)
        except ValueError:
            raise ValidationFailed("Plan must be standard or premium", code="INVALID_PLAN", fields=["plan"])
        if not slugify(data.name):
            raise ValidationFailed("Name must contain letters or digits", code="INVALID_NAME", fields=["name"])
        return plan

    def _build(self, data: SubmissionIn, plan: Plan, user: dict, comp: dict) -> dict[str, Any]:
        now = self.clock.now()
        cfg = PLAN_CONFIG[plan]
        draft = plan == Plan.premium
        backlink = (data.backlink_url or "").strip()
        if plan == Plan.premium and not backlink:
            backlink = data.website_url
        return {
            "name": data.name,
            "slug": slugify(data.name),
            "short_description": data.short_description,
            "full_description": data.full_description or data.short_description,
            "website_url": data.website_url,
            "website_key": normalize_url(data.website_url),
            "logo_url": data.logo_url,
            "video_url": data.video_url or "",
            "screenshots": list(data.screenshots),
            "categories": list(data.categories),
            "tags": list(data.tags),
            "pricing": data.pricing or Pricing.free.value,
            "contact_email": data.contact_email,
            "maker_name": data.maker_name or user.get("name"),
            "maker_twitter": data.maker_twitter or "",
            "submitted_by": user["id"],
            "plan": plan.value,
            "premium_badge": cfg["premium_badge"],
            "homepage_duration": cfg["homepage_duration"],
            "backlink_url": backlink,
            "status": (SubmissionStatus.draft if draft else SubmissionStatus.pending).value,
            "is_draft": draft,
            "approved": False,
            "payment_status": False,
            "rejection_reason": None,
            "launch_week": comp["competition_id"],
            "weekly_competition_id": comp["id"],
            "entered_weekly": True,
            "weekly_competition_ended": False,
            "link_type": LinkType.nofollow.value,
            "dofollow_status": False,
            "dofollow_reason": None,
            "dofollow_awarded_at": None,
            "weekly_winner": False,
            "weekly_position": None,
            "views": 0,
            "upvotes": 0,
            "clicks": 0,
            "total_engagement": 0,
            "homepage_start_date": now,
            "homepage_end_date": now + timedelta(days=cfg["homepage_duration"]),
            "launch_date": comp["start_date"],
            "published_at": None,
            "launched_at": None,
            "updated_at": now,
        }

    async def _open_competition(self, code: str) -> dict:
        comp = await self.store.find_one(COMPETITIONS, {"competition_id": code, "type": CompetitionType.weekly.value})
        if not comp:
            raise ValidationFailed("Selected launch week not found", code="INVALID_WEEK", launch_week=code)
        closed = comp["status"] in (CompetitionStatus.completed.value, CompetitionStatus.cancelled.value)
        if closed or comp["end_date"] <= self.clock.now():
            raise ValidationFailed("Selected launch week is no longer open", code="WEEK_CLOSED", launch_week=code)
        return comp

    async def submit(self, data: SubmissionIn, user: dict) -> SubmitResult:
        """
        Create a submission, or refresh the caller's own unpaid draft in place.

        Standard entries take their slot now (atomically) and go to pending; premium
        entries stay drafts without consuming a slot until payment is confirmed.
        """
        plan = self._validate(data)
        slug = slugify(data.name)
        by_slug = await self.store.find_one(APPS, {"slug": slug})
        if by_slug and not _resubmittable(by_slug, user["id"]):
            raise Conflict("An AI project with this name already exists", code="SLUG_EXISTS", fields=["name"])
        by_site = await self.store.find_one(APPS, {"website_key": normalize_url(data.website_url)})
        if by_site and not _resubmittable(by_site, user["id"]):
            raise Conflict(f'This website ({data.website_url}) has already been submitted as "{by_site.get("name")}"',
                           code="WEBSITE_EXISTS", existing_directory=by_site.get("name"))
        if by_slug and by_site and by_slug["id"] != by_site["id"]:
            # The name and the website belong to two different drafts of this user.
            raise Conflict(f'This website ({data.website_url}) is already used by your draft "{by_site.get("name")}"',
                           code="WEBSITE_EXISTS", existing_directory=by_site.get("name"))
        target = by_slug or by_site

        comp = await self._open_competition(data.launch_week)
        if not check_availability(comp, plan).available:
            raise week_full_error(plan, comp)

        doc = self._build(data, plan, user, comp)
        draft = doc["is_draft"]
        if not draft:
            comp = await admit(self.store, comp, plan)
        try:
            if target:
                res = await self.store.update_one(APPS, {"id": target["id"]}, {"$set": doc})
                saved = res.document or {**target, **doc}
            else:
                doc["created_at"] = doc["updated_at"]
                saved = (await self.store.insert_one(APPS, doc)).document
        except DuplicateKeyError:
            if not draft:
                await release(self.store, comp["id"], plan)
            raise Conflict("An AI project with this name already exists", code="SLUG_EXISTS", fields=["name"])
        except Exception:
            if not draft:
                await release(self.store, comp["id"], plan)
            raise

        if not draft:
            await self.store.update_one(USERS, {"id": user["id"]}, {"$inc": {"total_submissions": 1}})
        log.info("submission_created", project_id=saved["id"], plan=plan.value, status=saved["status"],
                 competition=comp["competition_id"], updated_existing=bool(target))
        await safe_emit(self.events, EventType.project_created, project_payload(saved, created_at=saved.get("created_at")))
        return SubmitResult(project=saved, updated_existing=bool(target), competition=comp)

    async def check_duplicate(self, slug: str | None = None, website_url: str | None = None) -> dict:
        if not slug and not website_url:
            raise ValidationFailed("website_url or slug parameter is required", code="MISSING_FIELDS",
                                   fields=["website_url", "slug"])
        if slug:
            hit = await self.store.find_one(APPS, {"slug": slugify(slug)})
        else:
            hit = await self.store.find_one(APPS, {"website_key": normalize_url(website_url)})
        if not hit:
            return {"exists": False}
        return {"exists": True, "existing": {"id": hit["id"], "name": hit.get("name"), "slug": hit.get("slug")}}

    # ---------- payment ----------

    async def confirm_payment(self, project_id: str, order_id: str | None = None) -> dict:
        """
        Turn a paid premium draft into a real entry. Takes the premium slot at this
        point; runs at most once per project even if the provider redelivers.
        """
        app = await self.store.find_one(APPS, {"id": project_id})
        if not app:
            raise NotFound("Project not found", project_id=project_id)
        if app.get("payment_status"):
            log.info("payment_already_confirmed", project_id=project_id)
            return app
        if app.get("plan") != Plan.premium.value:
            raise ValidationFailed("Only premium submissions take payment", code="NOT_PREMIUM", project_id=project_id)
        comp = await self.store.find_one(COMPETITIONS, {"id": app.get("weekly_competition_id")})
        if not comp:
            raise NotFound("Competition not found", code="COMPETITION_NOT_FOUND", project_id=project_id)
        if comp["status"] in (CompetitionStatus.completed.value, CompetitionStatus.cancelled.value):
            raise Conflict("Selected launch week is no longer open", code="WEEK_CLOSED", project_id=project_id)

        comp = await admit(self.store, comp, Plan.premium)
        now = self.clock.now()
        upcoming = comp["status"] == CompetitionStatus.upcoming.value
        values: dict[str, Any] = {
            "payment_status": True,
            "payment_date": now,
            "order_id": order_id,
            "is_draft": False,
            "updated_at": now,
        }
        if upcoming:
            # Premium skips the review queue for weeks that have not started yet.
            values.update({
                "status": SubmissionStatus.scheduled.value,
                "approved": True,
                "link_type": LinkType.dofollow.value,
                "dofollow_status": True,
                "dofollow_reason": DofollowReason.premium_plan.value,
                "dofollow_awarded_at": now,
            })
        else:
            values["status"] = SubmissionStatus.pending.value
        res = await self.store.update_one(APPS, {"id": project_id, "payment_status": False}, {"$set": values})
        if not res.matched_count:
            await release(self.store, comp["id"], Plan.premium)
            return await self.store.find_one(APPS, {"id": project_id}) or app

        if upcoming and app.get("link_type") != LinkType.dofollow.value:
            await self.journal.append(LinkTypeChange(
                project_id=project_id, from_type=LinkType(app.get("link_type") or "nofollow"),
                to_type=LinkType.dofollow, changed_by="system", reason=DofollowReason.premium_plan.value, timestamp=now,
            ))
        await self.store.update_one(USERS, {"id": app["submitted_by"]}, {"$inc": {"total_submissions": 1}})
        log.info("payment_confirmed", project_id=project_id, order_id=order_id, status=values["status"])
        if upcoming:
            await safe_emit(self.events, EventType.project_approved, project_payload(res.document, approved_at=now))
        return res.document

    # ---------- review ----------

    async def approve(self, project_id: str, action: str, reason: str | None, admin_id: str) -> dict:
        try:
            act = ReviewAction(action)
        except ValueError:
            raise ValidationFailed("Action must be approve or reject", code="INVALID_ACTION")
        if act == ReviewAction.reject and not (reason and reason.strip()):
            raise ValidationFailed("Rejection reason is required", code="MISSING_REASON")
        app = await self.store.find_one(APPS, {"id": project_id})
        if not app:
            raise NotFound("Directory not found", project_id=project_id)
        if app["status"] != SubmissionStatus.pending.value:
            raise InvalidTransition(project_id, app["status"], act.value)

        now = self.clock.now()
        if act == ReviewAction.reject:
            values: dict[str, Any] = {
                "status": SubmissionStatus.rejected.value,
                "approved": False,
                "rejection_reason": reason.strip(),
                "updated_at": now,
            }
        else:
            comp = None
            if app.get("weekly_competition_id"):
                comp = await self.store.find_one(COMPETITIONS, {"id": app["weekly_competition_id"]})
            values = {"approved": True, "updated_at": now}
            if comp and comp["status"] == CompetitionStatus.upcoming.value:
                values["status"] = SubmissionStatus.scheduled.value
            else:
                duration = int(app.get("homepage_duration") or settings.homepage_duration_days)
                values.update({
                    "status": SubmissionStatus.live.value,
                    "published_at": now,
                    "launched_at": now,
                    "homepage_start_date": now,
                    "homepage_end_date": now + timedelta(days=duration),
                })
            if app.get("plan") == Plan.premium.value:
                values.update({
                    "link_type": LinkType.dofollow.value,
                    "dofollow_status": True,
                    "dofollow_reason": DofollowReason.premium_plan.value,
                    "dofollow_awarded_at": now,
                })

        res = await self.store.update_one(APPS, {"id": project_id, "status": SubmissionStatus.pending.value},
                                          {"$set": values})
        if not res.matched_count:
            current = await self.store.find_one(APPS, {"id": project_id}) or app
            raise InvalidTransition(project_id, current["status"], act.value)
        updated = res.document

        if act == ReviewAction.approve and app.get("plan") == Plan.premium.value and app.get("link_type") != LinkType.dofollow.value:
            await self.journal.append(LinkTypeChange(
                project_id=project_id, from_type=LinkType(app.get("link_type") or "nofollow"),
                to_type=LinkType.dofollow, changed_by=admin_id, reason=DofollowReason.premium_plan.value, timestamp=now,
            ))

        log.info("submission_reviewed", project_id=project_id, action=act.value, status=updated["status"], by=admin_id)
        recipient = {"email": app.get("contact_email"), "name": app.get("maker_name")}
        if act == ReviewAction.approve:
            await safe_notify(self.events, NotificationType.submission_approved,
                              {"to": recipient, "project": project_payload(updated)["project"]})
            await safe_emit(self.events, EventType.project_approved, project_payload(updated, approved_at=now))
        else:
            await safe_notify(self.events, NotificationType.submission_rejected,
                              {"to": recipient, "project": project_payload(updated)["project"], "reason": values["rejection_reason"]})
            await safe_emit(self.events, EventType.project_rejected,
                            project_payload(updated, rejection_reason=values["rejection_reason"]))
        return updated

    # ---------- owner edits ----------

    async def update_details(self, project_id: str, user: dict, changes: SubmissionUpdate) -> dict:
        app = await self.store.find_one(APPS, {"id": project_id})
        if not app:
            raise NotFound("Project not found", project_id=project_id)
        if app.get("submitted_by") != user["id"] and user.get("role") != "admin":
            raise Forbidden("You can only edit your own projects")
        if app["status"] != SubmissionStatus.scheduled.value:
            raise InvalidTransition(project_id, app["status"], "edit")

        values = changes.model_dump(exclude_unset=True)
        cleared = [f for f in NOT_CLEARABLE if f in values
                   and (values[f] is None or (isinstance(values[f], str) and not values[f].strip()))]
        if cleared:
            raise ValidationFailed(f"Missing required fields: {', '.join(cleared)}", code="MISSING_FIELDS", fields=cleared)
        for field in ("logo_url", "video_url", "backlink_url"):
            if values.get(field) and not is_http_url(values[field]):
                raise ValidationFailed(f"Invalid {field}", code="INVALID_URL", fields=[field])
        if "logo_url" in values and not values["logo_url"]:
            raise ValidationFailed("Logo is required", code="MISSING_LOGO", fields=["logo_url"])
        if "categories" in values and not (1 <= len(values["categories"] or []) <= MAX_CATEGORIES):
            raise ValidationFailed(f"Choose between 1 and {MAX_CATEGORIES} categories",
                                   code="INVALID_CATEGORIES", fields=["categories"])
        if "pricing" in values and values["pricing"] not in {p.value for p in Pricing}:
            raise ValidationFailed("Pricing must be Free, Freemium or Paid", code="INVALID_PRICING", fields=["pricing"])
        if not values:
            return app
        values["updated_at"] = self.clock.now()
        res = await self.store.update_one(APPS, {"id": project_id, "status": SubmissionStatus.scheduled.value},
                                          {"$set": values})
        if not res.matched_count:
            current = await self.store.find_one(APPS, {"id": project_id}) or app
            raise InvalidTransition(project_id, current["status"], "edit")
        return res.document

    async def delete_draft(self, project_id: str, user: dict) -> None:
        app = await self.store.find_one(APPS, {"id": project_id})
        if not app:
            raise NotFound("Project not found", project_id=project_id)
        if app.get("submitted_by") != user["id"]:
            raise Forbidden("You can only delete your own drafts")
        if not app.get("is_draft"):
            raise InvalidTransition(project_id, app["status"], "delete")
        res = await self.store.delete_one(APPS, {"id": project_id, "is_draft": True})
        if not res.deleted_count:
            raise InvalidTransition(project_id, "paid", "delete")
        log.info("draft_deleted", project_id=project_id, by=user["id"])

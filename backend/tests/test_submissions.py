from __future__ import annotations
import asyncio
from datetime import datetime, timedelta, timezone
import pytest
import pytest_asyncio

from launchspace.errors import Conflict, Forbidden, InvalidTransition, ValidationFailed
from launchspace.schemas.submission import SubmissionIn, SubmissionUpdate
from launchspace.services.audit import LinkTypeJournal
from launchspace.services.submissions import SubmissionService, normalize_url, slugify
from launchspace.store.base import APPS, COMPETITIONS, USERS

WEEK_START = datetime(2025, 1, 13, 8, 0, tzinfo=timezone.utc)


def _payload(**kw) -> SubmissionIn:
    data = {
        "name": "Copy Wizard",
        "short_description": "Writes landing pages",
        "website_url": "https://copywizard.ai",
        "logo_url": "https://cdn.example.com/cw.png",
        "categories": ["writing"],
        "contact_email": "maker@copywizard.ai",
        "plan": "standard",
        "launch_week": "2025-W03",
    }
    data.update(kw)
    return SubmissionIn(**data)


@pytest.fixture
def service(store, clock, events):
    return SubmissionService(store, clock, events)


@pytest_asyncio.fixture
async def maker(factory):
    return await factory.user()


async def _comp(store, code="2025-W03"):
    return await store.find_one(COMPETITIONS, {"competition_id": code})


def test_slugify_and_url_key():
    assert slugify("  Copy Wizard 2.0! ") == "copy-wizard-2-0"
    assert normalize_url("https://WWW.CopyWizard.ai/app/") == "copywizard.ai/app"
    assert normalize_url("http://copywizard.ai") == "copywizard.ai"


@pytest.mark.asyncio
async def test_standard_submission_takes_a_slot_and_waits_for_review(service, store, factory, events):
    comp = await factory.competition(total=3)
    user = await factory.user()
    result = await service.submit(_payload(), user)

    app = result.project
    assert app["status"] == "pending" and app["is_draft"] is False
    assert app["slug"] == "copy-wizard"
    assert app["link_type"] == "nofollow" and app["upvotes"] == 0
    assert app["weekly_competition_id"] == comp["id"] and app["entered_weekly"] is True
    assert app["pricing"] == "Free"
    assert result.updated_existing is False

    fresh = await _comp(store)
    assert fresh["total_submissions"] == 4 and fresh["standard_submissions"] == 4
    assert (await store.find_one(USERS, {"id": user["id"]}))["total_submissions"] == 1
    assert events.names() == ["project.created"]


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides,code", [
    ({"name": None}, "MISSING_FIELDS"),
    ({"categories": []}, "MISSING_FIELDS"),
    ({"website_url": "not a url"}, "INVALID_URL"),
    ({"logo_url": None}, "MISSING_LOGO"),
    ({"logo_url": "ftp://x"}, "INVALID_LOGO_URL"),
    ({"video_url": "youtube"}, "INVALID_VIDEO_URL"),
    ({"categories": ["a", "b", "c", "d"]}, "INVALID_CATEGORIES"),
    ({"pricing": "Cheap"}, "INVALID_PRICING"),
    ({"plan": "gold"}, "INVALID_PLAN"),
    ({"name": "!!!"}, "INVALID_NAME"),
])
async def test_validation_codes(service, factory, maker, overrides, code):
    await factory.competition()
    with pytest.raises(ValidationFailed) as ei:
        await service.submit(_payload(**overrides), maker)
    assert ei.value.code == code


@pytest.mark.asyncio
async def test_duplicate_name_is_rejected(service, factory, maker):
    await factory.competition()
    await service.submit(_payload(), maker)
    other = await factory.user()
    with pytest.raises(Conflict) as ei:
        await service.submit(_payload(website_url="https://another.ai"), other)
    assert ei.value.code == "SLUG_EXISTS"


@pytest.mark.asyncio
async def test_duplicate_website_matches_normalized_url(service, factory, maker):
    await factory.competition()
    await service.submit(_payload(), maker)
    with pytest.raises(Conflict) as ei:
        await service.submit(_payload(name="Copy Wizard Pro", website_url="https://www.copywizard.ai/"), maker)
    assert ei.value.code == "WEBSITE_EXISTS"
    assert ei.value.extra["existing_directory"] == "Copy Wizard"


@pytest.mark.asyncio
async def test_unknown_or_closed_week(service, factory, maker):
    with pytest.raises(ValidationFailed) as ei:
        await service.submit(_payload(launch_week="2031-W01"), maker)
    assert ei.value.code == "INVALID_WEEK"

    await factory.competition(status="completed")
    with pytest.raises(ValidationFailed) as ei:
        await service.submit(_payload(), maker)
    assert ei.value.code == "WEEK_CLOSED"


@pytest.mark.asyncio
async def test_full_week_rejects_standard_but_premium_fills_slot_16(service, store, factory, maker):
    await factory.competition(total=15)
    with pytest.raises(Conflict) as ei:
        await service.submit(_payload(), maker)
    assert ei.value.code == "WEEK_FULL"
    assert (await _comp(store))["total_submissions"] == 15

    draft = (await service.submit(_payload(plan="premium"), maker)).project
    assert draft["status"] == "draft" and draft["is_draft"] is True
    assert draft["backlink_url"] == "https://copywizard.ai"
    # drafts do not hold a slot
    assert (await _comp(store))["total_submissions"] == 15

    paid = await service.confirm_payment(draft["id"], order_id="ord_1")
    assert paid["payment_status"] is True and paid["status"] == "pending"
    comp = await _comp(store)
    assert comp["total_submissions"] == 16 and comp["premium_submissions"] == 1


@pytest.mark.asyncio
async def test_concurrent_submits_for_the_last_slot(service, store, factory):
    await factory.competition(total=14)
    makers = [await factory.user() for _ in range(6)]
    results = await asyncio.gather(
        *[service.submit(_payload(name=f"Copy Wizard {i}", website_url=f"https://copywizard{i}.ai"), m)
          for i, m in enumerate(makers)],
        return_exceptions=True,
    )
    wins = [r for r in results if not isinstance(r, Exception)]
    losses = [r for r in results if isinstance(r, Conflict)]
    assert len(wins) == 1 and len(losses) == 5
    assert all(e.code == "WEEK_FULL" for e in losses)
    assert (await _comp(store))["total_submissions"] == 15
    assert await store.count(APPS, {}) == 1


@pytest.mark.asyncio
async def test_name_and_website_of_two_different_drafts(service, store, factory, maker):
    comp = await factory.competition()
    named = await factory.app(comp, maker, plan="premium", status="draft", name="Copy Wizard", slug="copy-wizard")
    await factory.app(comp, maker, plan="premium", status="draft", name="Other Draft", slug="other-draft",
                      website_url="https://copywizard.ai", website_key="copywizard.ai")
    with pytest.raises(Conflict) as ei:
        await service.submit(_payload(plan="premium"), maker)
    assert ei.value.code == "WEBSITE_EXISTS"
    assert ei.value.extra["existing_directory"] == "Other Draft"
    assert (await store.find_one(APPS, {"id": named["id"]}))["website_key"] == named["website_key"]
    assert await store.count(APPS, {"website_key": "copywizard.ai"}) == 1

@pytest.mark.asyncio
async def test_unpaid_draft_is_refreshed_in_place(service, store, factory, maker):
    await factory.competition()
    first = (await service.submit(_payload(plan="premium"), maker)).project
    again = await service.submit(_payload(plan="premium", short_description="Now with SEO"), maker)
    assert again.updated_existing is True
    assert again.project["id"] == first["id"]
    assert again.project["short_description"] == "Now with SEO"
    assert await store.count(APPS, {}) == 1


@pytest.mark.asyncio
async def test_paid_premium_for_upcoming_week_is_scheduled_with_dofollow(service, store, factory, maker, events):
    await factory.competition(start=WEEK_START + timedelta(days=7), status="upcoming")
    draft = (await service.submit(_payload(plan="premium", launch_week="2025-W04"), maker)).project

    paid = await service.confirm_payment(draft["id"], order_id="ord_1")
    assert paid["status"] == "scheduled" and paid["approved"] is True
    assert paid["link_type"] == "dofollow" and paid["dofollow_reason"] == "premium_plan"
    history = await LinkTypeJournal(store).history(draft["id"])
    assert [(h.to_type.value, h.changed_by, h.reason) for h in history] == [("dofollow", "system", "premium_plan")]
    assert "project.approved" in events.names()

    # provider redelivers the webhook
    again = await service.confirm_payment(draft["id"], order_id="ord_1")
    assert again["id"] == paid["id"]
    assert (await _comp(store, "2025-W04"))["total_submissions"] == 1
    assert len(await LinkTypeJournal(store).history(draft["id"])) == 1
    assert (await store.find_one(USERS, {"id": maker["id"]}))["total_submissions"] == 1


@pytest.mark.asyncio
async def test_confirm_payment_rejects_standard(service, factory, maker):
    comp = await factory.competition()
    app = await factory.app(comp, maker, status="pending")
    with pytest.raises(ValidationFailed) as ei:
        await service.confirm_payment(app["id"])
    assert ei.value.code == "NOT_PREMIUM"


@pytest.mark.asyncio
async def test_approve_in_running_week_goes_live(service, factory, clock, events):
    comp = await factory.competition()
    app = await factory.app(comp, status="pending")
    updated = await service.approve(app["id"], "approve", None, "admin-1")
    assert updated["status"] == "live" and updated["approved"] is True
    assert updated["published_at"] == clock.now()
    assert updated["homepage_end_date"] == clock.now() + timedelta(days=7)
    assert updated["link_type"] == "nofollow"
    assert [k for k, _ in events.notifications] == ["submissionApproved"]
    assert events.names() == ["project.approved"]


@pytest.mark.asyncio
async def test_approve_for_upcoming_week_schedules(service, factory):
    comp = await factory.competition(start=WEEK_START + timedelta(days=7), status="upcoming")
    app = await factory.app(comp, status="pending")
    updated = await service.approve(app["id"], "approve", None, "admin-1")
    assert updated["status"] == "scheduled"
    assert updated.get("published_at") is None


@pytest.mark.asyncio
async def test_approving_premium_grants_dofollow_and_journals(service, store, factory):
    comp = await factory.competition()
    app = await factory.app(comp, plan="premium", status="pending")
    updated = await service.approve(app["id"], "approve", None, "admin-1")
    assert updated["link_type"] == "dofollow" and updated["dofollow_reason"] == "premium_plan"
    history = await LinkTypeJournal(store).history(app["id"])
    assert history[0].changed_by == "admin-1"


@pytest.mark.asyncio
async def test_reject_requires_reason(service, factory, events):
    comp = await factory.competition()
    app = await factory.app(comp, status="pending")
    with pytest.raises(ValidationFailed) as ei:
        await service.approve(app["id"], "reject", "  ", "admin-1")
    assert ei.value.code == "MISSING_REASON"

    updated = await service.approve(app["id"], "reject", "Broken link", "admin-1")
    assert updated["status"] == "rejected" and updated["rejection_reason"] == "Broken link"
    assert events.names() == ["project.rejected"]


@pytest.mark.asyncio
async def test_review_only_from_pending(service, factory):
    comp = await factory.competition()
    app = await factory.app(comp, status="live")
    with pytest.raises(InvalidTransition) as ei:
        await service.approve(app["id"], "approve", None, "admin-1")
    assert ei.value.code == "INVALID_TRANSITION"
    assert ei.value.status_code == 409

    with pytest.raises(ValidationFailed) as ei:
        await service.approve(app["id"], "publish", None, "admin-1")
    assert ei.value.code == "INVALID_ACTION"


@pytest.mark.asyncio
async def test_notifier_outage_does_not_undo_approval(service, store, factory, events):
    events.fail = True
    comp = await factory.competition()
    app = await factory.app(comp, status="pending")
    updated = await service.approve(app["id"], "approve", None, "admin-1")
    assert updated["status"] == "live"
    assert (await store.find_one(APPS, {"id": app["id"]}))["status"] == "live"


@pytest.mark.asyncio
async def test_owner_edits_scheduled_submission(service, factory, maker):
    comp = await factory.competition(start=WEEK_START + timedelta(days=7), status="upcoming")
    app = await factory.app(comp, maker, status="scheduled")
    updated = await service.update_details(app["id"], maker, SubmissionUpdate(short_description="Sharper pitch"))
    assert updated["short_description"] == "Sharper pitch"

    stranger = await factory.user()
    with pytest.raises(Forbidden):
        await service.update_details(app["id"], stranger, SubmissionUpdate(short_description="x"))
    with pytest.raises(ValidationFailed) as ei:
        await service.update_details(app["id"], maker, SubmissionUpdate(categories=["a", "b", "c", "d"]))
    assert ei.value.code == "INVALID_CATEGORIES"


@pytest.mark.asyncio
async def test_edit_cannot_clear_required_fields(service, store, factory, maker):
    comp = await factory.competition(start=WEEK_START + timedelta(days=7), status="upcoming")
    app = await factory.app(comp, maker, status="scheduled", tags=["slides"])
    with pytest.raises(ValidationFailed) as ei:
        await service.update_details(app["id"], maker, SubmissionUpdate(short_description=None, tags=None))
    assert ei.value.code == "MISSING_FIELDS"
    assert ei.value.extra["fields"] == ["short_description", "tags"]
    with pytest.raises(ValidationFailed):
        await service.update_details(app["id"], maker, SubmissionUpdate(short_description="   "))

    doc = await store.find_one(APPS, {"id": app["id"]})
    assert doc["short_description"] == "An AI tool" and doc["tags"] == ["slides"]
    # optional fields can still be cleared
    updated = await service.update_details(app["id"], maker, SubmissionUpdate(video_url=None, tags=[]))
    assert updated["video_url"] is None and updated["tags"] == []


@pytest.mark.asyncio
async def test_live_submission_cannot_be_edited(service, factory, maker):
    comp = await factory.competition()
    app = await factory.app(comp, maker, status="live")
    with pytest.raises(InvalidTransition):
        await service.update_details(app["id"], maker, SubmissionUpdate(short_description="x"))


@pytest.mark.asyncio
async def test_delete_draft(service, store, factory, maker):
    comp = await factory.competition()
    draft = await factory.app(comp, maker, plan="premium", status="draft")
    live = await factory.app(comp, maker, status="live")
    with pytest.raises(InvalidTransition):
        await service.delete_draft(live["id"], maker)
    other = await factory.user()
    with pytest.raises(Forbidden):
        await service.delete_draft(draft["id"], other)
    await service.delete_draft(draft["id"], maker)
    assert await store.find_one(APPS, {"id": draft["id"]}) is None


@pytest.mark.asyncio
async def test_check_duplicate(service, factory, maker):
    await factory.competition()
    await service.submit(_payload(), maker)
    assert (await service.check_duplicate(website_url="https://copywizard.ai/"))["exists"] is True
    assert (await service.check_duplicate(slug="Copy Wizard"))["existing"]["slug"] == "copy-wizard"
    assert (await service.check_duplicate(slug="nothing-here"))["exists"] is False
    with pytest.raises(ValidationFailed):
        await service.check_duplicate()

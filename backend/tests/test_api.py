import httpx
import pytest
import pytest_asyncio
from datetime import timedelta
from httpx import AsyncClient

from launchspace.config import settings
from launchspace.deps import get_clock, get_events, get_store
from launchspace.main import app
from launchspace.security import make_access_token
from launchspace.store.base import APPS, COMPETITIONS


@pytest_asyncio.fixture
async def ac(store, clock, events):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_events] = lambda: events
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def _auth(user: dict) -> dict:
    return {"Authorization": f"Bearer {make_access_token(user['id'])}"}


SUBMISSION = {
    "name": "Deck Genie",
    "short_description": "Slides from a prompt",
    "website_url": "https://deckgenie.ai",
    "logo_url": "https://cdn.example.com/dg.png",
    "categories": ["productivity"],
    "contact_email": "hi@deckgenie.ai",
    "plan": "standard",
    "launch_week": "2025-W03",
}


@pytest.mark.asyncio
async def test_submit_requires_login(ac):
    r = await ac.post("/submissions", json=SUBMISSION)
    assert r.status_code == 401
    assert r.json() == {"error": "Authentication required", "code": "UNAUTHORIZED"}


@pytest.mark.asyncio
async def test_submit_then_review_then_vote(ac, factory):
    await factory.competition()
    maker = await factory.user()
    admin = await factory.user(role="admin")
    voter = await factory.user()

    r = await ac.post("/submissions", json=SUBMISSION, headers=_auth(maker))
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["success"] is True and body["data"]["status"] == "pending"
    project_id = body["data"]["id"]

    r = await ac.post("/admin/approve", headers=_auth(maker),
                      json={"directoryId": project_id, "action": "approve"})
    assert r.status_code == 403

    r = await ac.post("/admin/approve", headers=_auth(admin),
                      json={"directoryId": project_id, "action": "approve"})
    assert r.status_code == 200, r.text
    assert r.json()["data"]["status"] == "live"

    r = await ac.post("/vote", headers={**_auth(voter), "x-forwarded-for": "203.0.113.9, 10.0.0.1"},
                      json={"appId": project_id, "action": "upvote"})
    assert r.status_code == 200, r.text
    assert r.json() == {"appId": project_id, "action": "upvote", "newVoteCount": 1, "userVoted": True}

    r = await ac.get("/vote", params={"appId": project_id}, headers=_auth(voter))
    assert r.json() == {"appId": project_id, "voteCount": 1, "userVoted": True}


@pytest.mark.asyncio
async def test_error_body_carries_code_and_fields(ac, factory):
    await factory.competition(total=15)
    maker = await factory.user()
    r = await ac.post("/submissions", json=SUBMISSION, headers=_auth(maker))
    assert r.status_code == 409
    assert r.json()["code"] == "WEEK_FULL"
    assert r.json()["competition_id"] == "2025-W03"

    r = await ac.post("/submissions", json={**SUBMISSION, "website_url": "nope"}, headers=_auth(maker))
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_URL" and r.json()["fields"] == ["website_url"]


@pytest.mark.asyncio
async def test_vote_requires_fields(ac, factory):
    voter = await factory.user()
    r = await ac.post("/vote", headers=_auth(voter), json={"action": "upvote"})
    assert r.status_code == 400 and r.json()["code"] == "MISSING_FIELDS"
    r = await ac.get("/vote")
    assert r.status_code == 400 and r.json()["code"] == "MISSING_FIELDS"


@pytest.mark.asyncio
async def test_current_competition_reconciles_lazily(ac, store, factory, clock):
    comp = await factory.competition(status="upcoming")
    r = await ac.get("/competitions", params={"current": "true"})
    assert r.status_code == 200
    comps = r.json()["data"]["competitions"]
    assert comps[0]["competition_id"] == "2025-W03" and comps[0]["status"] == "active"
    assert comps[0]["timeLeft"]["days"] == 4
    assert (await store.find_one(COMPETITIONS, {"id": comp["id"]}))["status"] == "active"


@pytest.mark.asyncio
async def test_available_weeks_by_plan(ac, factory):
    await factory.competition(total=15)
    r = await ac.get("/competitions", params={"available": "true", "plan": "standard"})
    weeks = r.json()["data"]["weeks"]
    assert weeks[0]["competition_id"] == "2025-W04"
    r = await ac.get("/competitions", params={"available": "true", "plan": "gold"})
    assert r.status_code == 400 and r.json()["code"] == "INVALID_PLAN"


@pytest.mark.asyncio
async def test_cron_requires_shared_secret(ac, factory, clock, monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", "s3cret")
    comp = await factory.competition(start=clock.now() - timedelta(days=9))
    await factory.app(comp, upvotes=3)

    r = await ac.post("/cron/competitions", headers={"Authorization": "Bearer wrong"})
    assert r.status_code == 401

    r = await ac.post("/cron/competitions", headers={"Authorization": "Bearer s3cret"})
    assert r.status_code == 200, r.text
    results = r.json()["results"]
    assert results["completed"] == [comp["competition_id"]]
    assert len(results["created"]) == settings.horizon_weeks
    assert results["errors"] == []


@pytest.mark.asyncio
async def test_admin_link_type_endpoints(ac, store, factory):
    admin = await factory.user(role="admin")
    comp = await factory.competition()
    app_doc = await factory.app(comp)

    r = await ac.post("/admin/link-type", headers=_auth(admin),
                      json={"action": "upgrade", "directoryId": app_doc["id"]})
    assert r.status_code == 200 and r.json()["directory"]["link_type"] == "dofollow"

    r = await ac.post("/admin/link-type", headers=_auth(admin),
                      json={"action": "bulk", "directoryIds": [app_doc["id"]], "linkType": "sideways"})
    assert r.status_code == 400 and r.json()["code"] == "INVALID_LINK_TYPE"

    r = await ac.get(f"/admin/link-type/history/{app_doc['id']}", headers=_auth(admin))
    history = r.json()["history"]
    assert [(h["from_type"], h["to_type"], h["reason"]) for h in history] == [("nofollow", "dofollow", "manual_upgrade")]

    r = await ac.get(f"/admin/link-type/eligibility/{app_doc['id']}", headers=_auth(admin))
    assert r.json()["eligibility"]["eligible"] is True

    r = await ac.post("/admin/winner-badge", headers=_auth(admin),
                      json={"directoryId": app_doc["id"], "weekly_position": 7})
    assert r.status_code == 400 and r.json()["code"] == "INVALID_POSITION"


@pytest.mark.asyncio
async def test_admin_complete_competition(ac, store, factory):
    admin = await factory.user(role="admin")
    comp = await factory.competition()
    winner = await factory.app(comp, upvotes=5)
    r = await ac.post("/admin/competitions/2025-W03/complete", headers=_auth(admin))
    assert r.status_code == 200, r.text
    assert r.json()["competition"]["winners"][0]["slug"] == winner["slug"]
    assert (await store.find_one(APPS, {"id": winner["id"]}))["weekly_position"] == 1

    r = await ac.post("/admin/competitions/2025-W03/complete", headers=_auth(admin))
    assert r.status_code == 400 and r.json()["code"] == "ALREADY_COMPLETED"

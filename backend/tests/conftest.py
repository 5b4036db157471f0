from __future__ import annotations
import itertools
import uuid
from datetime import datetime, timedelta, timezone
import pytest

from launchspace.clock import FrozenClock
from launchspace.services.events import EventDispatcher
from launchspace.store.base import APPS, COMPETITIONS, USERS
from launchspace.store.memory import MemoryDocumentStore

# Monday 2025-01-13 00:00 PST == 08:00 UTC, ISO week 2025-W03
WEEK_START = datetime(2025, 1, 13, 8, 0, tzinfo=timezone.utc)
WEEK_END = WEEK_START + timedelta(days=7) - timedelta(milliseconds=1)


class RecordingDispatcher(EventDispatcher):
    def __init__(self):
        self.notifications: list[tuple[str, dict]] = []
        self.emitted: list[tuple[str, dict]] = []
        self.fail = False

    async def notify(self, kind, payload):
        if self.fail:
            raise RuntimeError("notification service down")
        self.notifications.append((kind.value, payload))

    async def emit(self, event, payload):
        if self.fail:
            raise RuntimeError("webhook endpoint down")
        self.emitted.append((event.value, payload))

    def names(self) -> list[str]:
        return [e for e, _ in self.emitted]


class Factory:
    """Seeds documents straight into the store."""

    def __init__(self, store: MemoryDocumentStore, clock: FrozenClock):
        self.store = store
        self.clock = clock
        self._seq = itertools.count(1)

    async def user(self, role: str = "user", **kw) -> dict:
        n = next(self._seq)
        doc = {"id": str(uuid.uuid4()), "email": f"user{n}@example.com", "name": f"User {n}", "role": role,
               "total_submissions": 0, "total_votes": 0}
        doc.update(kw)
        return (await self.store.insert_one(USERS, doc)).document

    async def competition(self, start: datetime = WEEK_START, status: str = "active", total: int = 0,
                          code: str | None = None, **kw) -> dict:
        iso = (start - timedelta(hours=8)).date().isocalendar()
        doc = {
            "competition_id": code or f"{iso[0]}-W{iso[1]:02d}",
            "type": "weekly",
            "start_date": start,
            "end_date": start + timedelta(days=7) - timedelta(milliseconds=1),
            "timezone": "PST",
            "status": status,
            "total_submissions": total,
            "standard_submissions": total,
            "premium_submissions": 0,
            "max_standard_slots": 15,
            "max_premium_slots": 10,
            "total_votes": 0,
            "total_participants": 0,
            "winner_id": None,
            "runner_up_ids": [],
            "top_three_ids": [],
            "completed_at": None,
            "awarded_at": None,
        }
        doc.update(kw)
        return (await self.store.insert_one(COMPETITIONS, doc)).document

    async def app(self, competition: dict | None, user: dict | None = None, plan: str = "standard",
                  status: str = "live", upvotes: int = 0, created_at: datetime | None = None, **kw) -> dict:
        n = next(self._seq)
        owner = user["id"] if user else str(uuid.uuid4())
        doc = {
            "name": f"Project {n}",
            "slug": f"project-{n}",
            "short_description": "An AI tool",
            "website_url": f"https://project{n}.example.com",
            "website_key": f"project{n}.example.com",
            "logo_url": f"https://cdn.example.com/{n}.png",
            "categories": ["productivity"],
            "contact_email": f"maker{n}@example.com",
            "submitted_by": owner,
            "plan": plan,
            "premium_badge": plan == "premium",
            "homepage_duration": 7,
            "status": status,
            "is_draft": status == "draft",
            "approved": status in ("scheduled", "live"),
            "payment_status": plan == "premium" and status != "draft",
            "launch_week": competition["competition_id"] if competition else None,
            "weekly_competition_id": competition["id"] if competition else None,
            "entered_weekly": competition is not None,
            "weekly_competition_ended": False,
            "link_type": "nofollow",
            "dofollow_status": False,
            "dofollow_reason": None,
            "dofollow_awarded_at": None,
            "weekly_winner": False,
            "weekly_position": None,
            "views": 0,
            "upvotes": upvotes,
            "clicks": 0,
            "total_engagement": 0,
            "created_at": created_at or self.clock.now(),
        }
        doc.update(kw)
        return (await self.store.insert_one(APPS, doc)).document


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def clock():
    # Wednesday of the seeded week
    return FrozenClock(WEEK_START + timedelta(days=2))


@pytest.fixture
def events():
    return RecordingDispatcher()


@pytest.fixture
def factory(store, clock):
    return Factory(store, clock)

from __future__ import annotations
import uuid
import jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from launchspace.clock import Clock, system_clock
from launchspace.config import settings
from launchspace.errors import Forbidden, Unauthorized
from launchspace.security import decode_token
from launchspace.services.awards import AwardEngine
from launchspace.services.events import EventDispatcher, build_dispatcher
from launchspace.services.lifecycle import CompetitionLifecycle
from launchspace.services.submissions import SubmissionService
from launchspace.services.voting import VotingLedger
from launchspace.store.base import USERS, DocumentStore

security = HTTPBearer(auto_error=False)

_store: DocumentStore | None = None
_events: EventDispatcher | None = None


def build_store() -> DocumentStore:
    if settings.store_backend == "memory":
        from launchspace.store.memory import MemoryDocumentStore
        return MemoryDocumentStore()
    from launchspace.db import SessionLocal
    from launchspace.store.sql import SqlDocumentStore
    return SqlDocumentStore(SessionLocal)


def get_store() -> DocumentStore:
    global _store
    if _store is None:
        _store = build_store()
    return _store


def get_clock() -> Clock:
    return system_clock


def get_events() -> EventDispatcher:
    global _events
    if _events is None:
        _events = build_dispatcher()
    return _events


def get_awards(store: DocumentStore = Depends(get_store), clock: Clock = Depends(get_clock),
               events: EventDispatcher = Depends(get_events)) -> AwardEngine:
    return AwardEngine(store, clock, events)


def get_lifecycle(store: DocumentStore = Depends(get_store), clock: Clock = Depends(get_clock),
                  awards: AwardEngine = Depends(get_awards)) -> CompetitionLifecycle:
    return CompetitionLifecycle(store, clock, awards=awards)


def get_submissions(store: DocumentStore = Depends(get_store), clock: Clock = Depends(get_clock),
                    events: EventDispatcher = Depends(get_events)) -> SubmissionService:
    return SubmissionService(store, clock, events)


def get_voting(store: DocumentStore = Depends(get_store), clock: Clock = Depends(get_clock),
               events: EventDispatcher = Depends(get_events)) -> VotingLedger:
    return VotingLedger(store, clock, events)


async def _user_from(credentials: HTTPAuthorizationCredentials | None, store: DocumentStore) -> dict:
    if credentials is None:
        raise Unauthorized("Authentication required")
    try:
        data = decode_token(credentials.credentials)
    except jwt.PyJWTError:
        raise Unauthorized("Invalid token")
    if data.get("type") != "access":
        raise Unauthorized("Wrong token type")
    try:
        sub = str(uuid.UUID(str(data.get("sub"))))
    except ValueError:
        raise Unauthorized("Invalid token subject")
    user = await store.find_one(USERS, {"id": sub})
    if not user:
        raise Unauthorized("User not found")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    store: DocumentStore = Depends(get_store),
) -> dict:
    return await _user_from(credentials, store)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    store: DocumentStore = Depends(get_store),
) -> dict | None:
    if credentials is None:
        return None
    try:
        return await _user_from(credentials, store)
    except Unauthorized:
        return None


async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise Forbidden("Admin access required")
    return user

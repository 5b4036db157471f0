from __future__ import annotations
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

Document = dict[str, Any]
Filter = dict[str, Any]
Update = dict[str, Any]
Sort = list[tuple[str, int]]

APPS = "apps"
COMPETITIONS = "competitions"
VOTES = "votes"
USERS = "users"
WEBHOOK_LOGS = "webhook_logs"
LINK_TYPE_CHANGES = "link_type_changes"

COLLECTIONS = (APPS, COMPETITIONS, VOTES, USERS, WEBHOOK_LOGS, LINK_TYPE_CHANGES)

# Unique keys enforced by every backend; (collection -> list of field tuples)
UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    APPS: [("slug",)],
    COMPETITIONS: [("type", "competition_id")],
    VOTES: [("user_id", "app_id")],
    USERS: [("email",)],
}

UPDATE_OPERATORS = ("$set", "$inc", "$unset")


class StoreError(Exception):
    pass


class DuplicateKeyError(StoreError):
    def __init__(self, collection: str, key: Iterable[str] | None = None):
        self.collection = collection
        self.key = tuple(key or ())
        super().__init__(f"duplicate key in {collection}: {', '.join(self.key) or 'unique constraint'}")


@dataclass(frozen=True)
class InsertResult:
    inserted_id: str
    document: Document


@dataclass(frozen=True)
class UpdateResult:
    matched_count: int
    modified_count: int
    document: Document | None = None


@dataclass(frozen=True)
class DeleteResult:
    deleted_count: int


def new_id() -> str:
    return str(uuid.uuid4())


def plain(value: Any) -> Any:
    """Strip enum wrappers so every backend stores primitive values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [plain(v) for v in value]
    return value


def unset_fields(value: Any) -> list[str]:
    if isinstance(value, dict):
        return list(value.keys())
    return list(value or [])


def check_update(update: Update) -> None:
    bad = [k for k in update if k not in UPDATE_OPERATORS]
    if bad:
        raise StoreError(f"unsupported update operator(s): {', '.join(bad)}")


class DocumentStore(ABC):
    """Collection-oriented persistence contract.

    Filters are Mongo-like dictionaries: plain values mean equality (array
    fields match when they contain the value, None matches null or missing),
    operators are ``$in $nin $ne $exists $regex/$options $overlaps $lt $lte
    $gt $gte`` and the combinators ``$and`` / ``$or``. Updates accept ``$set``,
    ``$inc`` and ``$unset``.

    ``update_one`` is the atomic conditional write: the filter is evaluated and
    the update applied as one step, so "increment iff total < ceiling" and
    "claim iff status = active" cannot interleave with another writer.
    """

    @abstractmethod
    async def find(self, collection: str, filter: Filter | None = None, *, sort: Sort | None = None,
                   skip: int = 0, limit: int | None = None) -> list[Document]: ...

    async def find_one(self, collection: str, filter: Filter, *, sort: Sort | None = None) -> Document | None:
        rows = await self.find(collection, filter, sort=sort, limit=1)
        return rows[0] if rows else None

    @abstractmethod
    async def insert_one(self, collection: str, doc: Document) -> InsertResult: ...

    @abstractmethod
    async def update_one(self, collection: str, filter: Filter, update: Update) -> UpdateResult: ...

    @abstractmethod
    async def update_many(self, collection: str, filter: Filter, update: Update) -> UpdateResult: ...

    @abstractmethod
    async def delete_one(self, collection: str, filter: Filter) -> DeleteResult: ...

    @abstractmethod
    async def count(self, collection: str, filter: Filter | None = None) -> int: ...

    async def close(self) -> None:
        return None

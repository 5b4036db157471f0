from __future__ import annotations
import asyncio
import copy
import re
from typing import Any

from launchspace.store.base import (
    COLLECTIONS, UNIQUE_KEYS, Document, DocumentStore, DeleteResult, DuplicateKeyError,
    Filter, InsertResult, Sort, StoreError, Update, UpdateResult, check_update, new_id, plain, unset_fields,
)

_MISSING = object()


def _is_operator_dict(cond: Any) -> bool:
    return isinstance(cond, dict) and bool(cond) and all(str(k).startswith("$") for k in cond)


def _eq(value: Any, expected: Any) -> bool:
    if expected is None:
        return value is _MISSING or value is None
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return value == expected


def _in(value: Any, options: list[Any]) -> bool:
    if isinstance(value, list):
        return any(v in options for v in value)
    return any(_eq(value, o) for o in options)


def _cmp(value: Any, op: str, bound: Any) -> bool:
    if value is _MISSING or value is None:
        return False
    if op == "$lt":
        return value < bound
    if op == "$lte":
        return value <= bound
    if op == "$gt":
        return value > bound
    return value >= bound


def _match_field(value: Any, cond: Any) -> bool:
    if not _is_operator_dict(cond):
        return _eq(value, plain(cond))
    flags = re.IGNORECASE if "i" in str(cond.get("$options", "")) else 0
    for op, arg in cond.items():
        arg = plain(arg)
        if op == "$in":
            ok = _in(value, list(arg))
        elif op == "$nin":
            ok = not _in(value, list(arg))
        elif op == "$ne":
            ok = not _eq(value, arg)
        elif op == "$exists":
            ok = (value is not _MISSING and value is not None) == bool(arg)
        elif op == "$regex":
            ok = isinstance(value, str) and re.search(arg, value, flags) is not None
        elif op == "$options":
            ok = True
        elif op == "$overlaps":
            ok = isinstance(value, list) and any(v in arg for v in value)
        elif op in ("$lt", "$lte", "$gt", "$gte"):
            ok = _cmp(value, op, arg)
        else:
            raise StoreError(f"unsupported filter operator: {op}")
        if not ok:
            return False
    return True


def matches(doc: Document, filt: Filter | None) -> bool:
    for key, cond in (filt or {}).items():
        if key == "$and":
            if not all(matches(doc, f) for f in cond):
                return False
        elif key == "$or":
            if not any(matches(doc, f) for f in cond):
                return False
        elif not _match_field(doc.get(key, _MISSING), cond):
            return False
    return True


def apply_update(doc: Document, update: Update) -> Document:
    check_update(update)
    out = dict(doc)
    for k, v in (update.get("$set") or {}).items():
        out[k] = copy.deepcopy(plain(v))
    for k, n in (update.get("$inc") or {}).items():
        out[k] = (out.get(k) or 0) + n
    for k in unset_fields(update.get("$unset")):
        out[k] = None
    return out


def sort_docs(docs: list[Document], sort: Sort | None) -> list[Document]:
    out = list(docs)
    # Stable sorts applied from the least significant key; nulls sort lowest.
    for field, direction in reversed(sort or []):
        out.sort(key=lambda d: (d.get(field) is not None, d.get(field) if d.get(field) is not None else 0),
                 reverse=direction < 0)
    return out


class MemoryDocumentStore(DocumentStore):
    """In-process store with the same atomicity as the SQL backend.

    Every operation runs under one asyncio lock without awaiting inside it, so
    each call is a single indivisible step.
    """

    def __init__(self):
        self._data: dict[str, dict[str, Document]] = {name: {} for name in COLLECTIONS}
        self._lock = asyncio.Lock()

    def _coll(self, name: str) -> dict[str, Document]:
        if name not in self._data:
            raise StoreError(f"unknown collection: {name}")
        return self._data[name]

    def _check_unique(self, collection: str, doc: Document, ignore_id: str | None = None) -> None:
        for fields in UNIQUE_KEYS.get(collection, []):
            key = tuple(doc.get(f) for f in fields)
            if any(v is None for v in key):
                continue
            for other in self._data[collection].values():
                if other["id"] != ignore_id and tuple(other.get(f) for f in fields) == key:
                    raise DuplicateKeyError(collection, fields)

    async def find(self, collection: str, filter: Filter | None = None, *, sort: Sort | None = None,
                   skip: int = 0, limit: int | None = None) -> list[Document]:
        async with self._lock:
            rows = [d for d in self._coll(collection).values() if matches(d, filter)]
            rows = sort_docs(rows, sort)[skip:]
            if limit is not None:
                rows = rows[:limit]
            return copy.deepcopy(rows)

    async def insert_one(self, collection: str, doc: Document) -> InsertResult:
        async with self._lock:
            coll = self._coll(collection)
            row = copy.deepcopy(plain(doc))
            row.setdefault("id", new_id())
            if row["id"] in coll:
                raise DuplicateKeyError(collection, ("id",))
            self._check_unique(collection, row)
            coll[row["id"]] = row
            return InsertResult(inserted_id=row["id"], document=copy.deepcopy(row))

    async def update_one(self, collection: str, filter: Filter, update: Update) -> UpdateResult:
        async with self._lock:
            coll = self._coll(collection)
            target = next((d for d in coll.values() if matches(d, filter)), None)
            if target is None:
                return UpdateResult(0, 0)
            updated = apply_update(target, update)
            self._check_unique(collection, updated, ignore_id=target["id"])
            coll[target["id"]] = updated
            return UpdateResult(1, int(updated != target), copy.deepcopy(updated))

    async def update_many(self, collection: str, filter: Filter, update: Update) -> UpdateResult:
        async with self._lock:
            coll = self._coll(collection)
            matched = modified = 0
            for key, doc in list(coll.items()):
                if not matches(doc, filter):
                    continue
                matched += 1
                updated = apply_update(doc, update)
                self._check_unique(collection, updated, ignore_id=key)
                if updated != doc:
                    modified += 1
                coll[key] = updated
            return UpdateResult(matched, modified)

    async def delete_one(self, collection: str, filter: Filter) -> DeleteResult:
        async with self._lock:
            coll = self._coll(collection)
            target = next((k for k, d in coll.items() if matches(d, filter)), None)
            if target is None:
                return DeleteResult(0)
            del coll[target]
            return DeleteResult(1)

    async def count(self, collection: str, filter: Filter | None = None) -> int:
        async with self._lock:
            return sum(1 for d in self._coll(collection).values() if matches(d, filter))

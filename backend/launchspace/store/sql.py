from __future__ import annotations
from typing import Any

from sqlalchemy import Column, Table, and_, delete, false, func, insert, not_, or_, select, true, update
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement

from launchspace.models.app import App
from launchspace.models.competition import Competition
from launchspace.models.link_type_change import LinkTypeChangeRow
from launchspace.models.user import User
from launchspace.models.vote import Vote
from launchspace.models.webhook_log import WebhookLog
from launchspace.store.base import (
    APPS, COMPETITIONS, LINK_TYPE_CHANGES, USERS, VOTES, WEBHOOK_LOGS,
    Document, DocumentStore, DeleteResult, DuplicateKeyError, Filter, InsertResult, Sort, StoreError,
    Update, UpdateResult, check_update, new_id, plain, unset_fields,
)

TABLES: dict[str, Table] = {
    APPS: App.__table__,
    COMPETITIONS: Competition.__table__,
    VOTES: Vote.__table__,
    USERS: User.__table__,
    WEBHOOK_LOGS: WebhookLog.__table__,
    LINK_TYPE_CHANGES: LinkTypeChangeRow.__table__,
}


def table_for(collection: str) -> Table:
    try:
        return TABLES[collection]
    except KeyError:
        raise StoreError(f"unknown collection: {collection}")


def _column(table: Table, name: str) -> Column:
    if name not in table.c:
        raise StoreError(f"unknown field {name!r} on {table.name}")
    return table.c[name]


def _is_array(col: Column) -> bool:
    return isinstance(col.type, ARRAY)


def _eq(col: Column, value: Any) -> ColumnElement:
    if value is None:
        return col.is_(None)
    if _is_array(col) and not isinstance(value, list):
        return col.contains([value])
    return col == value


def _in(col: Column, values: list[Any]) -> ColumnElement:
    if _is_array(col):
        return col.overlap(values)
    present = [v for v in values if v is not None]
    clause = col.in_(present) if present else false()
    if len(present) != len(values):
        clause = or_(clause, col.is_(None))
    return clause


def _field(col: Column, cond: Any) -> ColumnElement:
    if not (isinstance(cond, dict) and cond and all(str(k).startswith("$") for k in cond)):
        return _eq(col, plain(cond))
    flags = "i" if "i" in str(cond.get("$options", "")) else None
    parts: list[ColumnElement] = []
    for op, arg in cond.items():
        arg = plain(arg)
        if op == "$in":
            parts.append(_in(col, list(arg)))
        elif op == "$nin":
            parts.append(not_(_in(col, list(arg))) if None in arg or _is_array(col)
                         else or_(col.is_(None), not_(_in(col, list(arg)))))
        elif op == "$ne":
            parts.append(col.isnot(None) if arg is None else or_(col.is_(None), not_(_eq(col, arg))))
        elif op == "$exists":
            parts.append(col.isnot(None) if arg else col.is_(None))
        elif op == "$regex":
            parts.append(col.regexp_match(arg, flags=flags))
        elif op == "$options":
            continue
        elif op == "$overlaps":
            parts.append(col.overlap(list(arg)))
        elif op == "$lt":
            parts.append(col < arg)
        elif op == "$lte":
            parts.append(col <= arg)
        elif op == "$gt":
            parts.append(col > arg)
        elif op == "$gte":
            parts.append(col >= arg)
        else:
            raise StoreError(f"unsupported filter operator: {op}")
    return and_(true(), *parts)


def compile_filter(table: Table, filt: Filter | None) -> ColumnElement:
    """Translate a document filter into a SQLAlchemy boolean expression."""
    clauses: list[ColumnElement] = []
    for key, cond in (filt or {}).items():
        if key == "$and":
            clauses.append(and_(true(), *[compile_filter(table, f) for f in cond]))
        elif key == "$or":
            clauses.append(or_(false(), *[compile_filter(table, f) for f in cond]))
        else:
            clauses.append(_field(_column(table, key), cond))
    return and_(true(), *clauses)


def compile_update(table: Table, upd: Update) -> dict[str, Any]:
    check_update(upd)
    values: dict[str, Any] = {}
    for k, v in (upd.get("$set") or {}).items():
        _column(table, k)
        values[k] = plain(v)
    for k, n in (upd.get("$inc") or {}).items():
        col = _column(table, k)
        values[k] = func.coalesce(col, 0) + n
    for k in unset_fields(upd.get("$unset")):
        _column(table, k)
        values[k] = None
    return values


def compile_sort(table: Table, sort: Sort | None) -> list[ColumnElement]:
    # nulls lowest, matching the in-memory store
    return [
        _column(table, f).asc().nulls_first() if d >= 0 else _column(table, f).desc().nulls_last()
        for f, d in (sort or [])
    ]


def is_unique_violation(e: IntegrityError) -> bool:
    if getattr(e.orig, "sqlstate", None) == "23505":
        return True
    text = str(e.orig).lower()
    return "unique" in text or "duplicate" in text


def _doc(row) -> Document:
    return dict(row._mapping)


class SqlDocumentStore(DocumentStore):
    """Postgres-backed store. Each call is its own transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    def _target_id(self, table: Table, cond: ColumnElement):
        # Locks one matching row; the outer statement re-checks the filter after the lock wait.
        return select(table.c.id).where(cond).limit(1).with_for_update().scalar_subquery()

    async def find(self, collection: str, filter: Filter | None = None, *, sort: Sort | None = None,
                   skip: int = 0, limit: int | None = None) -> list[Document]:
        table = table_for(collection)
        stmt = select(table).where(compile_filter(table, filter)).order_by(*compile_sort(table, sort))
        if skip:
            stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).all()
        return [_doc(r) for r in rows]

    async def insert_one(self, collection: str, doc: Document) -> InsertResult:
        table = table_for(collection)
        values = plain(doc)
        values.setdefault("id", new_id())
        for k in values:
            _column(table, k)
        stmt = insert(table).values(**values).returning(*table.c)
        try:
            async with self._sessions() as session, session.begin():
                row = (await session.execute(stmt)).one()
        except IntegrityError as e:
            if is_unique_violation(e):
                raise DuplicateKeyError(collection) from e
            raise
        return InsertResult(inserted_id=str(row.id), document=_doc(row))

    async def update_one(self, collection: str, filter: Filter, upd: Update) -> UpdateResult:
        table = table_for(collection)
        cond = compile_filter(table, filter)
        stmt = (
            update(table)
            .where(table.c.id == self._target_id(table, cond), cond)
            .values(**compile_update(table, upd))
            .returning(*table.c)
        )
        try:
            async with self._sessions() as session, session.begin():
                row = (await session.execute(stmt)).first()
        except IntegrityError as e:
            if is_unique_violation(e):
                raise DuplicateKeyError(collection) from e
            raise
        if row is None:
            return UpdateResult(0, 0)
        return UpdateResult(1, 1, _doc(row))

    async def update_many(self, collection: str, filter: Filter, upd: Update) -> UpdateResult:
        table = table_for(collection)
        stmt = update(table).where(compile_filter(table, filter)).values(**compile_update(table, upd))
        try:
            async with self._sessions() as session, session.begin():
                result = await session.execute(stmt)
        except IntegrityError as e:
            if is_unique_violation(e):
                raise DuplicateKeyError(collection) from e
            raise
        return UpdateResult(result.rowcount, result.rowcount)

    async def delete_one(self, collection: str, filter: Filter) -> DeleteResult:
        table = table_for(collection)
        cond = compile_filter(table, filter)
        stmt = delete(table).where(table.c.id == self._target_id(table, cond), cond)
        async with self._sessions() as session, session.begin():
            result = await session.execute(stmt)
        return DeleteResult(result.rowcount)

    async def count(self, collection: str, filter: Filter | None = None) -> int:
        table = table_for(collection)
        stmt = select(func.count()).select_from(table).where(compile_filter(table, filter))
        async with self._sessions() as session:
            return int(await session.scalar(stmt) or 0)

    async def close(self) -> None:
        return None

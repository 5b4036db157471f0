from __future__ import annotations
from dataclasses import asdict, dataclass
from datetime import datetime

from launchspace.enums import LinkType
from launchspace.store.base import LINK_TYPE_CHANGES, DocumentStore


@dataclass(frozen=True)
class LinkTypeChange:
    project_id: str
    from_type: LinkType
    to_type: LinkType
    changed_by: str
    reason: str
    timestamp: datetime

    @classmethod
    def from_doc(cls, doc: dict) -> "LinkTypeChange":
        return cls(
            project_id=doc["project_id"],
            from_type=LinkType(doc["from_type"]),
            to_type=LinkType(doc["to_type"]),
            changed_by=doc["changed_by"],
            reason=doc["reason"],
            timestamp=doc["timestamp"],
        )

    def to_dict(self) -> dict:
        d = asdict(self)
        d["from_type"] = self.from_type.value
        d["to_type"] = self.to_type.value
        return d


class LinkTypeJournal:
    """Append-only record of link-type transitions. There is no update or delete path."""

    def __init__(self, store: DocumentStore):
        self._store = store

    async def append(self, change: LinkTypeChange) -> None:
        # Failures propagate to the caller.
        await self._store.insert_one(LINK_TYPE_CHANGES, change.to_dict())

    async def history(self, project_id: str, limit: int | None = None) -> list[LinkTypeChange]:
        rows = await self._store.find(
            LINK_TYPE_CHANGES, {"project_id": project_id}, sort=[("timestamp", -1)], limit=limit
        )
        return [LinkTypeChange.from_doc(r) for r in rows]

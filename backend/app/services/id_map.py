"""Identity reconciliation map — draft row ids ↔ production row ids.

The composite key (draft_version_id, module_key, draft_row_id) is unique, so
a row that was synced once is always written back to the same production
row on the next run.
"""
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from app.models.sync import SyncIdMap


@dataclass(frozen=True)
class SyncKey:
    draft_version_id: int
    module_key: str
    draft_row_id: int


class IdentityMap:
    """Durable ``upsert(key) -> target_id`` store on top of ``app_db_sync_id_map``."""

    def __init__(self, db: Session):
        self.db = db

    def _get(self, key: SyncKey) -> Optional[SyncIdMap]:
        return (
            self.db.query(SyncIdMap)
            .filter(
                SyncIdMap.draft_version_id == key.draft_version_id,
                SyncIdMap.module_key == key.module_key,
                SyncIdMap.draft_row_id == key.draft_row_id,
            )
            .first()
        )

    def lookup(self, key: SyncKey) -> Optional[int]:
        entry = self._get(key)
        return entry.target_row_id if entry else None

    def upsert(self, key: SyncKey, writer: Callable[[Optional[int]], int]) -> int:
        """Call ``writer`` with the mapped target id (or None) and record what it returns."""
        entry = self._get(key)
        target_id = writer(entry.target_row_id if entry else None)
        if entry is None:
            entry = SyncIdMap(
                draft_version_id=key.draft_version_id,
                module_key=key.module_key,
                draft_row_id=key.draft_row_id,
                target_row_id=target_id,
            )
            self.db.add(entry)
        elif entry.target_row_id != target_id:
            entry.target_row_id = target_id
        self.db.flush()
        return target_id

    def entries(self, draft_version_id: int, module_key: str) -> list[SyncIdMap]:
        return (
            self.db.query(SyncIdMap)
            .filter(
                SyncIdMap.draft_version_id == draft_version_id,
                SyncIdMap.module_key == module_key,
            )
            .order_by(SyncIdMap.draft_row_id)
            .all()
        )

    def prune(self, draft_version_id: int, module_key: str, keep_draft_ids: Iterable[int]) -> list[int]:
        """Drop mappings for draft rows not in ``keep_draft_ids``; return their target ids."""
        keep = set(keep_draft_ids)
        removed = []
        for entry in self.entries(draft_version_id, module_key):
            if entry.draft_row_id in keep:
                continue
            removed.append(entry.target_row_id)
            self.db.delete(entry)
        if removed:
            self.db.flush()
        return removed

    def mappings(self, draft_version_id: int, modules: Optional[Iterable[str]] = None) -> list[dict]:
        query = self.db.query(SyncIdMap).filter(SyncIdMap.draft_version_id == draft_version_id)
        if modules is not None:
            query = query.filter(SyncIdMap.module_key.in_(list(modules)))
        return [
            {"module_key": m.module_key, "draft_id": m.draft_row_id, "target_id": m.target_row_id}
            for m in query.order_by(SyncIdMap.module_key, SyncIdMap.draft_row_id).all()
        ]

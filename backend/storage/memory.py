# storage/memory.py - Dict-backed storage for development and tests
# Single process only: nothing is persisted and there is no locking beyond the
# event loop running one coroutine at a time.

from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Sequence, Tuple

from errors import UniqueConstraintError
from storage.base import Filters, MULTI_VALUE_TYPES, Record

# Mirrors the unique constraints declared on the relational schema
UNIQUE_FIELDS: Dict[str, Tuple[Tuple[str, ...], ...]] = {
    "user": (("email",),),
    "task_tag": (("task_id", "tag_id"),),
}


def _matches(record: Record, filters: Optional[Filters]) -> bool:
    for field, expected in (filters or {}).items():
        value = record.get(field)
        if isinstance(expected, MULTI_VALUE_TYPES):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def _sort(records: List[Record], order_by: Sequence[str]) -> List[Record]:
    # Stable sorts applied from the last key to the first; missing values sort last
    for key in reversed(order_by):
        descending = key.startswith("-")
        field = key.lstrip("-")
        if descending:
            records.sort(key=lambda r: (r.get(field) is not None, r.get(field)), reverse=True)
        else:
            records.sort(key=lambda r: (r.get(field) is None, r.get(field)))
    return records


class MemoryTransaction:
    """Applies changes immediately and journals how to undo them."""

    def __init__(self, tables: Dict[str, Dict[str, Record]]):
        self._tables = tables
        self._undo: List[Tuple[str, str, str, Optional[Record]]] = []

    def _table(self, entity: str) -> Dict[str, Record]:
        return self._tables.setdefault(entity, {})

    def _check_unique(self, entity: str, record: Record) -> None:
        for fields in UNIQUE_FIELDS.get(entity, ()):
            key = tuple(record.get(f) for f in fields)
            for other in self._table(entity).values():
                if other["id"] != record["id"] and tuple(other.get(f) for f in fields) == key:
                    raise UniqueConstraintError(fields[0])

    async def list(self, entity: str, filters: Optional[Filters] = None, order_by: Sequence[str] = ()) -> List[Record]:
        rows = [dict(r) for r in self._table(entity).values() if _matches(r, filters)]
        return _sort(rows, order_by)

    async def get(self, entity: str, record_id: str) -> Optional[Record]:
        record = self._table(entity).get(record_id)
        return dict(record) if record is not None else None

    async def insert(self, entity: str, values: Record) -> Record:
        record = dict(values)
        table = self._table(entity)
        if record["id"] in table:
            raise UniqueConstraintError("id")
        self._check_unique(entity, record)
        table[record["id"]] = record
        self._undo.append(("insert", entity, record["id"], None))
        return dict(record)

    async def update(self, entity: str, record_id: str, changes: Record) -> Optional[Record]:
        table = self._table(entity)
        current = table.get(record_id)
        if current is None:
            return None
        merged = {**current, **changes, "id": record_id}
        self._check_unique(entity, merged)
        table[record_id] = merged
        self._undo.append(("replace", entity, record_id, current))
        return dict(merged)

    async def delete(self, entity: str, record_id: str) -> bool:
        current = self._table(entity).pop(record_id, None)
        if current is None:
            return False
        self._undo.append(("replace", entity, record_id, current))
        return True

    async def update_where(self, entity: str, filters: Filters, changes: Record) -> int:
        ids = [r["id"] for r in self._table(entity).values() if _matches(r, filters)]
        for record_id in ids:
            await self.update(entity, record_id, changes)
        return len(ids)

    async def delete_where(self, entity: str, filters: Filters) -> int:
        ids = [r["id"] for r in self._table(entity).values() if _matches(r, filters)]
        for record_id in ids:
            await self.delete(entity, record_id)
        return len(ids)

    def rollback(self) -> None:
        while self._undo:
            action, entity, record_id, previous = self._undo.pop()
            table = self._table(entity)
            if action == "insert":
                table.pop(record_id, None)
            else:
                table[record_id] = previous


class MemoryStorage:
    name = "memory"

    def __init__(self):
        self._tables: Dict[str, Dict[str, Record]] = {}

    async def init(self) -> None:
        return None

    async def close(self) -> None:
        self._tables.clear()

    async def ping(self) -> bool:
        return True

    @asynccontextmanager
    async def transaction(self):
        tx = MemoryTransaction(self._tables)
        try:
            yield tx
        except BaseException:
            tx.rollback()
            raise

    def count(self, entity: str) -> int:
        return len(self._tables.get(entity, {}))

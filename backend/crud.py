# crud.py - Generic CRUD service parameterised by an EntitySpec
#
# One CrudService class serves every entity. Entity-specific behaviour is
# supplied as hooks on the EntitySpec and runs inside the same storage transaction
# as the write it belongs to:
#   prepare_create(tx, owner_id, values)   may modify values or raise
#   prepare_update(tx, current, changes)   may modify changes or raise
#   before_delete(tx, record)              cleans up dependants or raises

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from errors import RecordNotFoundError
from logging_system import LogCategory, StructuredLogger
from models import new_uuid, utcnow
from storage import Record, Storage, StorageTransaction

Hook = Callable[..., Awaitable[None]]


@dataclass(frozen=True)
class EntitySpec:
    entity: str
    label: str
    order_by: Tuple[str, ...] = ("-created_at",)
    defaults: Dict[str, Any] = field(default_factory=dict)
    owned: bool = True
    timestamps: Tuple[str, ...] = ("created_at", "updated_at")
    caller_assigned_id: bool = False
    prepare_create: Optional[Hook] = None
    prepare_update: Optional[Hook] = None
    before_delete: Optional[Hook] = None


def next_timestamp(previous: Optional[datetime]) -> datetime:
    """Current time, nudged forward so it is strictly after ``previous``."""
    now = utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


class CrudService:
    def __init__(self, spec: EntitySpec, storage: Storage, logger: StructuredLogger):
        self.spec = spec
        self.storage = storage
        self.logger = logger

    @property
    def entity(self) -> str:
        return self.spec.entity

    def _timed(self, operation: str, **metadata):
        return self.logger.timed(operation, self.spec.entity, metadata)

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    async def list_for_owner(
        self, owner_id: str, order_by: Optional[Sequence[str]] = None, **filters
    ) -> List[Record]:
        """Every record owned by ``owner_id`` matching the equality filters. Unpaginated."""
        with self._timed("list", owner_id=owner_id):
            async with self.storage.transaction() as tx:
                return await tx.list(
                    self.spec.entity,
                    {**filters, "user_id": owner_id},
                    order_by if order_by is not None else self.spec.order_by,
                )

    async def find(self, order_by: Optional[Sequence[str]] = None, **filters) -> List[Record]:
        with self._timed("find"):
            async with self.storage.transaction() as tx:
                return await tx.list(
                    self.spec.entity, filters, order_by if order_by is not None else self.spec.order_by,
                )

    async def find_one(self, **filters) -> Optional[Record]:
        rows = await self.find(**filters)
        return rows[0] if rows else None

    async def find_by_id(self, record_id: str) -> Optional[Record]:
        with self._timed("get", id=record_id):
            async with self.storage.transaction() as tx:
                return await tx.get(self.spec.entity, record_id)

    async def get_by_id(self, record_id: str) -> Record:
        record = await self.find_by_id(record_id)
        if record is None:
            raise RecordNotFoundError(self.spec.label, record_id)
        return record

    async def get_owned(self, record_id: str, owner_id: str) -> Record:
        """The record, provided ``owner_id`` owns it; otherwise not found."""
        record = await self.find_by_id(record_id)
        if record is None:
            raise RecordNotFoundError(self.spec.label, record_id)
        if record.get("user_id") != owner_id:
            self.logger.security_event(
                "ownership_mismatch",
                user_id=owner_id,
                metadata={"entity": self.spec.entity, "id": record_id},
            )
            raise RecordNotFoundError(self.spec.label, record_id)
        return record

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------

    def _new_record(self, owner_id: Optional[str], values: Record) -> Record:
        record = {**self.spec.defaults, **values}
        if not (self.spec.caller_assigned_id and record.get("id")):
            record["id"] = new_uuid()
        if self.spec.owned:
            record["user_id"] = owner_id
        now = utcnow()
        for stamp in self.spec.timestamps:
            record[stamp] = now
        return record

    async def create(self, owner_id: Optional[str], values: Record) -> Record:
        with self._timed("create", owner_id=owner_id):
            async with self.storage.transaction() as tx:
                return await self.create_in(tx, owner_id, values)

    async def create_in(self, tx: StorageTransaction, owner_id: Optional[str], values: Record) -> Record:
        """Create inside a caller-managed transaction."""
        record = self._new_record(owner_id, values)
        if self.spec.prepare_create:
            await self.spec.prepare_create(tx, owner_id, record)
        return await tx.insert(self.spec.entity, record)

    async def update(self, record_id: str, changes: Record) -> Record:
        with self._timed("update", id=record_id):
            async with self.storage.transaction() as tx:
                current = await tx.get(self.spec.entity, record_id)
                if current is None:
                    raise RecordNotFoundError(self.spec.label, record_id)
                changes = {k: v for k, v in changes.items() if k not in ("id", "user_id", "created_at")}
                if self.spec.prepare_update:
                    await self.spec.prepare_update(tx, current, changes)
                if "updated_at" in self.spec.timestamps:
                    changes["updated_at"] = next_timestamp(current.get("updated_at"))
                return await tx.update(self.spec.entity, record_id, changes)

    async def delete(self, record_id: str) -> None:
        with self._timed("delete", id=record_id):
            async with self.storage.transaction() as tx:
                current = await tx.get(self.spec.entity, record_id)
                if current is None:
                    raise RecordNotFoundError(self.spec.label, record_id)
                if self.spec.before_delete:
                    await self.spec.before_delete(tx, current)
                await tx.delete(self.spec.entity, record_id)
        self.logger.info(
            f"{self.spec.label} deleted",
            category=LogCategory.BUSINESS,
            metadata={"entity": self.spec.entity, "id": record_id},
        )

    async def delete_many(self, record_ids: Sequence[str]) -> int:
        """Delete every listed record in one transaction, skipping hooks. Returns the count removed."""
        if not record_ids:
            return 0
        with self._timed("delete_many", count=len(record_ids)):
            async with self.storage.transaction() as tx:
                return await tx.delete_where(self.spec.entity, {"id": list(record_ids)})

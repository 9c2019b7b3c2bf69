"""Storage contracts shared by the in-memory and relational backends.

Records cross this boundary as plain dicts keyed by column name. Filters are
equality matches; a list, tuple or set value matches any of its members.
``order_by`` names fields, with a leading ``-`` for descending order.
"""

from typing import Any, AsyncContextManager, Dict, List, Optional, Protocol, Sequence

Record = Dict[str, Any]
Filters = Dict[str, Any]

MULTI_VALUE_TYPES = (list, tuple, set, frozenset)


class StorageTransaction(Protocol):
    """Operations available inside ``Storage.transaction()``."""

    async def list(
        self, entity: str, filters: Optional[Filters] = None, order_by: Sequence[str] = (),
    ) -> List[Record]: ...

    async def get(self, entity: str, record_id: str) -> Optional[Record]: ...

    async def insert(self, entity: str, values: Record) -> Record: ...

    async def update(self, entity: str, record_id: str, changes: Record) -> Optional[Record]: ...

    async def delete(self, entity: str, record_id: str) -> bool: ...

    async def update_where(self, entity: str, filters: Filters, changes: Record) -> int: ...

    async def delete_where(self, entity: str, filters: Filters) -> int: ...


class Storage(Protocol):
    """A storage backend. Every read and write runs inside ``transaction()``;
    a block that raises leaves no partial writes behind."""

    name: str

    async def init(self) -> None: ...

    async def close(self) -> None: ...

    async def ping(self) -> bool: ...

    def transaction(self) -> AsyncContextManager[StorageTransaction]: ...

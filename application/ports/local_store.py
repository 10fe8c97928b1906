"""
Local Durable Store Interface (Port).

The on-device store holding every committed DomainRecord. The sync engine
treats it as a capability {read, write, transact} keyed by entity type and
id. Queue and sync-state persistence live behind their own ports but must
share the store's transactions so a record write and its queue append
commit or roll back together.
"""
from typing import AsyncContextManager, Awaitable, Callable, List, Optional, Protocol, TypeVar

from domain.models import DomainRecord, EntityType

T = TypeVar("T")


class LocalStore(Protocol):
    """
    Abstract interface for the local durable store.

    Transactions nest: an inner `transaction()` joins the outer one and only
    the outermost block commits. Any exception inside the outermost block
    rolls back every write made in it.
    """

    def transaction(self) -> AsyncContextManager[None]:
        """Open (or join) a store transaction."""
        ...

    async def run_in_transaction(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run `fn` inside a transaction and return its result."""
        ...

    async def get(self, entity_type: EntityType, entity_id: str) -> Optional[DomainRecord]:
        """Get a committed record, or None if absent."""
        ...

    async def put(self, record: DomainRecord) -> None:
        """Insert or replace a record."""
        ...

    async def delete(self, entity_type: EntityType, entity_id: str) -> bool:
        """Delete a record. Returns True if a row was removed."""
        ...

    async def list_records(self, entity_type: EntityType) -> List[DomainRecord]:
        """All records of one entity type, oldest `updated_at` first."""
        ...

    async def count(self, entity_type: EntityType) -> int:
        """Number of records of one entity type."""
        ...

    async def clear(self) -> None:
        """Remove every record (logout / reset)."""
        ...

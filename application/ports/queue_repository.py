"""
Outbound Queue Persistence Interface (Port).

Durable, ordered storage for SyncQueueEntry rows. Only the
OutboundQueueManager talks to this port; everything else goes through the
manager.
"""
from typing import Any, Dict, List, Optional, Protocol, Sequence

from domain.models import EntityType, QueueEntryStatus, SyncOperation, SyncQueueEntry


class QueueRepository(Protocol):
    """Abstract interface for queue entry persistence."""

    async def append(
        self,
        entity_type: EntityType,
        entity_id: str,
        operation: SyncOperation,
        payload: Dict[str, Any],
    ) -> SyncQueueEntry:
        """
        Append a pending entry with the next sequence number.

        Sequence numbers are never reused, even after entries are removed.
        """
        ...

    async def get(self, sequence: int) -> Optional[SyncQueueEntry]:
        """Get an entry by sequence number."""
        ...

    async def list_entries(
        self,
        *,
        statuses: Optional[Sequence[QueueEntryStatus]] = None,
        after_sequence: int = 0,
        limit: Optional[int] = None,
    ) -> List[SyncQueueEntry]:
        """Entries in ascending sequence order, optionally filtered."""
        ...

    async def save(self, entry: SyncQueueEntry) -> None:
        """Persist status, attempts and last_error of an existing entry."""
        ...

    async def remove(self, sequence: int) -> bool:
        """Delete an entry. Returns True if it existed."""
        ...

    async def count(self, status: Optional[QueueEntryStatus] = None) -> int:
        """Count entries, optionally by status."""
        ...

    async def latest_unacked(
        self,
        entity_type: EntityType,
        entity_id: str,
    ) -> Optional[SyncQueueEntry]:
        """Highest-sequence entry still queued for one record, if any."""
        ...

    async def clear(self) -> None:
        """Remove every entry."""
        ...

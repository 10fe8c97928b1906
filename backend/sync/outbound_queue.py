"""
Outbound Queue Manager.

Owns the lifecycle of every SyncQueueEntry:

    pending -> in_flight -> removed            (acked)
                         -> pending            (retryable failure, attempts += 1)
                         -> failed             (rejected, or retry ceiling hit)
    failed  -> pending                         (user retry)
    failed  -> removed                         (user discard)

Entries are never coalesced: two edits of the same record stay two entries
and are pushed in sequence order. An entry leaves the queue only on an
explicit ack or a deliberate discard, never on an ambiguous outcome.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from application.exceptions import QueueEntryNotFoundError
from application.ports import LocalStore, QueueRepository
from backend.sync.events import EntryFailed, EventBus, QueueChanged
from domain.models import (
    DomainRecord,
    EntityType,
    QueueEntryStatus,
    SyncOperation,
    SyncQueueEntry,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


class InvalidQueueTransition(ValueError):
    """The requested transition is not allowed from the entry's status."""

    def __init__(self, entry: SyncQueueEntry, target: str):
        super().__init__(
            f"Queue entry {entry.sequence} cannot go from {entry.status.value} to {target}"
        )
        self.entry = entry


class OutboundQueueManager:
    """
    Durable, ordered queue of local mutations awaiting the remote.

    Usage:
        queue = OutboundQueueManager(store, store.queue, max_attempts=5, events=bus)

        async with store.transaction():
            await store.put(record)
            await queue.enqueue(record.entity_type, record.id, SyncOperation.CREATE, record)
    """

    def __init__(
        self,
        store: LocalStore,
        repository: QueueRepository,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        events: Optional[EventBus] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._store = store
        self._repo = repository
        self._max_attempts = max_attempts
        self._events = events

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    # =========================================================================
    # Enqueue / read
    # =========================================================================

    async def enqueue(
        self,
        entity_type: EntityType,
        entity_id: str,
        operation: SyncOperation,
        payload: Union[DomainRecord, Dict[str, Any]],
    ) -> SyncQueueEntry:
        """
        Append a pending entry with the next sequence number.

        Joins the caller's store transaction when there is one, so a failed
        append rolls back the local write that triggered it. Errors always
        propagate.
        """
        if isinstance(payload, DomainRecord):
            snapshot = payload.model_dump(mode="json")
        else:
            snapshot = DomainRecord.model_validate(payload).model_dump(mode="json")

        if snapshot["entity_type"] != EntityType(entity_type).value or snapshot["id"] != entity_id:
            raise ValueError(
                f"Payload is for {snapshot['entity_type']}:{snapshot['id']}, "
                f"not {EntityType(entity_type).value}:{entity_id}"
            )

        async with self._store.transaction():
            entry = await self._repo.append(
                EntityType(entity_type),
                entity_id,
                SyncOperation(operation),
                snapshot,
            )

        logger.debug(
            f"Enqueued #{entry.sequence} {entry.operation.value} "
            f"{entry.entity_type.value}:{entry.entity_id}"
        )
        return entry

    async def peek_batch(self, max_entries: int, after_sequence: int = 0) -> List[SyncQueueEntry]:
        """
        Up to `max_entries` pending entries in ascending sequence order.

        Read-only. `after_sequence` lets a caller walk the queue in batches
        without revisiting entries it already attempted.
        """
        if max_entries < 1:
            return []
        return await self._repo.list_entries(
            statuses=[QueueEntryStatus.PENDING],
            after_sequence=after_sequence,
            limit=max_entries,
        )

    async def get(self, sequence: int) -> SyncQueueEntry:
        entry = await self._repo.get(sequence)
        if entry is None:
            raise QueueEntryNotFoundError(sequence)
        return entry

    async def latest_unacked(self, entity_type: EntityType, entity_id: str) -> Optional[SyncQueueEntry]:
        """Newest entry still queued for a record (any status)."""
        return await self._repo.latest_unacked(EntityType(entity_type), entity_id)

    async def failed_entries(self) -> List[SyncQueueEntry]:
        """Entries that need user attention."""
        return await self._repo.list_entries(statuses=[QueueEntryStatus.FAILED])

    async def pending_count(self) -> int:
        """Entries still to be pushed (pending or in flight)."""
        pending = await self._repo.count(QueueEntryStatus.PENDING)
        in_flight = await self._repo.count(QueueEntryStatus.IN_FLIGHT)
        return pending + in_flight

    async def failed_count(self) -> int:
        return await self._repo.count(QueueEntryStatus.FAILED)

    # =========================================================================
    # Transitions
    # =========================================================================

    async def mark_in_flight(self, sequence: int) -> SyncQueueEntry:
        entry = await self.get(sequence)
        if entry.status == QueueEntryStatus.IN_FLIGHT:
            return entry
        if entry.status != QueueEntryStatus.PENDING:
            raise InvalidQueueTransition(entry, QueueEntryStatus.IN_FLIGHT.value)
        entry.status = QueueEntryStatus.IN_FLIGHT
        await self._save(entry)
        return entry

    async def mark_acked(self, sequence: int) -> None:
        """Remove an acknowledged entry permanently."""
        async with self._store.transaction():
            removed = await self._repo.remove(sequence)
        if not removed:
            raise QueueEntryNotFoundError(sequence)
        logger.debug(f"Acked #{sequence}")

    async def mark_failed(
        self,
        sequence: int,
        reason: str,
        *,
        terminal: bool = False,
    ) -> SyncQueueEntry:
        """
        Record a failed push.

        Increments `attempts`. The entry returns to pending for the next
        trigger unless `terminal` is set (remote rejected it) or the retry
        ceiling is reached, in which case it becomes failed and is surfaced
        through an EntryFailed event.
        """
        entry = await self.get(sequence)
        if entry.status == QueueEntryStatus.FAILED:
            raise InvalidQueueTransition(entry, QueueEntryStatus.FAILED.value)

        entry.attempts += 1
        entry.last_error = reason
        if terminal or entry.attempts >= self._max_attempts:
            entry.status = QueueEntryStatus.FAILED
        else:
            entry.status = QueueEntryStatus.PENDING
        await self._save(entry)

        if entry.is_terminal:
            logger.error(
                f"Queue entry #{sequence} ({entry.entity_type.value}:{entry.entity_id}) "
                f"failed after {entry.attempts} attempt(s): {reason}"
            )
            if self._events is not None:
                self._events.publish(EntryFailed(
                    sequence=entry.sequence,
                    entity_type=entry.entity_type,
                    entity_id=entry.entity_id,
                    reason=reason,
                ))
        else:
            logger.warning(
                f"Queue entry #{sequence} attempt {entry.attempts}/{self._max_attempts} "
                f"failed: {reason}"
            )
        return entry

    async def release(self, sequence: int) -> SyncQueueEntry:
        """Return an in-flight entry to pending without consuming an attempt."""
        entry = await self.get(sequence)
        if entry.status == QueueEntryStatus.IN_FLIGHT:
            entry.status = QueueEntryStatus.PENDING
            await self._save(entry)
        return entry

    async def recover_in_flight(self) -> int:
        """Return entries left in flight by a dead process to pending."""
        stuck = await self._repo.list_entries(statuses=[QueueEntryStatus.IN_FLIGHT])
        async with self._store.transaction():
            for entry in stuck:
                entry.status = QueueEntryStatus.PENDING
                await self._repo.save(entry)
        if stuck:
            logger.info(f"Recovered {len(stuck)} in-flight queue entries")
        return len(stuck)

    async def retry_failed(self, sequence: int) -> SyncQueueEntry:
        """User asked to try a failed entry again: fresh attempt budget."""
        entry = await self.get(sequence)
        if entry.status != QueueEntryStatus.FAILED:
            raise InvalidQueueTransition(entry, QueueEntryStatus.PENDING.value)
        entry.status = QueueEntryStatus.PENDING
        entry.attempts = 0
        entry.last_error = None
        await self._save(entry)
        logger.info(f"Queue entry #{sequence} re-queued by user")
        return entry

    async def discard_failed(self, sequence: int) -> SyncQueueEntry:
        """User gave up on a failed entry: remove it deliberately."""
        entry = await self.get(sequence)
        if entry.status != QueueEntryStatus.FAILED:
            raise InvalidQueueTransition(entry, "discarded")
        async with self._store.transaction():
            await self._repo.remove(sequence)
        logger.info(
            f"Queue entry #{sequence} ({entry.entity_type.value}:{entry.entity_id}) "
            f"discarded by user"
        )
        return entry

    async def clear(self) -> None:
        async with self._store.transaction():
            await self._repo.clear()

    async def notify_changed(self) -> None:
        """Publish current pending/failed counts to subscribers."""
        if self._events is None:
            return
        self._events.publish(QueueChanged(
            pending=await self.pending_count(),
            failed=await self.failed_count(),
        ))

    async def _save(self, entry: SyncQueueEntry) -> None:
        async with self._store.transaction():
            await self._repo.save(entry)

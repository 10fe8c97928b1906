"""
RecordMutation Use Case.

The single entry point for user-facing writes. Every mutation commits the
local record and appends its outbound queue entry in one store transaction,
so local state and the durable record of intent never diverge. The write is
visible locally as soon as it commits; pushing it is the sync engine's
business.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from application.exceptions import ProfileAlreadyExistsError
from application.ports import LocalStore
from backend.sync.outbound_queue import OutboundQueueManager
from domain.models import (
    DomainRecord,
    EntityType,
    SyncOperation,
    utc_now,
    validate_payload,
)

logger = logging.getLogger(__name__)

# Smallest step that keeps updated_at strictly increasing per record
TIMESTAMP_STEP = timedelta(microseconds=1)


def _new_id() -> str:
    return str(uuid.uuid4())


class RecordMutationService:
    """
    Use case for creating, updating and deleting synchronizable records.

    Usage:
        >>> mutations = RecordMutationService(store, queue)
        >>> record = await mutations.create(
        ...     EntityType.SET_LOGS,
        ...     {"session_id": "s-1", "exercise_id": "bench", "reps": 8, "weight_kg": 80},
        ... )
    """

    def __init__(
        self,
        store: LocalStore,
        queue: OutboundQueueManager,
        *,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _new_id,
        on_committed: Optional[Callable[[], None]] = None,
    ) -> None:
        self._store = store
        self._queue = queue
        self._clock = clock
        self._id_factory = id_factory
        self._on_committed = on_committed

    async def get(self, entity_type: EntityType, entity_id: str) -> Optional[DomainRecord]:
        return await self._store.get(EntityType(entity_type), entity_id)

    async def list(self, entity_type: EntityType) -> List[DomainRecord]:
        return await self._store.list_records(EntityType(entity_type))

    async def create(
        self,
        entity_type: EntityType,
        payload: Dict[str, Any],
        entity_id: Optional[str] = None,
    ) -> DomainRecord:
        """
        Create a record with a client-generated id.

        Raises:
            pydantic.ValidationError: If the payload is invalid
            ProfileAlreadyExistsError: If a users record is created while one exists
            ValueError: If `entity_id` is already taken
        """
        entity_type = EntityType(entity_type)
        data = validate_payload(entity_type, payload)
        entity_id = entity_id or self._id_factory()

        async with self._store.transaction():
            if entity_type == EntityType.USERS and await self._store.count(EntityType.USERS) > 0:
                raise ProfileAlreadyExistsError("A local profile already exists on this device")
            if await self._store.get(entity_type, entity_id) is not None:
                raise ValueError(f"{entity_type.value}:{entity_id} already exists")
            record = DomainRecord(
                entity_type=entity_type,
                id=entity_id,
                updated_at=self._clock(),
                data=data,
            )
            await self._store.put(record)
            await self._queue.enqueue(entity_type, entity_id, SyncOperation.CREATE, record)

        logger.info(f"Created {entity_type.value}:{entity_id}")
        await self._committed()
        return record

    async def save(
        self,
        entity_type: EntityType,
        entity_id: str,
        payload: Dict[str, Any],
    ) -> DomainRecord:
        """
        Replace a record's payload, creating it if it does not exist.

        Raises:
            pydantic.ValidationError: If the payload is invalid
        """
        entity_type = EntityType(entity_type)
        data = validate_payload(entity_type, payload)

        async with self._store.transaction():
            existing = await self._store.get(entity_type, entity_id)
            if existing is None and entity_type == EntityType.USERS:
                if await self._store.count(EntityType.USERS) > 0:
                    raise ProfileAlreadyExistsError("A local profile already exists on this device")
            record = DomainRecord(
                entity_type=entity_type,
                id=entity_id,
                updated_at=self._next_timestamp(existing),
                data=data,
            )
            operation = SyncOperation.CREATE if existing is None else SyncOperation.UPDATE
            await self._store.put(record)
            await self._queue.enqueue(entity_type, entity_id, operation, record)

        logger.info(f"Saved {entity_type.value}:{entity_id} ({operation.value})")
        await self._committed()
        return record

    async def delete(self, entity_type: EntityType, entity_id: str) -> bool:
        """
        Delete a record locally and queue its tombstone.

        Returns:
            False if the record did not exist
        """
        entity_type = EntityType(entity_type)

        async with self._store.transaction():
            existing = await self._store.get(entity_type, entity_id)
            if existing is None:
                return False
            tombstone = existing.tombstone(self._next_timestamp(existing))
            await self._store.delete(entity_type, entity_id)
            await self._queue.enqueue(entity_type, entity_id, SyncOperation.DELETE, tombstone)

        logger.info(f"Deleted {entity_type.value}:{entity_id}")
        await self._committed()
        return True

    def _next_timestamp(self, existing: Optional[DomainRecord]) -> datetime:
        now = self._clock()
        if existing is not None and now <= existing.updated_at:
            return existing.updated_at + TIMESTAMP_STEP
        return now

    async def _committed(self) -> None:
        await self._queue.notify_changed()
        if self._on_committed is not None:
            self._on_committed()

"""
Initial upload of pre-existing local data.

A device that has been used offline (or before a backend was configured)
holds records that were never queued. The first time it connects, every
such record is enqueued as a `create` so the normal flush cycle uploads it.
Nothing is sent from here: the queue stays the only path to the remote.

If the remote already knows the local profile (the data was uploaded from
this device before, or restored onto it), the device is simply marked as
migrated.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from application.exceptions import FlushInProgressError, SyncError
from application.ports import LocalStore, RemoteSyncClient
from backend.sync.coordinator import SyncCoordinator
from backend.sync.outbound_queue import OutboundQueueManager
from domain.models import EntityType, SYNC_ENTITY_TYPES, SyncOperation

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    """Outcome of LocalDataMigration.migrate()."""

    success: bool
    already_migrated: bool = False
    error: Optional[str] = None
    stats: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "already_migrated": self.already_migrated,
            "error": self.error,
            "stats": dict(self.stats),
        }


class LocalDataMigration:
    """
    Enqueue every local record once, the first time the device syncs.

    Usage:
        migration = LocalDataMigration(store, queue, remote, coordinator)
        result = await migration.migrate()
        if result.success and not result.already_migrated:
            coordinator.request_flush()
    """

    def __init__(
        self,
        store: LocalStore,
        queue: OutboundQueueManager,
        remote: RemoteSyncClient,
        coordinator: SyncCoordinator,
    ) -> None:
        self._store = store
        self._queue = queue
        self._remote = remote
        self._coordinator = coordinator

    async def migrate(self) -> MigrationResult:
        """
        Run the initial upload.

        Returns:
            MigrationResult with per-entity-type counts of enqueued records

        Raises:
            FlushInProgressError: If a flush cycle is running
        """
        if not self._remote.is_configured:
            return MigrationResult(success=False, error="Remote backend not configured")

        state = self._coordinator.state
        if not state.is_online:
            return MigrationResult(success=False, error="No internet connection")
        if state.is_migrated:
            return MigrationResult(success=True, already_migrated=True)
        if state.flush_in_progress:
            raise FlushInProgressError("Cannot migrate while a sync is running")

        profiles = await self._store.list_records(EntityType.USERS)
        if not profiles:
            return MigrationResult(success=False, error="No local user found")
        profile = profiles[0]

        try:
            self._remote.bind_user(profile.id)
            existing = await self._remote.fetch(EntityType.USERS, profile.id)
        except SyncError as e:
            logger.error(f"Migration check failed for user {profile.id}: {e}")
            return MigrationResult(success=False, error=str(e))

        if existing is not None:
            logger.info(f"User {profile.id} already exists remotely, marking as migrated")
            await self._coordinator.mark_migrated()
            return MigrationResult(success=True, already_migrated=True)

        logger.info(f"Starting migration for user {profile.id}")
        stats = await self._enqueue_all()
        await self._coordinator.mark_migrated()
        await self._queue.notify_changed()

        logger.info(f"Migration enqueued {sum(stats.values())} records: {stats}")
        return MigrationResult(success=True, stats=stats)

    async def _enqueue_all(self) -> Dict[str, int]:
        stats: Dict[str, int] = {}
        async with self._store.transaction():
            for entity_type in SYNC_ENTITY_TYPES:
                count = 0
                for record in await self._store.list_records(entity_type):
                    # Already on its way through the normal path
                    if await self._queue.latest_unacked(entity_type, record.id) is not None:
                        continue
                    await self._queue.enqueue(entity_type, record.id, SyncOperation.CREATE, record)
                    count += 1
                stats[entity_type.value] = count
        return stats

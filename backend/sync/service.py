"""
Sync Service.

Wires the engine together for one local database and one remote backend:

    RecordMutationService --write+enqueue--> LocalStore / OutboundQueueManager
    ConnectivityMonitor --trigger--> SyncCoordinator --push/pull--> RemoteSyncClient

and exposes the readiness/result surface consumed by the API and the CLI.

Usage:
    service = SyncService.from_settings(settings)
    await service.start(online=True)
    ...
    await service.stop()
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from application.ports import RemoteSyncClient
from application.use_cases import OnboardingService, RecordMutationService
from backend.settings import Settings
from backend.sync.config import SyncClientConfig
from backend.sync.connectivity import ConnectivityMonitor, TriggerReason
from backend.sync.coordinator import FlushReport, SyncCoordinator
from backend.sync.events import (
    ConnectivityChanged,
    EventBus,
    EventType,
)
from backend.sync.migration import LocalDataMigration, MigrationResult
from backend.sync.outbound_queue import OutboundQueueManager
from backend.sync.recovery import ProfileRecoveryService
from domain.models import SyncQueueEntry
from infrastructure.db.sqlite_store import SQLiteLocalStore
from infrastructure.db.supabase_sync_client import SupabaseSyncClient

logger = logging.getLogger(__name__)


class SyncService:
    """
    Facade over the offline-first sync engine.

    Args:
        store: SQLite local store (records, queue and sync state)
        remote: Remote sync client
        config: Engine configuration
        events: Notification channel (a new one if omitted)
    """

    def __init__(
        self,
        store: SQLiteLocalStore,
        remote: RemoteSyncClient,
        config: SyncClientConfig,
        *,
        events: Optional[EventBus] = None,
    ) -> None:
        self.store = store
        self.remote = remote
        self.config = config
        self.events = events or EventBus()

        self.queue = OutboundQueueManager(
            store,
            store.queue,
            max_attempts=config.max_attempts,
            events=self.events,
        )
        self.monitor = ConnectivityMonitor(
            self.events,
            periodic_interval=config.periodic_interval,
        )
        self.coordinator = SyncCoordinator(
            store,
            self.queue,
            remote,
            store.sync_state,
            config,
            events=self.events,
            schedule_retry=self.monitor.schedule_retry,
        )
        self.mutations = RecordMutationService(
            store,
            self.queue,
            on_committed=lambda: self.monitor.request(TriggerReason.LOCAL_CHANGE),
        )
        self.onboarding = OnboardingService(self.mutations, self.events)
        self.migration = LocalDataMigration(store, self.queue, remote, self.coordinator)
        self.recovery = ProfileRecoveryService(
            remote,
            self.coordinator,
            store,
            is_online=lambda: self.monitor.is_online,
        )

        self._unsubscribers: List[Callable[[], None]] = []
        self._started = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncService":
        """Build the service from application settings."""
        config = SyncClientConfig.from_settings(settings)
        store = SQLiteLocalStore(settings.local_db_path)
        remote = SupabaseSyncClient(config)
        if not config.is_configured:
            logger.warning("Supabase not configured, running in local-only mode")
        return cls(store, remote, config)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, online: bool = False, *, trigger: bool = True) -> None:
        """
        Open the store, recover from a crash and start the monitor.

        Fires a STARTUP trigger when `online`, unless `trigger` is False
        (one-shot tools that flush in the foreground).
        """
        if self._started:
            return
        await self.store.open()
        await self.coordinator.load_state()
        await self.queue.recover_in_flight()

        self._unsubscribers.append(self.monitor.on_sync_trigger(self.coordinator.request_flush))
        self._unsubscribers.append(
            self.events.subscribe(EventType.CONNECTIVITY_CHANGED, self._on_connectivity_changed)
        )

        self._started = True
        await self.monitor.start(online, fire=trigger)
        logger.info(
            f"Sync service started (remote={'configured' if self.remote.is_configured else 'local-only'})"
        )

    async def stop(self) -> None:
        """Stop triggering, let the active cycle finish and close the store."""
        if not self._started:
            return
        await self.monitor.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        await self.coordinator.wait_idle()
        await self.store.close()
        self._started = False
        logger.info("Sync service stopped")

    def _on_connectivity_changed(self, event: ConnectivityChanged) -> None:
        self.coordinator.note_connectivity(event.online)

    # =========================================================================
    # Triggers
    # =========================================================================

    def set_online(self, online: bool) -> None:
        self.monitor.set_online(online)

    def visibility_regained(self) -> None:
        self.monitor.visibility_regained()

    async def flush(self) -> FlushReport:
        """Run a cycle now and wait for it."""
        return await self.coordinator.flush(TriggerReason.MANUAL)

    async def reauthenticate(self) -> None:
        await self.coordinator.reauthenticate()
        self.monitor.request(TriggerReason.MANUAL)

    async def resume(self) -> None:
        await self.coordinator.resume()
        self.monitor.request(TriggerReason.MANUAL)

    async def migrate(self) -> MigrationResult:
        result = await self.migration.migrate()
        if result.success and not result.already_migrated:
            self.monitor.request(TriggerReason.MANUAL)
        return result

    # =========================================================================
    # Readiness / result surface
    # =========================================================================

    async def has_local_profile(self) -> bool:
        return await self.onboarding.has_local_profile()

    async def status(self) -> Dict[str, Any]:
        """Current sync status for display."""
        state = self.coordinator.state
        return {
            "status": state.status.value,
            "is_online": state.is_online,
            "local_only": not self.remote.is_configured,
            "pending_count": await self.queue.pending_count(),
            "failed_count": await self.queue.failed_count(),
            "last_sync_at": state.last_sync_at.isoformat() if state.last_sync_at else None,
            "last_error": state.last_error,
            "is_migrated": state.is_migrated,
            "auth_failed": state.auth_failed,
            "halted": state.halted,
            "last_pulled_at": {
                entity_type.value: watermark.isoformat()
                for entity_type, watermark in state.last_pulled_at.items()
            },
        }

    async def failed_entries(self) -> List[SyncQueueEntry]:
        return await self.queue.failed_entries()

    async def retry_failed(self, sequence: int) -> SyncQueueEntry:
        entry = await self.queue.retry_failed(sequence)
        await self.queue.notify_changed()
        self.monitor.request(TriggerReason.MANUAL)
        return entry

    async def discard_failed(self, sequence: int) -> SyncQueueEntry:
        entry = await self.queue.discard_failed(sequence)
        await self.queue.notify_changed()
        return entry

    async def reset(self) -> None:
        """Logout / reset: clear local data, the queue and the sync state."""
        await self.coordinator.reset()

"""
Sync Coordinator.

Runs flush cycles: drain the outbound queue through the remote client,
pull remote changes per entity type, resolve conflicts into the local
store and advance the pull watermarks.

State machine:

    idle --trigger--> flushing --(done | failed)--> idle

At most one cycle runs at a time. The `flush_in_progress` guard is checked
and set before the first await of `flush()`, so two triggers landing in the
same event-loop turn cannot both start a cycle. A trigger that arrives
while a cycle is active is remembered and produces one follow-up cycle.

Every unit of work (one push, one pulled record) is applied or not as a
whole, and a watermark only moves after every record of its pull sequence
is committed, so a cycle that dies halfway can simply be run again.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from application.exceptions import (
    AuthenticationError,
    FlushInProgressError,
    LocalStoreError,
    SyncError,
    TransientNetworkError,
)
from application.ports import LocalStore, RemoteSyncClient, SyncStateRepository
from backend.sync.config import SyncClientConfig
from backend.sync.conflict_resolver import resolve
from backend.sync.connectivity import TriggerReason
from backend.sync.events import AuthenticationFailed, EventBus, SyncStateChanged
from backend.sync.outbound_queue import OutboundQueueManager
from backend.sync.retry import backoff_delay
from domain.models import (
    DomainRecord,
    EntityType,
    PushOutcome,
    PushResult,
    SYNC_ENTITY_TYPES,
    SyncQueueEntry,
    SyncState,
    SyncStatus,
    utc_now,
)

logger = logging.getLogger(__name__)

# Reasons a flush request does not start a cycle
SKIP_BUSY = "busy"
SKIP_LOCAL_ONLY = "local_only"
SKIP_HALTED = "halted"
SKIP_AUTH = "authentication_required"
SKIP_OFFLINE = "offline"
SKIP_NO_PROFILE = "no_profile"


@dataclass
class FlushReport:
    """What one flush cycle did."""

    reason: TriggerReason
    skipped: Optional[str] = None
    pushed: int = 0
    conflicts: int = 0
    rejected: int = 0
    retryable_failures: int = 0
    pulled: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.skipped is None and self.error is None

    def to_dict(self) -> dict:
        return {
            "reason": self.reason.value,
            "skipped": self.skipped,
            "pushed": self.pushed,
            "conflicts": self.conflicts,
            "rejected": self.rejected,
            "retryable_failures": self.retryable_failures,
            "pulled": self.pulled,
            "error": self.error,
        }


class SyncCoordinator:
    """
    Orchestrates flush cycles and exclusively owns SyncState.

    Args:
        store: Local durable store
        queue: Outbound queue manager
        remote: Remote sync client
        state_repository: Persistence for SyncState
        config: Engine configuration (batch size, backoff schedule)
        events: Optional notification channel
        schedule_retry: Called with a delay in seconds after a transient
            failure; normally ConnectivityMonitor.schedule_retry
    """

    def __init__(
        self,
        store: LocalStore,
        queue: OutboundQueueManager,
        remote: RemoteSyncClient,
        state_repository: SyncStateRepository,
        config: SyncClientConfig,
        *,
        events: Optional[EventBus] = None,
        schedule_retry: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._store = store
        self._queue = queue
        self._remote = remote
        self._state_repo = state_repository
        self._config = config
        self._events = events
        self._schedule_retry = schedule_retry
        self._state = SyncState()
        self._rerun_requested = False
        self._active_task: Optional[asyncio.Task] = None
        # Set while no cycle (background, direct or restore) holds the guard
        self._cycle_idle = asyncio.Event()
        self._cycle_idle.set()

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> SyncState:
        """Snapshot of the current state (mutating it has no effect)."""
        return self._state.model_copy(deep=True)

    @property
    def is_flushing(self) -> bool:
        return self._state.flush_in_progress

    async def load_state(self) -> SyncState:
        """Initialize state from persisted storage, or defaults on first run."""
        self._state = SyncState.restore(await self._state_repo.load())
        self._state.status = self._resting_status()
        logger.info(
            f"Sync state loaded (migrated={self._state.is_migrated}, "
            f"watermarks={len(self._state.last_pulled_at)})"
        )
        return self.state

    def note_connectivity(self, online: bool) -> None:
        """Record the last known connectivity reported by the monitor."""
        self._state.is_online = online
        if not self._state.flush_in_progress:
            self._state.status = self._resting_status()
        self._publish_state()

    async def mark_migrated(self) -> None:
        self._state.is_migrated = True
        await self._persist_state()
        self._publish_state()

    # =========================================================================
    # Triggers
    # =========================================================================

    def request_flush(self, reason: TriggerReason = TriggerReason.MANUAL) -> Optional[asyncio.Task]:
        """
        Trigger callback: start a cycle in the background.

        If a cycle is already scheduled or running, the request is folded
        into a single follow-up cycle.
        """
        if self._active_task is not None and not self._active_task.done():
            self._rerun_requested = True
            return self._active_task
        self._active_task = asyncio.ensure_future(self._run(reason))
        return self._active_task

    async def wait_idle(self) -> None:
        """Wait for the background cycle (and its follow-ups) to finish."""
        while self._active_task is not None and not self._active_task.done():
            await self._active_task

    async def _run(self, reason: TriggerReason) -> FlushReport:
        report = await self.flush(reason)
        # Failed cycles are re-triggered through backoff instead
        while self._rerun_requested and report.error is None:
            if report.skipped == SKIP_BUSY:
                # The cycle belongs to a direct flush() or restore() caller
                await self._cycle_idle.wait()
            self._rerun_requested = False
            report = await self.flush(reason)
        return report

    # =========================================================================
    # Flush cycle
    # =========================================================================

    async def flush(self, reason: TriggerReason = TriggerReason.MANUAL) -> FlushReport:
        """
        Run one flush cycle (drain, then pull).

        Never raises for sync failures: transient errors schedule a backoff
        trigger, authentication and local-store failures halt the engine
        and are reported through the state and the returned FlushReport.
        """
        report = FlushReport(reason=reason)

        skip = self._skip_reason()
        if skip is not None:
            if skip == SKIP_BUSY:
                self._rerun_requested = True
            report.skipped = skip
            logger.debug(f"Flush ({reason.value}) skipped: {skip}")
            return report

        # Guard set in the same scheduling turn as the check above
        self._state.flush_in_progress = True
        self._cycle_idle.clear()
        self._state.status = SyncStatus.SYNCING
        self._publish_state()
        logger.info(f"Flush started ({reason.value})")

        try:
            profile = await self._owner_profile()
            if profile is None:
                report.skipped = SKIP_NO_PROFILE
            else:
                self._remote.bind_user(profile.id)
                await self._drain(report)
                await self._pull_all(report)
                self._state.last_sync_at = utc_now()
                self._state.last_error = None
                self._state.consecutive_failures = 0
        except TransientNetworkError as e:
            report.error = str(e)
            self._state.consecutive_failures += 1
            delay = backoff_delay(self._state.consecutive_failures, self._config.backoff_schedule)
            logger.warning(f"Flush interrupted by transient error: {e}")
            if self._schedule_retry is not None:
                self._schedule_retry(delay)
        except AuthenticationError as e:
            report.error = str(e)
            self._state.auth_failed = True
            self._state.last_error = f"Authentication failed: {e}"
            logger.error(f"Sync halted until re-authentication: {e}")
            if self._events is not None:
                self._events.publish(AuthenticationFailed(reason=str(e)))
        except LocalStoreError as e:
            report.error = str(e)
            self._state.halted = True
            self._state.last_error = f"Local store failure: {e}"
            logger.error(f"Sync halted after local store failure: {e}", exc_info=True)
        except Exception as e:
            report.error = str(e)
            self._state.last_error = f"Unexpected sync error: {e}"
            logger.error(f"Unexpected error during flush: {e}", exc_info=True)
        finally:
            self._state.flush_in_progress = False
            self._cycle_idle.set()
            self._state.status = self._resting_status()
            await self._finish_cycle()

        logger.info(
            f"Flush finished ({reason.value}): pushed={report.pushed} "
            f"conflicts={report.conflicts} rejected={report.rejected} "
            f"pulled={report.pulled} error={report.error}"
        )
        return report

    def _skip_reason(self) -> Optional[str]:
        if self._state.flush_in_progress:
            return SKIP_BUSY
        if not self._remote.is_configured:
            return SKIP_LOCAL_ONLY
        if self._state.halted:
            return SKIP_HALTED
        if self._state.auth_failed:
            return SKIP_AUTH
        if not self._state.is_online:
            return SKIP_OFFLINE
        return None

    async def _finish_cycle(self) -> None:
        try:
            await self._persist_state()
            await self._queue.notify_changed()
        except SyncError as e:
            self._state.halted = True
            self._state.last_error = f"Local store failure: {e}"
            self._state.status = SyncStatus.ERROR
            logger.error(f"Could not persist sync state: {e}")
        self._publish_state()

    # =========================================================================
    # Step 1: drain
    # =========================================================================

    async def _drain(self, report: FlushReport) -> None:
        cursor = 0
        while True:
            batch = await self._queue.peek_batch(self._config.batch_size, after_sequence=cursor)
            if not batch:
                return
            for entry in batch:
                cursor = entry.sequence
                await self._push_entry(entry, report)

    async def _push_entry(self, entry: SyncQueueEntry, report: FlushReport) -> None:
        await self._queue.mark_in_flight(entry.sequence)
        try:
            result = await self._remote.push(entry)
            await self._settle(entry, result, report)
        except TransientNetworkError as e:
            report.retryable_failures += 1
            await self._queue.mark_failed(entry.sequence, str(e))
            raise
        except Exception:
            # Not the entry's fault: put it back untouched
            await self._release_quietly(entry.sequence)
            raise

    async def _settle(self, entry: SyncQueueEntry, result: PushResult, report: FlushReport) -> None:
        if result.outcome == PushOutcome.ACCEPTED:
            await self._queue.mark_acked(entry.sequence)
            report.pushed += 1
            return

        if result.outcome == PushOutcome.CONFLICT:
            remote = result.remote_version
            if remote is None or remote.key != (entry.entity_type, entry.entity_id):
                await self._queue.mark_failed(
                    entry.sequence,
                    "Remote reported a conflict without a matching version",
                    terminal=True,
                )
                report.rejected += 1
                return
            # The resolution satisfies the entry's intent, win or lose
            async with self._store.transaction():
                await self._apply_resolved(entry.entity_type, entry.entity_id, remote, entry)
                await self._queue.mark_acked(entry.sequence)
            report.conflicts += 1
            return

        await self._queue.mark_failed(
            entry.sequence,
            result.reason or "Rejected by remote",
            terminal=True,
        )
        report.rejected += 1

    async def _release_quietly(self, sequence: int) -> None:
        try:
            await self._queue.release(sequence)
        except SyncError as e:
            logger.error(f"Could not release queue entry #{sequence}: {e}")

    # =========================================================================
    # Step 2: pull
    # =========================================================================

    async def _pull_all(self, report: FlushReport) -> None:
        for entity_type in SYNC_ENTITY_TYPES:
            await self._pull(entity_type, report)

    async def _pull(self, entity_type: EntityType, report: FlushReport) -> None:
        since = self._state.watermark(entity_type)
        highest: Optional[datetime] = None

        async for remote in self._remote.pull(entity_type, since):
            async with self._store.transaction():
                pending = await self._queue.latest_unacked(entity_type, remote.id)
                if pending is None:
                    await self._apply_if_changed(remote)
                else:
                    await self._apply_resolved(entity_type, remote.id, remote, pending)
            if highest is None or remote.updated_at > highest:
                highest = remote.updated_at
            report.pulled += 1

        if highest is not None:
            self._state.advance_watermark(entity_type, highest)
            await self._persist_state()

    # =========================================================================
    # Applying records
    # =========================================================================

    async def _apply_resolved(
        self,
        entity_type: EntityType,
        entity_id: str,
        remote: DomainRecord,
        entry: SyncQueueEntry,
    ) -> None:
        """Resolve the local version against `remote` and commit the winner."""
        current = await self._store.get(entity_type, entity_id)
        if current is not None:
            local = current
        else:
            # Deleted locally: the newest queued snapshot is the tombstone
            latest = await self._queue.latest_unacked(entity_type, entity_id)
            local = (latest or entry).snapshot()

        winner = resolve(local, remote)
        if winner is remote:
            await self._apply_if_changed(remote, current)

    async def _apply_if_changed(
        self,
        record: DomainRecord,
        current: Optional[DomainRecord] = None,
    ) -> None:
        if current is None:
            current = await self._store.get(record.entity_type, record.id)
        if record.deleted:
            if current is not None:
                await self._store.delete(record.entity_type, record.id)
            return
        if current is not None and current.same_version(record):
            return
        await self._store.put(record)

    # =========================================================================
    # Manual operations
    # =========================================================================

    async def reauthenticate(self) -> None:
        """Refresh credentials and lift the authentication halt."""
        await self._remote.reauthenticate()
        self._state.auth_failed = False
        self._state.last_error = None
        self._state.status = self._resting_status()
        await self._persist_state()
        self._publish_state()
        logger.info("Re-authenticated, sync resumed")

    async def resume(self) -> None:
        """Lift a halt caused by a local store failure."""
        self._state.halted = False
        self._state.last_error = None
        self._state.status = self._resting_status()
        await self._persist_state()
        self._publish_state()
        logger.info("Sync resumed after local store failure")

    async def restore(self, profile: DomainRecord) -> FlushReport:
        """
        Rebuild local data from the cloud copy for a recovered profile.

        Writes the profile, pulls every entity type from the beginning and
        marks the device as migrated. Errors propagate to the caller.

        Raises:
            FlushInProgressError: If a flush cycle is running
        """
        if self._state.flush_in_progress:
            raise FlushInProgressError("Cannot restore while a sync is running")
        if profile.entity_type != EntityType.USERS:
            raise ValueError(f"Expected a users record, got {profile.entity_type.value}")

        self._state.flush_in_progress = True
        self._cycle_idle.clear()
        self._state.status = SyncStatus.SYNCING
        report = FlushReport(reason=TriggerReason.MANUAL)
        try:
            async with self._store.transaction():
                await self._store.put(profile)
            self._remote.bind_user(profile.id)
            self._state.last_pulled_at = {}
            await self._pull_all(report)
            self._state.is_migrated = True
            self._state.last_sync_at = utc_now()
        finally:
            self._state.flush_in_progress = False
            self._cycle_idle.set()
            self._state.status = self._resting_status()
            await self._finish_cycle()

        logger.info(f"Restored profile {profile.id} from cloud ({report.pulled} records)")
        return report

    async def reset(self) -> None:
        """
        Logout / reset: clear local records, the queue and the sync state.

        Raises:
            FlushInProgressError: If a flush cycle is running
        """
        if self._state.flush_in_progress:
            raise FlushInProgressError("Cannot reset while a sync is running")
        async with self._store.transaction():
            await self._store.clear()
            await self._queue.clear()
            await self._state_repo.clear()
        self._state = SyncState(is_online=self._state.is_online)
        self._state.status = self._resting_status()
        self._rerun_requested = False
        await self._queue.notify_changed()
        self._publish_state()
        logger.info("Local data and sync state cleared")

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _owner_profile(self) -> Optional[DomainRecord]:
        profiles = await self._store.list_records(EntityType.USERS)
        return profiles[0] if profiles else None

    def _resting_status(self) -> SyncStatus:
        if self._state.auth_failed or self._state.halted or self._state.last_error:
            return SyncStatus.ERROR
        if not self._state.is_online:
            return SyncStatus.OFFLINE
        return SyncStatus.IDLE

    async def _persist_state(self) -> None:
        await self._state_repo.save(self._state.to_persisted())

    def _publish_state(self) -> None:
        if self._events is not None:
            self._events.publish(SyncStateChanged(state=self.state))

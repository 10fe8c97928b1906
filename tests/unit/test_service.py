"""
Unit tests for backend/sync/service.py

The service wires the monitor, coordinator and use cases together; these
tests drive it the way the API and CLI do and check the triggers reach the
remote.
"""

import pytest
import pytest_asyncio

from application.exceptions import AuthenticationError, TransientNetworkError
from backend.sync.events import ConnectivityChanged, EventType
from backend.sync.service import SyncService
from domain.models import EntityType, QueueEntryStatus
from infrastructure.db.sqlite_store import SQLiteLocalStore
from tests.fakes import USER_ID, FakeRemoteSyncClient, make_record, profile_data


@pytest_asyncio.fixture
async def service(remote, config):
    service = SyncService(SQLiteLocalStore(":memory:"), remote, config)
    yield service
    await service.stop()


async def onboard(service):
    return await service.onboarding.complete_onboarding(profile_data(), user_id=USER_ID)


@pytest.mark.unit
class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_offline(self, service):
        await service.start(online=False)

        status = await service.status()
        assert status["status"] == "offline"
        assert status["is_online"] is False
        assert status["local_only"] is False
        assert status["pending_count"] == 0
        assert await service.has_local_profile() is False

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, service):
        await service.start(online=False)
        await service.start(online=False)

        assert service.events.subscriber_count(EventType.CONNECTIVITY_CHANGED) == 1

    @pytest.mark.asyncio
    async def test_in_flight_entries_recovered_on_start(self, remote, config, tmp_path):
        """A crash mid-push leaves in_flight entries; the next start re-queues them."""
        path = str(tmp_path / "sync.db")
        first = SyncService(SQLiteLocalStore(path), remote, config)
        await first.start(online=False)
        await onboard(first)
        await first.queue.mark_in_flight(1)
        await first.stop()

        second = SyncService(SQLiteLocalStore(path), remote, config)
        await second.start(online=False)
        try:
            entry = await second.queue.get(1)
            assert entry.status == QueueEntryStatus.PENDING
            assert await second.has_local_profile() is True
        finally:
            await second.stop()


@pytest.mark.unit
class TestTriggers:

    @pytest.mark.asyncio
    async def test_offline_writes_upload_on_reconnect(self, service, remote):
        await service.start(online=False)
        await onboard(service)
        assert (await service.status())["pending_count"] == 1

        service.set_online(True)
        await service.coordinator.wait_idle()

        assert remote.get(EntityType.USERS, USER_ID) is not None
        status = await service.status()
        assert status["pending_count"] == 0
        assert status["status"] == "idle"
        assert status["last_sync_at"] is not None

    @pytest.mark.asyncio
    async def test_connectivity_event_updates_sync_state(self, service):
        await service.start(online=True)
        await service.coordinator.wait_idle()

        service.events.publish(ConnectivityChanged(online=False))

        status = await service.status()
        assert status["is_online"] is False
        assert status["status"] == "offline"

    @pytest.mark.asyncio
    async def test_local_change_while_online_triggers_flush(self, service, remote):
        await service.start(online=True)

        await onboard(service)
        await service.coordinator.wait_idle()

        assert remote.get(EntityType.USERS, USER_ID) is not None

    @pytest.mark.asyncio
    async def test_transient_failure_schedules_backoff(self, service, remote):
        remote.push_errors = [TransientNetworkError("timeout")]
        await service.start(online=True)

        await onboard(service)
        await service.coordinator.wait_idle()

        assert service.monitor.retry_scheduled
        assert (await service.status())["pending_count"] == 1

    @pytest.mark.asyncio
    async def test_auth_failure_until_reauthenticated(self, service, remote):
        remote.push_errors = [AuthenticationError("JWT expired")]
        await service.start(online=True)
        await onboard(service)
        await service.coordinator.wait_idle()

        status = await service.status()
        assert status["auth_failed"] is True
        assert status["status"] == "error"

        await service.reauthenticate()
        await service.coordinator.wait_idle()

        assert remote.reauthenticate_calls == 1
        assert remote.get(EntityType.USERS, USER_ID) is not None
        assert (await service.status())["auth_failed"] is False

    @pytest.mark.asyncio
    async def test_local_only_mode_never_syncs(self, config):
        remote = FakeRemoteSyncClient(configured=False)
        service = SyncService(SQLiteLocalStore(":memory:"), remote, config)
        await service.start(online=True)
        try:
            await onboard(service)
            await service.coordinator.wait_idle()

            status = await service.status()
            assert status["local_only"] is True
            assert status["pending_count"] == 1
            assert remote.push_log == []
        finally:
            await service.stop()


@pytest.mark.unit
class TestFailedEntries:

    @pytest.mark.asyncio
    async def test_retry_failed_entry(self, service, remote):
        remote.rejected_ids = {USER_ID}
        await service.start(online=True)
        await onboard(service)
        await service.coordinator.wait_idle()

        failed = await service.failed_entries()
        assert [e.entity_id for e in failed] == [USER_ID]

        remote.rejected_ids = set()
        entry = await service.retry_failed(failed[0].sequence)
        await service.coordinator.wait_idle()

        assert entry.status == QueueEntryStatus.PENDING
        assert remote.get(EntityType.USERS, USER_ID) is not None
        assert (await service.status())["failed_count"] == 0

    @pytest.mark.asyncio
    async def test_discard_failed_entry(self, service, remote):
        remote.rejected_ids = {USER_ID}
        await service.start(online=True)
        await onboard(service)
        await service.coordinator.wait_idle()
        failed = await service.failed_entries()

        await service.discard_failed(failed[0].sequence)

        status = await service.status()
        assert status["failed_count"] == 0
        assert status["pending_count"] == 0
        # The local record stays; only the upload was abandoned
        assert await service.has_local_profile() is True


@pytest.mark.unit
class TestMigrationAndReset:

    @pytest.mark.asyncio
    async def test_migrate_uploads_existing_data(self, service, remote, clock):
        await service.start(online=True)
        await service.store.put(make_record(EntityType.USERS, USER_ID, clock.now, **profile_data()))

        result = await service.migrate()
        await service.coordinator.wait_idle()

        assert result.success is True
        assert result.stats[EntityType.USERS.value] == 1
        assert remote.get(EntityType.USERS, USER_ID) is not None
        assert (await service.status())["is_migrated"] is True

    @pytest.mark.asyncio
    async def test_reset_clears_device(self, service):
        await service.start(online=False)
        await onboard(service)

        await service.reset()

        assert await service.has_local_profile() is False
        status = await service.status()
        assert status["pending_count"] == 0
        assert status["is_migrated"] is False

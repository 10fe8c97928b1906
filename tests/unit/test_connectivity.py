"""
Unit tests for backend/sync/connectivity.py
"""

import asyncio

import pytest

from backend.sync.connectivity import ConnectivityMonitor, TriggerReason
from backend.sync.events import EventBus, EventType


@pytest.fixture
def triggers():
    return []


@pytest.fixture
def monitor(triggers):
    monitor = ConnectivityMonitor(EventBus())
    monitor.on_sync_trigger(triggers.append)
    return monitor


@pytest.mark.unit
class TestStartup:

    @pytest.mark.asyncio
    async def test_start_online_fires_startup(self, monitor, triggers):
        await monitor.start(True)
        assert triggers == [TriggerReason.STARTUP]
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_start_offline_does_not_fire(self, monitor, triggers):
        await monitor.start(False)
        assert triggers == []
        assert not monitor.is_online
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_start_without_firing(self, monitor, triggers):
        await monitor.start(True, fire=False)
        assert triggers == []
        assert monitor.is_online
        await monitor.stop()


@pytest.mark.unit
class TestTransitions:

    @pytest.mark.asyncio
    async def test_reconnect_fires_once(self, monitor, triggers):
        await monitor.start(False)

        monitor.set_online(True)
        monitor.set_online(True)

        assert triggers == [TriggerReason.RECONNECTED]
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_going_offline_does_not_fire(self, monitor, triggers):
        await monitor.start(True, fire=False)

        monitor.set_online(False)

        assert triggers == []
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_visibility_fires_only_when_online(self, monitor, triggers):
        await monitor.start(False)
        monitor.visibility_regained()
        monitor.set_online(True)
        monitor.visibility_regained()

        assert triggers == [TriggerReason.RECONNECTED, TriggerReason.VISIBILITY]
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_request_ignored_while_offline(self, monitor, triggers):
        await monitor.start(False)
        monitor.request(TriggerReason.LOCAL_CHANGE)
        assert triggers == []
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_connectivity_changes_are_published(self):
        bus = EventBus()
        seen = []
        bus.subscribe(EventType.CONNECTIVITY_CHANGED, lambda e: seen.append(e.online))
        monitor = ConnectivityMonitor(bus)

        await monitor.start(False)
        monitor.set_online(True)
        monitor.set_online(False)

        assert seen == [False, True, False]
        await monitor.stop()


@pytest.mark.unit
class TestBackoffAndPeriodic:

    @pytest.mark.asyncio
    async def test_scheduled_retry_fires_backoff(self, monitor, triggers):
        await monitor.start(True, fire=False)

        monitor.schedule_retry(0.01)
        assert monitor.retry_scheduled
        await asyncio.sleep(0.05)

        assert triggers == [TriggerReason.BACKOFF]
        assert not monitor.retry_scheduled
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_going_offline_cancels_retry(self, monitor, triggers):
        await monitor.start(True, fire=False)
        monitor.schedule_retry(0.01)

        monitor.set_online(False)
        await asyncio.sleep(0.05)

        assert triggers == []
        assert not monitor.retry_scheduled
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_new_retry_replaces_pending_one(self, monitor, triggers):
        await monitor.start(True, fire=False)
        monitor.schedule_retry(0.01)
        monitor.schedule_retry(0.02)

        await asyncio.sleep(0.06)

        assert triggers == [TriggerReason.BACKOFF]
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_periodic_trigger(self, triggers):
        monitor = ConnectivityMonitor(periodic_interval=0.01)
        monitor.on_sync_trigger(triggers.append)

        await monitor.start(True, fire=False)
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert TriggerReason.PERIODIC in triggers
        assert set(triggers) == {TriggerReason.PERIODIC}


@pytest.mark.unit
class TestCallbacks:

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_block_others(self, triggers):
        monitor = ConnectivityMonitor()

        def broken(reason):
            raise RuntimeError("callback bug")

        monitor.on_sync_trigger(broken)
        monitor.on_sync_trigger(triggers.append)

        await monitor.start(True)

        assert triggers == [TriggerReason.STARTUP]
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_unregister(self, triggers):
        monitor = ConnectivityMonitor()
        unregister = monitor.on_sync_trigger(triggers.append)

        unregister()
        await monitor.start(True)

        assert triggers == []
        await monitor.stop()

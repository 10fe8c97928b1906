"""
Shared fixtures for the sync engine tests.

Every test gets a real SQLite store on ":memory:", an in-memory fake of the
remote backend and a clock that only moves when told to.
"""

import pytest
import pytest_asyncio

from application.use_cases import RecordMutationService
from backend.sync.config import SyncClientConfig
from backend.sync.coordinator import SyncCoordinator
from backend.sync.events import EventBus
from backend.sync.outbound_queue import OutboundQueueManager
from domain.models import EntityType
from infrastructure.db.sqlite_store import SQLiteLocalStore
from tests.fakes import USER_ID, FakeClock, FakeRemoteSyncClient, profile_data


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def remote():
    return FakeRemoteSyncClient()


@pytest.fixture
def config():
    """Small batches and a short schedule so tests exercise both."""
    return SyncClientConfig(
        backend_url="https://project.supabase.co",
        api_key="anon-key",
        max_attempts=3,
        backoff_schedule=[1.0, 2.0, 5.0],
        batch_size=2,
        pull_page_size=2,
        periodic_interval=0,
    )


@pytest_asyncio.fixture
async def store():
    store = SQLiteLocalStore(":memory:")
    await store.open()
    yield store
    await store.close()


@pytest.fixture
def queue(store, config, events):
    return OutboundQueueManager(
        store,
        store.queue,
        max_attempts=config.max_attempts,
        events=events,
    )


@pytest.fixture
def retries():
    """Delays passed to schedule_retry by the coordinator."""
    return []


@pytest_asyncio.fixture
async def coordinator(store, queue, remote, config, events, retries):
    coordinator = SyncCoordinator(
        store,
        queue,
        remote,
        store.sync_state,
        config,
        events=events,
        schedule_retry=retries.append,
    )
    await coordinator.load_state()
    coordinator.note_connectivity(True)
    return coordinator


@pytest.fixture
def mutations(store, queue, clock):
    return RecordMutationService(store, queue, clock=clock)


@pytest_asyncio.fixture
async def profile(mutations):
    """Local user profile created through onboarding (queued as sequence 1)."""
    return await mutations.create(EntityType.USERS, profile_data(), entity_id=USER_ID)

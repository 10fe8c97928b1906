"""
Unit tests for backend/sync/outbound_queue.py
"""

import pytest

from application.exceptions import QueueEntryNotFoundError
from backend.sync.events import EventType
from backend.sync.outbound_queue import InvalidQueueTransition, OutboundQueueManager
from domain.models import EntityType, QueueEntryStatus, SyncOperation
from tests.fakes import make_record, set_log_data


def log_record(clock, entity_id="log-1", **overrides):
    return make_record(EntityType.SET_LOGS, entity_id, clock.advance(), **set_log_data(**overrides))


async def enqueue(queue, clock, entity_id="log-1", operation=SyncOperation.CREATE, **overrides):
    record = log_record(clock, entity_id, **overrides)
    return await queue.enqueue(EntityType.SET_LOGS, entity_id, operation, record)


@pytest.mark.unit
class TestEnqueue:
    """Appending entries."""

    @pytest.mark.asyncio
    async def test_sequences_increase(self, queue, clock):
        first = await enqueue(queue, clock, "log-1")
        second = await enqueue(queue, clock, "log-2")

        assert (first.sequence, second.sequence) == (1, 2)
        assert second.status == QueueEntryStatus.PENDING
        assert second.attempts == 0

    @pytest.mark.asyncio
    async def test_sequence_not_reused_after_ack(self, queue, clock):
        """Removed entries leave a gap; numbers only go up."""
        first = await enqueue(queue, clock)
        await queue.mark_acked(first.sequence)

        second = await enqueue(queue, clock)

        assert second.sequence == 2

    @pytest.mark.asyncio
    async def test_payload_is_full_snapshot(self, queue, clock):
        """The entry carries the whole record, not a diff."""
        record = log_record(clock, reps=10)

        entry = await queue.enqueue(EntityType.SET_LOGS, "log-1", SyncOperation.UPDATE, record)

        assert entry.snapshot().same_version(record)
        assert (await queue.get(entry.sequence)).snapshot().same_version(record)

    @pytest.mark.asyncio
    async def test_payload_for_other_record_rejected(self, queue, clock):
        with pytest.raises(ValueError):
            await queue.enqueue(EntityType.SET_LOGS, "log-2", SyncOperation.CREATE, log_record(clock))

    @pytest.mark.asyncio
    async def test_enqueue_rolls_back_with_caller_transaction(self, store, queue, clock):
        """A write and its entry commit together or not at all."""
        record = log_record(clock)

        with pytest.raises(RuntimeError):
            async with store.transaction():
                await store.put(record)
                await queue.enqueue(EntityType.SET_LOGS, "log-1", SyncOperation.CREATE, record)
                raise RuntimeError("boom")

        assert await store.get(EntityType.SET_LOGS, "log-1") is None
        assert await queue.pending_count() == 0

    def test_max_attempts_must_be_positive(self, store):
        with pytest.raises(ValueError):
            OutboundQueueManager(store, store.queue, max_attempts=0)


@pytest.mark.unit
class TestPeekBatch:
    """Reading pending entries in order."""

    @pytest.mark.asyncio
    async def test_returns_pending_in_sequence_order(self, queue, clock):
        for i in range(1, 6):
            await enqueue(queue, clock, f"log-{i}")
        await queue.mark_in_flight(2)
        await queue.mark_failed(4, "bad payload", terminal=True)

        batch = await queue.peek_batch(10)

        assert [e.sequence for e in batch] == [1, 3, 5]

    @pytest.mark.asyncio
    async def test_respects_limit_and_cursor(self, queue, clock):
        for i in range(1, 6):
            await enqueue(queue, clock, f"log-{i}")

        assert [e.sequence for e in await queue.peek_batch(2)] == [1, 2]
        assert [e.sequence for e in await queue.peek_batch(2, after_sequence=2)] == [3, 4]
        assert await queue.peek_batch(0) == []

    @pytest.mark.asyncio
    async def test_peek_is_read_only(self, queue, clock):
        await enqueue(queue, clock)

        await queue.peek_batch(5)

        entry = await queue.get(1)
        assert entry.status == QueueEntryStatus.PENDING
        assert entry.attempts == 0


@pytest.mark.unit
class TestTransitions:
    """Entry state machine."""

    @pytest.mark.asyncio
    async def test_ack_removes_entry(self, queue, clock):
        await enqueue(queue, clock)
        await queue.mark_in_flight(1)

        await queue.mark_acked(1)

        with pytest.raises(QueueEntryNotFoundError):
            await queue.get(1)

    @pytest.mark.asyncio
    async def test_ack_of_unknown_entry_raises(self, queue):
        with pytest.raises(QueueEntryNotFoundError):
            await queue.mark_acked(42)

    @pytest.mark.asyncio
    async def test_retryable_failure_returns_to_pending(self, queue, clock):
        await enqueue(queue, clock)
        await queue.mark_in_flight(1)

        entry = await queue.mark_failed(1, "timeout")

        assert entry.status == QueueEntryStatus.PENDING
        assert entry.attempts == 1
        assert entry.last_error == "timeout"

    @pytest.mark.asyncio
    async def test_failure_at_ceiling_is_terminal(self, queue, clock, events):
        """max_attempts=3: the third failure parks the entry."""
        published = []
        events.subscribe(EventType.ENTRY_FAILED, published.append)
        await enqueue(queue, clock)

        for _ in range(3):
            await queue.mark_in_flight(1)
            entry = await queue.mark_failed(1, "timeout")

        assert entry.status == QueueEntryStatus.FAILED
        assert entry.attempts == 3
        assert len(published) == 1
        assert published[0].sequence == 1
        assert published[0].entity_type == EntityType.SET_LOGS
        assert published[0].reason == "timeout"

    @pytest.mark.asyncio
    async def test_terminal_failure_skips_remaining_attempts(self, queue, clock):
        await enqueue(queue, clock)

        entry = await queue.mark_failed(1, "violates check constraint", terminal=True)

        assert entry.status == QueueEntryStatus.FAILED
        assert entry.attempts == 1

    @pytest.mark.asyncio
    async def test_failed_entry_cannot_fail_again(self, queue, clock):
        await enqueue(queue, clock)
        await queue.mark_failed(1, "rejected", terminal=True)

        with pytest.raises(InvalidQueueTransition):
            await queue.mark_failed(1, "rejected")

    @pytest.mark.asyncio
    async def test_failed_entry_cannot_go_in_flight(self, queue, clock):
        await enqueue(queue, clock)
        await queue.mark_failed(1, "rejected", terminal=True)

        with pytest.raises(InvalidQueueTransition):
            await queue.mark_in_flight(1)

    @pytest.mark.asyncio
    async def test_release_does_not_consume_attempt(self, queue, clock):
        await enqueue(queue, clock)
        await queue.mark_in_flight(1)

        entry = await queue.release(1)

        assert entry.status == QueueEntryStatus.PENDING
        assert entry.attempts == 0

    @pytest.mark.asyncio
    async def test_recover_in_flight_after_crash(self, queue, clock):
        """Entries left in flight by a dead process become pending again."""
        await enqueue(queue, clock, "log-1")
        await enqueue(queue, clock, "log-2")
        await queue.mark_in_flight(1)
        await queue.mark_in_flight(2)

        recovered = await queue.recover_in_flight()

        assert recovered == 2
        assert [e.sequence for e in await queue.peek_batch(10)] == [1, 2]


@pytest.mark.unit
class TestFailedEntries:
    """User actions on failed entries."""

    @pytest.mark.asyncio
    async def test_retry_failed_resets_budget(self, queue, clock):
        await enqueue(queue, clock)
        await queue.mark_failed(1, "rejected", terminal=True)

        entry = await queue.retry_failed(1)

        assert entry.status == QueueEntryStatus.PENDING
        assert entry.attempts == 0
        assert entry.last_error is None
        assert await queue.failed_count() == 0

    @pytest.mark.asyncio
    async def test_retry_of_pending_entry_is_invalid(self, queue, clock):
        await enqueue(queue, clock)

        with pytest.raises(InvalidQueueTransition):
            await queue.retry_failed(1)

    @pytest.mark.asyncio
    async def test_discard_failed_removes_entry(self, queue, clock):
        await enqueue(queue, clock)
        await queue.mark_failed(1, "rejected", terminal=True)

        discarded = await queue.discard_failed(1)

        assert discarded.sequence == 1
        assert await queue.failed_entries() == []
        with pytest.raises(QueueEntryNotFoundError):
            await queue.get(1)

    @pytest.mark.asyncio
    async def test_pending_entry_cannot_be_discarded(self, queue, clock):
        """Nothing leaves the queue silently."""
        await enqueue(queue, clock)

        with pytest.raises(InvalidQueueTransition):
            await queue.discard_failed(1)

    @pytest.mark.asyncio
    async def test_latest_unacked_sees_any_status(self, queue, clock):
        await enqueue(queue, clock, "log-1", reps=5)
        await enqueue(queue, clock, "log-1", operation=SyncOperation.UPDATE, reps=6)
        await queue.mark_failed(2, "rejected", terminal=True)

        latest = await queue.latest_unacked(EntityType.SET_LOGS, "log-1")

        assert latest.sequence == 2
        assert await queue.latest_unacked(EntityType.SET_LOGS, "log-9") is None


@pytest.mark.unit
class TestCounts:

    @pytest.mark.asyncio
    async def test_pending_count_includes_in_flight(self, queue, clock):
        await enqueue(queue, clock, "log-1")
        await enqueue(queue, clock, "log-2")
        await enqueue(queue, clock, "log-3")
        await queue.mark_in_flight(1)
        await queue.mark_failed(3, "rejected", terminal=True)

        assert await queue.pending_count() == 2
        assert await queue.failed_count() == 1

    @pytest.mark.asyncio
    async def test_notify_changed_publishes_counts(self, queue, clock, events):
        published = []
        events.subscribe(EventType.QUEUE_CHANGED, published.append)
        await enqueue(queue, clock)

        await queue.notify_changed()

        assert (published[-1].pending, published[-1].failed) == (1, 0)

    @pytest.mark.asyncio
    async def test_clear_removes_everything(self, queue, clock):
        await enqueue(queue, clock, "log-1")
        await enqueue(queue, clock, "log-2")

        await queue.clear()

        assert await queue.pending_count() == 0

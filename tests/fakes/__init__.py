"""
Fake Implementations for Testing.

In-memory fakes of the remote backend and a controllable clock. The local
store is never faked: tests use a real SQLiteLocalStore on ":memory:".

Usage:
    from tests.fakes import FakeRemoteSyncClient, FakeClock, make_record

    remote = FakeRemoteSyncClient()
    remote.seed(make_record(EntityType.USERS, "u-1", clock.at(10), current_weight_kg=82))
"""
from datetime import datetime
from typing import Any, Dict

from domain.models import DomainRecord, EntityType
from tests.fakes.clock import EPOCH, FakeClock
from tests.fakes.remote_sync_client import FakeRemoteSyncClient

USER_ID = "user-1"


def profile_data(**overrides: Any) -> Dict[str, Any]:
    data = {
        "current_weight_kg": 80.0,
        "gender": "male",
        "birth_year": 1990,
        "training_days": {"monday": "push"},
        "weight_updated_at": "2025-01-01T08:00:00Z",
        "profile_name": None,
        "split_type": "bro-split",
    }
    data.update(overrides)
    return data


def set_log_data(**overrides: Any) -> Dict[str, Any]:
    data = {
        "session_id": "session-1",
        "exercise_id": "bench",
        "set_number": 1,
        "weight_kg": 80.0,
        "reps": 8,
        "rir": 2,
    }
    data.update(overrides)
    return data


def make_record(
    entity_type: EntityType,
    entity_id: str,
    updated_at: datetime,
    deleted: bool = False,
    **data: Any,
) -> DomainRecord:
    return DomainRecord(
        entity_type=entity_type,
        id=entity_id,
        updated_at=updated_at,
        deleted=deleted,
        data=data,
    )


__all__ = [
    "EPOCH",
    "USER_ID",
    "FakeClock",
    "FakeRemoteSyncClient",
    "make_record",
    "profile_data",
    "set_log_data",
]

"""
Domain models for the workout sync engine.

This package contains pure domain models that are independent of
infrastructure concerns (local database, remote backend, HTTP).

- DomainRecord: one committed version of any synchronizable entity
- Entity payloads: UserProfile, WeightEntry, WorkoutSession, SetLog,
  EstimatedMax, AIFeedback
- Sync models: SyncQueueEntry, SyncState, PushResult

Usage:
    >>> from domain.models import DomainRecord, EntityType, utc_now

    >>> record = DomainRecord(
    ...     entity_type=EntityType.SET_LOGS,
    ...     id="set-1",
    ...     updated_at=utc_now(),
    ...     data={"session_id": "s-1", "exercise_id": "bench", "reps": 8, "weight_kg": 80},
    ... )
"""

from domain.models.records import (
    AIFeedback,
    DomainRecord,
    EntityPayload,
    EntityType,
    EstimatedMax,
    PAYLOAD_MODELS,
    SetLog,
    SYNC_ENTITY_TYPES,
    UserProfile,
    WeightEntry,
    WorkoutSession,
    ensure_utc,
    utc_now,
    validate_payload,
)
from domain.models.sync import (
    PushOutcome,
    PushResult,
    QueueEntryStatus,
    SyncOperation,
    SyncQueueEntry,
    SyncState,
    SyncStatus,
)

__all__ = [
    # Records
    "DomainRecord",
    "EntityType",
    "SYNC_ENTITY_TYPES",
    "ensure_utc",
    "utc_now",
    # Payloads
    "EntityPayload",
    "UserProfile",
    "WeightEntry",
    "WorkoutSession",
    "SetLog",
    "EstimatedMax",
    "AIFeedback",
    "PAYLOAD_MODELS",
    "validate_payload",
    # Sync
    "SyncOperation",
    "QueueEntryStatus",
    "SyncQueueEntry",
    "PushOutcome",
    "PushResult",
    "SyncStatus",
    "SyncState",
]

"""
Sync engine models: outbound queue entries, push results and sync state.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from domain.models.records import DomainRecord, EntityType, ensure_utc


class SyncOperation(str, Enum):
    """Kind of local mutation carried by a queue entry."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class QueueEntryStatus(str, Enum):
    """
    Queue entry lifecycle.

    pending -> in_flight -> (removed on ack | pending on retryable failure |
    failed once the retry ceiling is hit or the remote rejects the payload)
    """

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    FAILED = "failed"


class SyncQueueEntry(BaseModel):
    """
    One pending outbound operation.

    The payload is a full snapshot of the record at enqueue time
    (DomainRecord fields), never a diff.
    """

    sequence: int = Field(..., ge=1)
    entity_type: EntityType
    entity_id: str
    operation: SyncOperation
    payload: Dict[str, Any]
    attempts: int = Field(default=0, ge=0)
    status: QueueEntryStatus = QueueEntryStatus.PENDING
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status == QueueEntryStatus.FAILED

    def snapshot(self) -> DomainRecord:
        """The record version this entry wants the remote to hold."""
        return DomainRecord.model_validate(self.payload)


class PushOutcome(str, Enum):
    ACCEPTED = "accepted"
    CONFLICT = "conflict"
    REJECTED = "rejected"


@dataclass(frozen=True)
class PushResult:
    """Outcome of pushing one queue entry to the remote."""

    outcome: PushOutcome
    remote_version: Optional[DomainRecord] = None
    reason: Optional[str] = None

    @classmethod
    def accepted(cls) -> "PushResult":
        return cls(PushOutcome.ACCEPTED)

    @classmethod
    def conflict(cls, remote_version: DomainRecord) -> "PushResult":
        return cls(PushOutcome.CONFLICT, remote_version=remote_version)

    @classmethod
    def rejected(cls, reason: str) -> "PushResult":
        return cls(PushOutcome.REJECTED, reason=reason)


class SyncStatus(str, Enum):
    """Coarse status shown to the user."""

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"


class SyncState(BaseModel):
    """
    Process-wide sync state, owned by the SyncCoordinator.

    Persisted between runs. `flush_in_progress` is reset on load since a
    process that died mid-flush has no cycle running anymore.
    """

    last_pulled_at: Dict[EntityType, datetime] = Field(default_factory=dict)
    flush_in_progress: bool = False
    is_online: bool = False
    status: SyncStatus = SyncStatus.OFFLINE
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None
    is_migrated: bool = False
    auth_failed: bool = False
    halted: bool = False
    consecutive_failures: int = 0

    def watermark(self, entity_type: EntityType) -> Optional[datetime]:
        return self.last_pulled_at.get(EntityType(entity_type))

    def advance_watermark(self, entity_type: EntityType, value: datetime) -> None:
        """Move the watermark forward; never backwards."""
        entity_type = EntityType(entity_type)
        value = ensure_utc(value)
        current = self.last_pulled_at.get(entity_type)
        if current is None or value > current:
            self.last_pulled_at[entity_type] = value

    @classmethod
    def restore(cls, raw: Optional[Dict[str, Any]]) -> "SyncState":
        """Build state from its persisted form (or defaults when absent)."""
        if not raw:
            return cls()
        state = cls.model_validate(raw)
        state.flush_in_progress = False
        return state

    def to_persisted(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"flush_in_progress"})

"""
Synchronizable domain records.

Every entity the app keeps offline (user profile, weight history, sessions,
set logs, estimated maxes, AI feedback) travels through the sync engine as a
DomainRecord: a stable client-generated id, the writer's `updated_at`
timestamp, a tombstone flag and the entity payload as a JSON-safe dict.

The typed payload models below validate what the presentation layer hands
us before anything is written to the local store or queued for the remote.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EntityType(str, Enum):
    """Entity types kept in sync with the cloud copy.

    Declaration order is the push/pull order: parents before children so the
    remote never sees a set log before its session.
    """

    USERS = "users"
    WEIGHT_HISTORY = "weight_history"
    SESSIONS = "sessions"
    SET_LOGS = "set_logs"
    ESTIMATED_MAXES = "estimated_maxes"
    AI_FEEDBACK = "ai_feedback"


SYNC_ENTITY_TYPES = list(EntityType)


def utc_now() -> datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DomainRecord(BaseModel):
    """
    One committed version of a synchronizable entity.

    Attributes:
        entity_type: Which collection the record belongs to
        id: Globally unique id within the entity type (client-generated)
        updated_at: Writer's timestamp; strictly increases per local mutation
        deleted: Tombstone flag, set when the record was deleted
        data: Entity payload (JSON-safe, snake_case keys)
    """

    model_config = ConfigDict(frozen=True)

    entity_type: EntityType
    id: str = Field(..., min_length=1)
    updated_at: datetime
    deleted: bool = False
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("updated_at")
    @classmethod
    def normalize_updated_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def key(self) -> tuple:
        """(entity_type, id) identity of the record."""
        return (self.entity_type, self.id)

    def same_version(self, other: "DomainRecord") -> bool:
        """True if both records carry the same timestamp and content."""
        return (
            self.key == other.key
            and self.updated_at == other.updated_at
            and self.deleted == other.deleted
            and self.data == other.data
        )

    def tombstone(self, updated_at: datetime) -> "DomainRecord":
        """Return a deleted copy of this record stamped with `updated_at`."""
        return self.model_copy(update={"deleted": True, "updated_at": ensure_utc(updated_at)})


# =============================================================================
# Entity payloads
# =============================================================================


class EntityPayload(BaseModel):
    """Base class for typed entity payloads."""

    model_config = ConfigDict(extra="forbid")


class UserProfile(EntityPayload):
    """The single local user's profile."""

    current_weight_kg: float = Field(..., gt=0, le=500)
    gender: Literal["male", "female"]
    birth_year: Optional[int] = Field(default=None, ge=1900, le=2100)
    training_days: Dict[str, str] = Field(default_factory=dict)
    weight_updated_at: datetime
    profile_name: Optional[str] = Field(default=None, max_length=64)
    split_type: Optional[str] = None


class WeightEntry(EntityPayload):
    """One body-weight check-in."""

    weight_kg: float = Field(..., gt=0, le=500)
    recorded_at: datetime


class WorkoutSession(EntityPayload):
    """A workout session started from a template."""

    template_id: str
    date: datetime
    started_at: datetime
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None


class SetLog(EntityPayload):
    """A single logged set inside a session."""

    session_id: str
    exercise_id: str
    set_number: int = Field(default=1, ge=1)
    weight_kg: float = Field(..., ge=0)
    added_weight_kg: Optional[float] = None
    reps: int = Field(..., ge=0)
    rir: int = Field(default=2, ge=0, le=4)
    logged_at: Optional[datetime] = None


class EstimatedMax(EntityPayload):
    """An estimated one-rep max for an exercise."""

    exercise_id: str
    estimated_1rm: float = Field(..., gt=0)
    calculated_at: datetime


class AIFeedback(EntityPayload):
    """Stored coaching text produced for the user."""

    type: Literal["post_workout", "weekly", "alert", "on_demand"]
    content: str
    data_snapshot: Optional[Dict[str, Any]] = None
    created_at: datetime


PAYLOAD_MODELS: Dict[EntityType, Type[EntityPayload]] = {
    EntityType.USERS: UserProfile,
    EntityType.WEIGHT_HISTORY: WeightEntry,
    EntityType.SESSIONS: WorkoutSession,
    EntityType.SET_LOGS: SetLog,
    EntityType.ESTIMATED_MAXES: EstimatedMax,
    EntityType.AI_FEEDBACK: AIFeedback,
}


def validate_payload(entity_type: EntityType, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a raw payload against its entity model.

    Returns:
        JSON-safe dict (datetimes as ISO strings) ready for storage.

    Raises:
        pydantic.ValidationError: If the payload does not match the model
    """
    model = PAYLOAD_MODELS[EntityType(entity_type)]
    return model.model_validate(payload).model_dump(mode="json")

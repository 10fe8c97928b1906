"""
Notification channel between the sync engine and its consumers.

Consumers subscribe explicitly to a named event type and get back an
unsubscribe callable to call on teardown. Handlers run synchronously on the
event loop thread in subscription order.

Usage:
    bus = EventBus()
    unsubscribe = bus.subscribe(EventType.ONBOARDING_COMPLETED, on_ready)
    bus.publish(OnboardingCompleted(user_id="u-1"))
    unsubscribe()
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, ClassVar, Dict, List, Optional

from domain.models import EntityType, SyncState

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    CONNECTIVITY_CHANGED = "connectivity_changed"
    QUEUE_CHANGED = "queue_changed"
    ENTRY_FAILED = "entry_failed"
    SYNC_STATE_CHANGED = "sync_state_changed"
    AUTHENTICATION_FAILED = "authentication_failed"
    ONBOARDING_COMPLETED = "onboarding_completed"


@dataclass(frozen=True)
class Event:
    """Base class for typed event payloads."""

    event_type: ClassVar[EventType]


@dataclass(frozen=True)
class ConnectivityChanged(Event):
    event_type: ClassVar[EventType] = EventType.CONNECTIVITY_CHANGED

    online: bool


@dataclass(frozen=True)
class QueueChanged(Event):
    event_type: ClassVar[EventType] = EventType.QUEUE_CHANGED

    pending: int
    failed: int


@dataclass(frozen=True)
class EntryFailed(Event):
    """A queue entry reached terminal failure and needs user attention."""

    event_type: ClassVar[EventType] = EventType.ENTRY_FAILED

    sequence: int
    entity_type: EntityType
    entity_id: str
    reason: str


@dataclass(frozen=True)
class SyncStateChanged(Event):
    event_type: ClassVar[EventType] = EventType.SYNC_STATE_CHANGED

    state: SyncState


@dataclass(frozen=True)
class AuthenticationFailed(Event):
    event_type: ClassVar[EventType] = EventType.AUTHENTICATION_FAILED

    reason: str


@dataclass(frozen=True)
class OnboardingCompleted(Event):
    event_type: ClassVar[EventType] = EventType.ONBOARDING_COMPLETED

    user_id: str


Handler = Callable[[Event], None]


class EventBus:
    """Explicit publish/subscribe channel with named event types."""

    def __init__(self) -> None:
        self._handlers: Dict[EventType, List[Handler]] = {}

    def subscribe(self, event_type: EventType, handler: Handler) -> Callable[[], None]:
        """
        Register `handler` for one event type.

        Returns:
            A callable that removes the subscription. Calling it twice is harmless.
        """
        handlers = self._handlers.setdefault(EventType(event_type), [])
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: Event) -> None:
        """Deliver `event` to every subscriber of its type."""
        for handler in list(self._handlers.get(event.event_type, [])):
            try:
                handler(event)
            except Exception as e:
                # One broken consumer must not starve the others
                logger.error(
                    f"Event handler {getattr(handler, '__name__', handler)!r} failed "
                    f"for {event.event_type.value}: {e}",
                    exc_info=True,
                )

    def subscriber_count(self, event_type: Optional[EventType] = None) -> int:
        if event_type is None:
            return sum(len(h) for h in self._handlers.values())
        return len(self._handlers.get(EventType(event_type), []))

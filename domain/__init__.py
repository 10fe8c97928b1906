"""
Domain layer for the workout sync engine.

This package contains pure domain models that are independent of
infrastructure concerns (local database, remote backend, HTTP).
"""

from domain.models import (
    DomainRecord,
    EntityType,
    SyncQueueEntry,
    SyncState,
)

__all__ = [
    "DomainRecord",
    "EntityType",
    "SyncQueueEntry",
    "SyncState",
]

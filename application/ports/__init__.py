"""
Repository and Client Interfaces (Ports) for the workout sync engine.

This package defines abstract interfaces that decouple the sync engine from
infrastructure (SQLite, Supabase). Implementations are provided in the
infrastructure layer; in-memory fakes live in tests/fakes.

Architecture follows the Ports & Adapters (Hexagonal) pattern:
- Ports: Abstract interfaces defined here (what the engine needs)
- Adapters: Concrete implementations in infrastructure/ (how it's provided)

Usage:
    from application.ports import LocalStore, RemoteSyncClient

    class SyncCoordinator:
        def __init__(self, store: LocalStore, remote: RemoteSyncClient):
            ...
"""

# Local durable store
from application.ports.local_store import LocalStore

# Outbound queue persistence
from application.ports.queue_repository import QueueRepository

# Sync state persistence
from application.ports.sync_state_repository import SyncStateRepository

# Remote backend
from application.ports.remote_sync_client import RemoteSyncClient

__all__ = [
    "LocalStore",
    "QueueRepository",
    "SyncStateRepository",
    "RemoteSyncClient",
]

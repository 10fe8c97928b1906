"""
Infrastructure Layer for the workout sync engine.

This package contains concrete implementations of the application ports:
- db/: SQLite local store and the Supabase remote sync client
- connectivity_probe: HTTP reachability checks feeding the connectivity monitor
"""

from infrastructure.connectivity_probe import ConnectivityProbe
from infrastructure.db import (
    SQLiteLocalStore,
    SQLiteQueueRepository,
    SQLiteSyncStateRepository,
    SupabaseSyncClient,
)

__all__ = [
    "ConnectivityProbe",
    "SQLiteLocalStore",
    "SQLiteQueueRepository",
    "SQLiteSyncStateRepository",
    "SupabaseSyncClient",
]

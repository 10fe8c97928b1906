"""
Infrastructure Database Layer.

- SQLiteLocalStore: local durable store; its `queue` and `sync_state`
  facets implement QueueRepository and SyncStateRepository on the same
  connection and transactions
- SupabaseSyncClient: RemoteSyncClient backed by Supabase tables and RPCs

Usage:
    from infrastructure.db import SQLiteLocalStore, SupabaseSyncClient

    store = SQLiteLocalStore(settings.local_db_path)
    remote = SupabaseSyncClient(SyncClientConfig.from_settings(settings))
"""

from infrastructure.db.sqlite_store import (
    SQLiteLocalStore,
    SQLiteQueueRepository,
    SQLiteSyncStateRepository,
)
from infrastructure.db.supabase_sync_client import SupabaseSyncClient

__all__ = [
    # Local durable store
    "SQLiteLocalStore",
    "SQLiteQueueRepository",
    "SQLiteSyncStateRepository",

    # Remote backend
    "SupabaseSyncClient",
]

"""
Sync State Persistence Interface (Port).

Stores the SyncCoordinator's SyncState between process runs.
"""
from typing import Any, Dict, Optional, Protocol


class SyncStateRepository(Protocol):
    """Abstract interface for sync state persistence."""

    async def load(self) -> Optional[Dict[str, Any]]:
        """Return the persisted state, or None on first run."""
        ...

    async def save(self, state: Dict[str, Any]) -> None:
        """Replace the persisted state."""
        ...

    async def clear(self) -> None:
        """Forget the persisted state (logout / reset)."""
        ...

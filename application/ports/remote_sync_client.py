"""
Remote Sync Client Interface (Port).

Authenticated channel to the cloud copy of the user's data.

Error contract for every coroutine below:
- TransientNetworkError: connection failure, timeout, backend 5xx (retryable)
- AuthenticationError: credentials refused (fatal until re-authenticated)
- RejectedPayloadError: only raised by the recovery calls; push reports
  rejection through PushResult instead
"""
from datetime import datetime
from typing import AsyncIterator, Optional, Protocol

from domain.models import DomainRecord, EntityType, PushResult, SyncQueueEntry


class RemoteSyncClient(Protocol):
    """Abstract interface for the remote backend."""

    @property
    def is_configured(self) -> bool:
        """False when no backend is configured (local-only mode)."""
        ...

    def bind_user(self, user_id: str) -> None:
        """Scope every subsequent call to the given owner id."""
        ...

    async def reauthenticate(self) -> None:
        """Refresh credentials after an authentication failure."""
        ...

    async def push(self, entry: SyncQueueEntry) -> PushResult:
        """
        Send one queued mutation.

        Pushes are idempotent per (entity_type, entity_id, operation): a retry
        of a push the remote already applied returns `accepted`.
        """
        ...

    def pull(
        self,
        entity_type: EntityType,
        since: Optional[datetime],
    ) -> AsyncIterator[DomainRecord]:
        """
        Lazily yield remote records changed at or after `since`.

        Records come in ascending `updated_at` order. Pull is a pure read and
        may be repeated with the same watermark.
        """
        ...

    async def fetch(self, entity_type: EntityType, entity_id: str) -> Optional[DomainRecord]:
        """Read the remote version of a single record."""
        ...

    async def check_profile_name_available(self, profile_name: str) -> bool:
        """True if no remote profile uses this name (case-insensitive)."""
        ...

    async def register_profile(self, user_id: str, profile_name: str, pin: str) -> bool:
        """Attach a recovery name and PIN to the remote profile."""
        ...

    async def verify_recovery(self, profile_name: str, pin: str) -> Optional[DomainRecord]:
        """Return the remote user profile for valid credentials, else None."""
        ...

    async def change_recovery_pin(self, user_id: str, current_pin: str, new_pin: str) -> bool:
        """Replace the recovery PIN after checking the current one."""
        ...

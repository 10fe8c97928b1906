"""
Application-layer exceptions.

These exceptions are used across the application, sync engine and
infrastructure layers. The sync coordinator decides what each class means
for the queue and for the user-visible error surface:

- TransientNetworkError: retried on a later trigger, never surfaced
- RejectedPayloadError: entry marked failed for good, surfaced
- AuthenticationError: sync halted until re-authenticated, surfaced
- LocalStoreError: sync halted until resumed, surfaced
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for sync engine errors."""

    pass


class TransientNetworkError(SyncError):
    """Network unavailable, timed out or the backend is temporarily failing."""

    pass


class RejectedPayloadError(SyncError):
    """The remote refused the payload (malformed, constraint violation)."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class AuthenticationError(SyncError):
    """Credentials were refused by the remote backend."""

    pass


class LocalStoreError(SyncError):
    """The local durable store failed to read or commit."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class QueueEntryNotFoundError(SyncError, LookupError):
    """No queue entry exists with the given sequence number."""

    def __init__(self, sequence: int):
        super().__init__(f"Queue entry {sequence} not found")
        self.sequence = sequence


class FlushInProgressError(SyncError):
    """An operation needs exclusive access while a flush cycle is running."""

    pass


class RemoteUnavailableError(SyncError):
    """The operation needs the remote backend, which is not configured or unreachable."""

    pass


class ProfileAlreadyExistsError(SyncError):
    """A local user profile already exists on this device."""

    pass

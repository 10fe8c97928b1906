"""
Sync engine configuration.

SyncClientConfig is the explicit configuration structure handed to the
remote sync client, the outbound queue and the coordinator at construction.
Nothing in the engine reads environment variables directly.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional

from backend.settings import Settings

TokenProvider = Callable[[], Optional[str]]


def _no_token() -> Optional[str]:
    return None


@dataclass(frozen=True)
class SyncClientConfig:
    """
    Recognized sync options.

    Attributes:
        backend_url: Supabase project URL (None runs local-only)
        api_key: Supabase anon key
        auth_token_provider: Returns the current bearer token, or None for
            anonymous access. Called again on re-authentication.
        max_attempts: Retry ceiling before an entry is marked failed
        backoff_schedule: Seconds to wait before re-triggering after the
            1st, 2nd, ... consecutive transient failure (last value repeats)
        request_timeout: Bounded wait for each push/pull call
        batch_size: Entries read per peek while draining the queue
        pull_page_size: Rows fetched per remote page
        periodic_interval: Safety-net trigger interval (0 disables)
    """

    backend_url: Optional[str] = None
    api_key: Optional[str] = None
    auth_token_provider: TokenProvider = _no_token
    max_attempts: int = 5
    backoff_schedule: List[float] = field(default_factory=lambda: [1.0, 2.0, 5.0, 15.0, 60.0])
    request_timeout: float = 15.0
    batch_size: int = 50
    pull_page_size: int = 500
    periodic_interval: float = 300.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if not self.backoff_schedule:
            raise ValueError("backoff_schedule must contain at least one delay")
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.batch_size < 1 or self.pull_page_size < 1:
            raise ValueError("batch_size and pull_page_size must be >= 1")

    @property
    def is_configured(self) -> bool:
        return bool(self.backend_url and self.api_key)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncClientConfig":
        """Build the engine configuration from application settings."""
        token = settings.supabase_access_token

        return cls(
            backend_url=settings.supabase_url,
            api_key=settings.supabase_anon_key,
            auth_token_provider=lambda: token,
            max_attempts=settings.sync_max_attempts,
            backoff_schedule=settings.backoff_schedule,
            request_timeout=settings.sync_request_timeout_seconds,
            batch_size=settings.sync_batch_size,
            pull_page_size=settings.sync_pull_page_size,
            periodic_interval=settings.sync_periodic_interval_seconds,
        )

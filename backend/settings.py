"""
Centralized settings configuration using Pydantic BaseSettings.

All environment variables are defined here with types, defaults, and validation.
Use get_settings() for dependency injection compatibility in FastAPI.

Usage:
    from backend.settings import get_settings, Settings

    # In FastAPI endpoints (dependency injection)
    @app.get("/")
    def read_root(settings: Settings = Depends(get_settings)):
        return {"environment": settings.environment}

    # Direct access (module-level)
    settings = get_settings()
    print(settings.supabase_url)
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Core Environment
    # -------------------------------------------------------------------------
    environment: str = Field(
        default="development",
        description="Runtime environment: development, staging, production",
    )

    # -------------------------------------------------------------------------
    # Supabase (cloud copy)
    # -------------------------------------------------------------------------
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL",
    )
    supabase_anon_key: Optional[str] = Field(
        default=None,
        description="Supabase anonymous key (limited access)",
    )
    supabase_access_token: Optional[str] = Field(
        default=None,
        description="Optional user access token sent as bearer on every request",
    )

    @property
    def is_remote_configured(self) -> bool:
        """True when both Supabase URL and key are set."""
        return bool(self.supabase_url and self.supabase_anon_key)

    # -------------------------------------------------------------------------
    # Local Durable Store
    # -------------------------------------------------------------------------
    local_db_path: str = Field(
        default="workout_sync.db",
        description="SQLite file holding local records, the outbound queue and sync state",
    )

    # -------------------------------------------------------------------------
    # Sync Engine
    # -------------------------------------------------------------------------
    sync_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Failed pushes allowed before a queue entry is marked failed for good",
    )
    sync_backoff_schedule: str = Field(
        default="1,2,5,15,60",
        description="Comma-separated delays (seconds) before re-triggering after transient failures",
    )
    sync_request_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Bounded wait for a single push or pull page",
    )
    sync_batch_size: int = Field(
        default=50,
        ge=1,
        description="Queue entries read per batch while draining",
    )
    sync_pull_page_size: int = Field(
        default=500,
        ge=1,
        description="Rows fetched per pull page",
    )
    sync_periodic_interval_seconds: float = Field(
        default=300.0,
        ge=0,
        description="Safety-net flush interval; 0 disables the periodic trigger",
    )

    # -------------------------------------------------------------------------
    # Connectivity Probe
    # -------------------------------------------------------------------------
    connectivity_probe_url: Optional[str] = Field(
        default=None,
        description="URL probed for reachability (defaults to the Supabase URL)",
    )
    connectivity_probe_interval_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Seconds between reachability probes; 0 disables probing",
    )

    # -------------------------------------------------------------------------
    # Observability - Sentry
    # -------------------------------------------------------------------------
    sentry_dsn: Optional[str] = Field(
        default=None,
        description="Sentry DSN for error tracking",
    )

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is a valid value."""
        valid_environments = {"development", "staging", "production", "test"}
        if v.lower() not in valid_environments:
            raise ValueError(
                f"Invalid environment '{v}'. Must be one of: {valid_environments}"
            )
        return v.lower()

    @field_validator("sync_backoff_schedule")
    @classmethod
    def validate_backoff_schedule(cls, v: str) -> str:
        """Ensure the schedule is a non-empty list of non-negative numbers."""
        parts = [p.strip() for p in v.split(",") if p.strip()]
        if not parts:
            raise ValueError("sync_backoff_schedule must contain at least one delay")
        for part in parts:
            try:
                delay = float(part)
            except ValueError:
                raise ValueError(f"Invalid backoff delay '{part}'") from None
            if delay < 0:
                raise ValueError(f"Backoff delay must be >= 0, got {delay}")
        return ",".join(parts)

    # -------------------------------------------------------------------------
    # Helper Properties
    # -------------------------------------------------------------------------
    @property
    def backoff_schedule(self) -> List[float]:
        """Parsed backoff schedule in seconds."""
        return [float(p) for p in self.sync_backoff_schedule.split(",")]

    @property
    def probe_url(self) -> Optional[str]:
        """URL used by the connectivity probe."""
        return self.connectivity_probe_url or self.supabase_url

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_test(self) -> bool:
        """Check if running in test environment."""
        return self.environment == "test"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    For testing, you can clear the cache with get_settings.cache_clear().

    Returns:
        Settings: Application settings instance
    """
    return Settings()

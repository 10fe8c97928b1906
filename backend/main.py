"""
Application factory for FastAPI.

The factory wires one SyncService per application: the lifespan opens the
local store, starts the connectivity monitor (and the reachability probe
when a backend is configured) and shuts both down cleanly.

Usage:
    from backend.main import create_app
    from backend.settings import Settings

    # Default app (uses get_settings())
    app = create_app()

    # Test app with custom settings and a service wired to fakes
    test_settings = Settings(environment="test", _env_file=None)
    test_app = create_app(settings=test_settings, service=service)
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.settings import Settings, get_settings
from backend.sync.service import SyncService
from infrastructure.connectivity_probe import ConnectivityProbe

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[SyncService] = None,
) -> FastAPI:
    """
    Create and configure a FastAPI application instance.

    Args:
        settings: Optional Settings instance. If not provided, uses get_settings()
                  which loads from environment variables.
        service: Optional pre-built SyncService. Built from settings if omitted.

    Returns:
        Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()
    if service is None:
        service = SyncService.from_settings(settings)

    _init_sentry(settings)

    app = FastAPI(
        title="Workout Sync API",
        description="Offline-first sync engine for the workout tracker",
        version="1.0.0",
        lifespan=_lifespan(settings),
    )
    app.state.settings = settings
    app.state.sync_service = service

    _configure_cors(app)
    _include_routers(app)

    return app


def _lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service: SyncService = app.state.sync_service
        probe = _build_probe(settings, service)

        online = await probe.check() if probe is not None else False
        await service.start(online=online)
        if probe is not None:
            await probe.start()

        yield

        if probe is not None:
            await probe.stop()
        await service.stop()

    return lifespan


def _build_probe(settings: Settings, service: SyncService) -> Optional[ConnectivityProbe]:
    """Reachability probe, or None when there is nothing to probe."""
    if not service.remote.is_configured or not settings.probe_url:
        return None
    if settings.connectivity_probe_interval_seconds <= 0:
        return None
    return ConnectivityProbe(
        settings.probe_url,
        service.set_online,
        interval=settings.connectivity_probe_interval_seconds,
    )


def _init_sentry(settings: Settings) -> None:
    """Initialize Sentry SDK if DSN is configured."""
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            traces_sample_rate=0.1,
        )
        logger.info("Sentry initialized for workout-sync")


def _configure_cors(app: FastAPI) -> None:
    """Configure CORS middleware for the application."""
    trusted_origins = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]
    extra_origins = os.environ.get("CORS_ALLOWED_ORIGINS", "").split(",")
    trusted_origins.extend([origin.strip() for origin in extra_origins if origin.strip()])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=trusted_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _include_routers(app: FastAPI) -> None:
    """Include all API routers in the application."""
    from api.routers import (
        health_router,
        onboarding_router,
        records_router,
        recovery_router,
        sync_router,
    )

    # Health router (no prefix - /health and /readiness at root)
    app.include_router(health_router)

    app.include_router(onboarding_router)
    app.include_router(records_router)
    app.include_router(sync_router)
    app.include_router(recovery_router)


# Default app instance for uvicorn
# This allows: uvicorn backend.main:app --reload
app = create_app()

"""
Router package for the workout sync API.

This package contains all API routers organized by concern:
- health: liveness and the readiness (local profile) query
- onboarding: onboarding completion signal
- records: local mutations (write + enqueue)
- sync: sync status, flush control and failed-entry management
- recovery: profile name + PIN registration and restore
"""

from api.routers.health import router as health_router
from api.routers.onboarding import router as onboarding_router
from api.routers.records import router as records_router
from api.routers.sync import router as sync_router
from api.routers.recovery import router as recovery_router

__all__ = [
    "health_router",
    "onboarding_router",
    "records_router",
    "sync_router",
    "recovery_router",
]

"""
Health and readiness router.

- GET /health - liveness for monitoring and load balancers
- GET /readiness - does a local user profile exist (onboarding gate)
"""

import logging

from fastapi import APIRouter, Depends

from api.deps import get_sync_service
from backend.sync.service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Health"],
)


@router.get("/health")
def health():
    """
    Simple liveness endpoint.

    Returns:
        dict: Status indicator for health checks
    """
    return {"status": "ok"}


@router.get("/readiness")
async def readiness(service: SyncService = Depends(get_sync_service)):
    """
    Readiness query polled by the presentation layer.

    Returns:
        has_profile: True once onboarding (or a recovery) created the local profile
    """
    return {"has_profile": await service.has_local_profile()}

"""
Onboarding router.

- POST /onboarding/complete - create the local profile and broadcast
  the onboarding completion signal
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ValidationError

from api.deps import get_sync_service, to_http_exception
from application.exceptions import ProfileAlreadyExistsError
from backend.sync.service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/onboarding",
    tags=["Onboarding"],
)


class CompleteOnboardingRequest(BaseModel):
    """Request model for completing onboarding."""
    profile: Dict[str, Any]
    user_id: Optional[str] = None


@router.post("/complete", status_code=201)
async def complete_onboarding(
    request: CompleteOnboardingRequest,
    service: SyncService = Depends(get_sync_service),
):
    """
    Create the local user profile.

    Returns:
        The created profile record
    """
    try:
        record = await service.onboarding.complete_onboarding(request.profile, request.user_id)
    except (ValidationError, ProfileAlreadyExistsError, ValueError) as e:
        raise to_http_exception(e) from e
    return record.model_dump(mode="json")

"""
Profile recovery router.

- GET /recovery/profile-names/{name} - is a profile name still free
- POST /recovery/register - attach a recovery name and PIN to a profile
- POST /recovery/restore - restore a profile onto this device
- POST /recovery/change-pin - replace the recovery PIN
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.deps import get_sync_service, to_http_exception
from application.exceptions import (
    AuthenticationError,
    FlushInProgressError,
    ProfileAlreadyExistsError,
    RemoteUnavailableError,
    SyncError,
)
from backend.sync.service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/recovery",
    tags=["Recovery"],
)

PIN_FIELD = Field(..., pattern=r"^\d{4}$", description="4-digit recovery PIN")


# =============================================================================
# Request/Response Models
# =============================================================================


class RegisterProfileRequest(BaseModel):
    """Request model for registering a recovery profile."""
    user_id: str
    profile_name: str = Field(..., min_length=1, max_length=64)
    pin: str = PIN_FIELD


class RestoreProfileRequest(BaseModel):
    """Request model for restoring a profile from the cloud."""
    profile_name: str = Field(..., min_length=1, max_length=64)
    pin: str = PIN_FIELD


class ChangePinRequest(BaseModel):
    """Request model for changing the recovery PIN."""
    user_id: str
    current_pin: str = PIN_FIELD
    new_pin: str = PIN_FIELD


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/profile-names/{name}")
async def check_profile_name(name: str, service: SyncService = Depends(get_sync_service)):
    try:
        available = await service.recovery.check_profile_name_available(name)
    except (ValueError, SyncError) as e:
        raise _remote_error(e) from e
    return {"name": name.strip(), "available": available}


@router.post("/register")
async def register_profile(
    request: RegisterProfileRequest,
    service: SyncService = Depends(get_sync_service),
):
    try:
        registered = await service.recovery.register_profile(
            request.user_id, request.profile_name, request.pin
        )
    except (ValueError, SyncError) as e:
        raise _remote_error(e) from e
    return {"registered": registered}


@router.post("/restore")
async def restore_profile(
    request: RestoreProfileRequest,
    service: SyncService = Depends(get_sync_service),
):
    """
    Verify the name and PIN, then rebuild local data from the cloud.

    Returns:
        The restored profile record
    """
    try:
        profile = await service.recovery.restore(request.profile_name, request.pin)
    except (ValueError, SyncError) as e:
        raise _remote_error(e) from e
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found or PIN incorrect")
    return profile.model_dump(mode="json")


@router.post("/change-pin")
async def change_pin(
    request: ChangePinRequest,
    service: SyncService = Depends(get_sync_service),
):
    try:
        changed = await service.recovery.change_pin(
            request.user_id, request.current_pin, request.new_pin
        )
    except (ValueError, SyncError) as e:
        raise _remote_error(e) from e
    return {"changed": changed}


def _remote_error(exc: Exception) -> HTTPException:
    known = (
        ValueError,
        AuthenticationError,
        FlushInProgressError,
        ProfileAlreadyExistsError,
        RemoteUnavailableError,
    )
    if isinstance(exc, known):
        return to_http_exception(exc)
    # Transient after retries, or rejected by the backend
    logger.error(f"Recovery call failed: {exc}")
    return HTTPException(status_code=502, detail=str(exc))

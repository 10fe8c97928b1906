"""
Sync router.

Status and control surface of the offline-first sync engine.

- GET /sync/status - status, pending/failed counts, last sync, last error
- POST /sync/flush - run a flush cycle now
- POST /sync/connectivity - report connectivity / visibility from the host
- GET /sync/failed - queue entries that failed for good
- POST /sync/failed/{sequence}/retry - put a failed entry back in the queue
- DELETE /sync/failed/{sequence} - discard a failed entry
- POST /sync/reauthenticate - refresh credentials after an auth failure
- POST /sync/resume - resume after a local store failure
- POST /sync/migrate - initial upload of pre-existing local data
- POST /sync/reset - clear local data, queue and sync state
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.deps import get_sync_service, to_http_exception
from application.exceptions import (
    AuthenticationError,
    FlushInProgressError,
    QueueEntryNotFoundError,
    RemoteUnavailableError,
)
from backend.sync.outbound_queue import InvalidQueueTransition
from backend.sync.service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/sync",
    tags=["Sync"],
)


class ConnectivityRequest(BaseModel):
    """Connectivity signal reported by the host."""
    online: bool
    visible: Optional[bool] = None


# =============================================================================
# Status
# =============================================================================


@router.get("/status")
async def sync_status(service: SyncService = Depends(get_sync_service)):
    return await service.status()


@router.post("/flush")
async def flush(service: SyncService = Depends(get_sync_service)):
    """
    Run a flush cycle and wait for it.

    A cycle that cannot start (offline, local-only, halted, already running)
    is reported through `skipped`.
    """
    report = await service.flush()
    return report.to_dict()


@router.post("/connectivity")
async def report_connectivity(
    request: ConnectivityRequest,
    service: SyncService = Depends(get_sync_service),
):
    service.set_online(request.online)
    if request.visible:
        service.visibility_regained()
    return await service.status()


# =============================================================================
# Failed entries
# =============================================================================


@router.get("/failed")
async def failed_entries(service: SyncService = Depends(get_sync_service)):
    entries = await service.failed_entries()
    return {
        "entries": [e.model_dump(mode="json") for e in entries],
        "count": len(entries),
    }


@router.post("/failed/{sequence}/retry")
async def retry_failed(sequence: int, service: SyncService = Depends(get_sync_service)):
    try:
        entry = await service.retry_failed(sequence)
    except (QueueEntryNotFoundError, InvalidQueueTransition) as e:
        raise to_http_exception(e) from e
    return entry.model_dump(mode="json")


@router.delete("/failed/{sequence}")
async def discard_failed(sequence: int, service: SyncService = Depends(get_sync_service)):
    try:
        entry = await service.discard_failed(sequence)
    except (QueueEntryNotFoundError, InvalidQueueTransition) as e:
        raise to_http_exception(e) from e
    return {"success": True, "sequence": entry.sequence}


# =============================================================================
# Recovery from halts
# =============================================================================


@router.post("/reauthenticate")
async def reauthenticate(service: SyncService = Depends(get_sync_service)):
    try:
        await service.reauthenticate()
    except (AuthenticationError, RemoteUnavailableError) as e:
        raise to_http_exception(e) from e
    return await service.status()


@router.post("/resume")
async def resume(service: SyncService = Depends(get_sync_service)):
    await service.resume()
    return await service.status()


@router.post("/migrate")
async def migrate(service: SyncService = Depends(get_sync_service)):
    try:
        result = await service.migrate()
    except FlushInProgressError as e:
        raise to_http_exception(e) from e
    return result.to_dict()


@router.post("/reset")
async def reset(service: SyncService = Depends(get_sync_service)):
    try:
        await service.reset()
    except FlushInProgressError as e:
        raise to_http_exception(e) from e
    return {"success": True}

"""
Records router.

Mutation entry points for the presentation layer. Every write commits
locally and queues the change for the next flush; nothing here waits for
the remote.

- GET /records/{entity_type} - list records
- POST /records/{entity_type} - create a record (client-generated id)
- GET /records/{entity_type}/{record_id} - get one record
- PUT /records/{entity_type}/{record_id} - create or replace a record
- DELETE /records/{entity_type}/{record_id} - delete a record
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ValidationError

from api.deps import get_sync_service, to_http_exception
from application.exceptions import ProfileAlreadyExistsError
from backend.sync.service import SyncService
from domain.models import EntityType

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/records",
    tags=["Records"],
)


# =============================================================================
# Request/Response Models
# =============================================================================


class CreateRecordRequest(BaseModel):
    """Request model for creating a record."""
    data: Dict[str, Any]
    id: Optional[str] = None


class SaveRecordRequest(BaseModel):
    """Request model for replacing a record's payload."""
    data: Dict[str, Any]


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/{entity_type}")
async def list_records(
    entity_type: EntityType,
    service: SyncService = Depends(get_sync_service),
):
    records = await service.mutations.list(entity_type)
    return {
        "records": [r.model_dump(mode="json") for r in records],
        "count": len(records),
    }


@router.post("/{entity_type}", status_code=201)
async def create_record(
    entity_type: EntityType,
    request: CreateRecordRequest,
    service: SyncService = Depends(get_sync_service),
):
    try:
        record = await service.mutations.create(entity_type, request.data, entity_id=request.id)
    except (ValidationError, ProfileAlreadyExistsError, ValueError) as e:
        raise to_http_exception(e) from e
    return record.model_dump(mode="json")


@router.get("/{entity_type}/{record_id}")
async def get_record(
    entity_type: EntityType,
    record_id: str,
    service: SyncService = Depends(get_sync_service),
):
    record = await service.mutations.get(entity_type, record_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"{entity_type.value}:{record_id} not found")
    return record.model_dump(mode="json")


@router.put("/{entity_type}/{record_id}")
async def save_record(
    entity_type: EntityType,
    record_id: str,
    request: SaveRecordRequest,
    service: SyncService = Depends(get_sync_service),
):
    try:
        record = await service.mutations.save(entity_type, record_id, request.data)
    except (ValidationError, ProfileAlreadyExistsError) as e:
        raise to_http_exception(e) from e
    return record.model_dump(mode="json")


@router.delete("/{entity_type}/{record_id}")
async def delete_record(
    entity_type: EntityType,
    record_id: str,
    service: SyncService = Depends(get_sync_service),
):
    if not await service.mutations.delete(entity_type, record_id):
        raise HTTPException(status_code=404, detail=f"{entity_type.value}:{record_id} not found")
    return {"success": True, "id": record_id}

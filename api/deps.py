"""
FastAPI Dependency Providers for the workout sync API.

The SyncService is created once per application by create_app() and kept on
`app.state`; routers reach it through get_sync_service so tests can swap in
a service wired to fakes.

Usage in routers:
    from api.deps import get_sync_service

    @router.get("/sync/status")
    async def sync_status(service: SyncService = Depends(get_sync_service)):
        return await service.status()

Testing:
    app = create_app(settings=test_settings, service=service_with_fakes)
"""

import json

from fastapi import HTTPException, Request
from pydantic import ValidationError

from application.exceptions import (
    AuthenticationError,
    FlushInProgressError,
    ProfileAlreadyExistsError,
    RemoteUnavailableError,
)
from backend.sync.service import SyncService


def get_sync_service(request: Request) -> SyncService:
    """Get the application's SyncService."""
    return request.app.state.sync_service


def to_http_exception(exc: Exception) -> HTTPException:
    """Map engine exceptions onto HTTP status codes."""
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail=json.loads(exc.json()))
    if isinstance(exc, LookupError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (FlushInProgressError, ProfileAlreadyExistsError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, AuthenticationError):
        return HTTPException(status_code=401, detail=str(exc))
    if isinstance(exc, RemoteUnavailableError):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=500, detail="Internal error")

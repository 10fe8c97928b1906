"""
API package for the workout sync service.

This package contains:
- deps.py: FastAPI dependency providers and error mapping
- routers/: API route handlers
"""

from api.deps import get_sync_service, to_http_exception

__all__ = [
    "get_sync_service",
    "to_http_exception",
]

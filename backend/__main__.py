"""
Entry point for running the sync API with `python -m backend`.
"""
import uvicorn

from backend.settings import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("backend.main:app", host="127.0.0.1", port=8001, reload=settings.is_development)

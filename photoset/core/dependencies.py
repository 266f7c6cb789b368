"""
FastAPI dependencies. Injected into route handlers.

Every generation collaborator is resolved here so tests can swap it with
app.dependency_overrides.
"""

from functools import lru_cache

from fastapi import Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from .cache import InMemoryResourceCache, ResourceCache
from .database import get_db as _get_db
from .storage import StorageBackend, get_storage as _get_storage
from ..services.llm import chat_with_vision
from ..services.product_analysis import VisionCall
from ..services.renderer import GeminiRenderer, Renderer

DEFAULT_TENANT = "default"


async def get_db() -> AsyncSession:
    """Yields an async DB session per request."""
    async for session in _get_db():
        yield session


async def get_tenant(x_tenant_id: str = Header(default=DEFAULT_TENANT)) -> str:
    """Tenant from the X-Tenant-Id header."""
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-Id header must not be empty",
        )
    return tenant_id


def get_storage_dep() -> StorageBackend:
    """Returns the active storage backend (S3 or local)."""
    return _get_storage()


def get_renderer() -> Renderer:
    return GeminiRenderer()


def get_analyzer() -> VisionCall:
    return chat_with_vision


@lru_cache
def get_resource_cache() -> ResourceCache:
    """One resource-analysis cache per process, shared across requests."""
    return InMemoryResourceCache()

"""
Main API router. Mounts all sub-routers.
"""

from fastapi import APIRouter

from ..core.flags import get_flags

router = APIRouter()


# ── Health ───────────────────────────────────────────────────────────

@router.get("/health")
async def health():
    flags = get_flags()
    return {
        "status": "ok",
        "service": "photoset",
        "storage": "s3" if flags.use_s3 else "local",
        "realtime": flags.use_redis,
    }


# ── V1 routes ────────────────────────────────────────────────────────

from .product_images import product_images_router

router.include_router(product_images_router, prefix="/v1")

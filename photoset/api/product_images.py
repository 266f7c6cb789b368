"""
Product images API — multi-angle generation and stored results.

POST   /v1/product-images/generate        — Run one generation session
GET    /v1/product-images                 — Tenant's sessions, newest first, filtered and paged
GET    /v1/product-images/{id}            — One session
DELETE /v1/product-images/{id}            — Remove a session and its generated files
POST   /v1/product-images/{id}/regenerate — Re-run stored inputs as a new session
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.cache import ResourceCache
from ..core.dependencies import (
    get_analyzer,
    get_db,
    get_renderer,
    get_resource_cache,
    get_storage_dep,
    get_tenant,
)
from ..core.errors import (
    AllAnglesFailed,
    AnalysisFailure,
    InvalidGenerationRequest,
    InvalidReferencePath,
)
from ..core.guardrails import check_generation_request
from ..core.storage import StorageBackend, resolve_reference_path
from ..models.domain import DEFAULT_BACKGROUND, DEFAULT_LOGO_POSITION, DEFAULT_OUTPUT_SIZE, GenerationRequest
from ..models.product_image import ProductImageSet
from ..services import image_sets
from ..services.brand_context import format_brand_for_prompt
from ..services.pipeline import generate_product_images
from ..services.product_analysis import VisionCall
from ..services.renderer import Renderer

logger = logging.getLogger(__name__)

product_images_router = APIRouter(tags=["product-images"])


# ── Request model ─────────────────────────────────────────────────────

class GenerateRequestBody(BaseModel):
    """camelCase JSON body; snake_case names are accepted too."""
    model_config = ConfigDict(populate_by_name=True)

    original_image_url: str = Field(default="", alias="originalImageUrl")
    background_type: str = Field(default=DEFAULT_BACKGROUND, alias="backgroundType")
    camera_angles: list[str] = Field(default_factory=lambda: ["wide"], alias="cameraAngles")
    custom_background: str = Field(default="", alias="customBackground")
    usage_purpose: str = Field(default="", alias="usagePurpose")
    display_info: str = Field(default="", alias="displayInfo")
    ad_intensity: str = Field(default="", alias="adIntensity")
    typography_guidance: str = Field(default="", alias="typographyGuidance")
    target_audience: str = Field(default="", alias="targetAudience")
    visual_style: str = Field(default="", alias="visualStyle")
    realism_priority: str = Field(default="", alias="realismPriority")
    additional_notes: str = Field(default="", alias="additionalNotes")
    use_logo: bool = Field(default=True, alias="useLogo")
    logo_position: str = Field(default=DEFAULT_LOGO_POSITION, alias="logoPosition")
    logo_url: Optional[str] = Field(default=None, alias="logoUrl")
    output_size: str = Field(default=DEFAULT_OUTPUT_SIZE, alias="outputSize")
    brand_context: str = Field(default="", alias="brandContext")
    brand: Optional[dict] = None
    brand_resource_urls: list[str] = Field(default_factory=list, alias="brandResourceUrls")
    title: Optional[str] = None

    def to_domain(self) -> GenerationRequest:
        brand = self.brand or {}
        return GenerationRequest(
            original_image_url=self.original_image_url,
            background_type=self.background_type or DEFAULT_BACKGROUND,
            camera_angles=list(self.camera_angles),
            custom_background=self.custom_background,
            usage_purpose=self.usage_purpose,
            display_info=self.display_info,
            ad_intensity=self.ad_intensity,
            typography_guidance=self.typography_guidance,
            target_audience=self.target_audience,
            visual_style=self.visual_style,
            realism_priority=self.realism_priority,
            additional_notes=self.additional_notes,
            use_logo=self.use_logo,
            logo_position=self.logo_position or DEFAULT_LOGO_POSITION,
            logo_url=self.logo_url or brand.get("logo_url"),
            output_size=self.output_size or DEFAULT_OUTPUT_SIZE,
            brand_context=self.brand_context or format_brand_for_prompt(brand),
            brand_resource_urls=list(self.brand_resource_urls),
        )


# ── Shared generation flow ────────────────────────────────────────────

async def _run_generation(
    request: GenerationRequest,
    tenant_id: str,
    db: AsyncSession,
    renderer: Renderer,
    analyzer: VisionCall,
    storage: StorageBackend,
    cache: ResourceCache,
    title: Optional[str] = None,
) -> dict:
    # Rejected requests never create a record.
    check = check_generation_request(request)
    if not check.allowed:
        raise HTTPException(status_code=400, detail=check.reason)
    try:
        resolve_reference_path(request.original_image_url)
    except InvalidReferencePath as e:
        raise HTTPException(status_code=400, detail=str(e))

    session_id = uuid.uuid4().hex
    record = await image_sets.create_processing_record(db, tenant_id, session_id, request, title=title)
    await db.commit()

    try:
        result = await generate_product_images(
            request,
            renderer=renderer,
            analyzer=analyzer,
            storage=storage,
            cache=cache,
            tenant_id=tenant_id,
            session_id=session_id,
        )
    except (InvalidGenerationRequest, InvalidReferencePath) as e:
        await _settle_failed(db, record, str(e))
        raise HTTPException(status_code=400, detail=str(e))
    except AnalysisFailure as e:
        await _settle_failed(db, record, str(e))
        raise HTTPException(status_code=502, detail=str(e))
    except AllAnglesFailed as e:
        await _settle_failed(db, record, str(e), e.tasks)
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.exception("Product image generation crashed (session=%s)", session_id)
        await _settle_failed(db, record, str(e) or e.__class__.__name__)
        raise

    record = await image_sets.save_generation_result(db, record, result.tasks)
    completed = sum(1 for t in result.tasks if t.image_url)
    return {
        "success": True,
        "message": f"Generated {completed}/{len(result.tasks)} angles",
        "data": record.to_dict(),
    }


async def _settle_failed(db: AsyncSession, record: ProductImageSet, message: str, tasks=None) -> None:
    await image_sets.mark_failed(db, record, message, tasks)
    await db.commit()


# ── Routes ────────────────────────────────────────────────────────────

@product_images_router.post("/product-images/generate", status_code=201)
async def generate(
    body: GenerateRequestBody,
    tenant_id: str = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
    renderer: Renderer = Depends(get_renderer),
    analyzer: VisionCall = Depends(get_analyzer),
    storage: StorageBackend = Depends(get_storage_dep),
    cache: ResourceCache = Depends(get_resource_cache),
):
    """Generate one consistent image per requested camera angle."""
    return await _run_generation(
        body.to_domain(), tenant_id, db, renderer, analyzer, storage, cache, title=body.title,
    )


@product_images_router.get("/product-images")
async def list_product_images(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: str = "",
    background_type: str = Query(default="", alias="backgroundType"),
    status: str = "",
    tenant_id: str = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
):
    filters = {"search": search.strip(), "background_type": background_type.strip(), "status": status.strip()}
    records = await image_sets.list_image_sets(db, tenant_id, limit=limit, page=page, **filters)
    total = await image_sets.count_image_sets(db, tenant_id, **filters)
    return {
        "success": True,
        "data": [r.to_dict() for r in records],
        "pagination": {"page": page, "limit": limit, "total": total, "totalPages": (total + limit - 1) // limit},
    }


@product_images_router.get("/product-images/{record_id}")
async def get_product_images(
    record_id: str,
    tenant_id: str = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
):
    record = await image_sets.get_image_set(db, tenant_id, record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Product image set not found")
    return {"success": True, "data": record.to_dict()}


@product_images_router.delete("/product-images/{record_id}")
async def delete_product_images(
    record_id: str,
    tenant_id: str = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_dep),
):
    record = await image_sets.delete_image_set(db, tenant_id, record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Product image set not found")
    # Other sessions may share the original upload, so only generated files go.
    deleted, not_found = await image_sets.delete_generated_files(storage, image_sets.generated_file_urls(record))
    return {"success": True, "filesDeleted": deleted, "filesNotFound": not_found}


@product_images_router.post("/product-images/{record_id}/regenerate", status_code=201)
async def regenerate_product_images(
    record_id: str,
    tenant_id: str = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
    renderer: Renderer = Depends(get_renderer),
    analyzer: VisionCall = Depends(get_analyzer),
    storage: StorageBackend = Depends(get_storage_dep),
    cache: ResourceCache = Depends(get_resource_cache),
):
    """Run the stored inputs again. The new session gets its own record."""
    original = await image_sets.get_image_set(db, tenant_id, record_id)
    if original is None:
        raise HTTPException(status_code=404, detail="Product image set not found")

    request = image_sets.params_to_request(original.request_params)
    title = f"{original.title} (regenerated)" if original.title else None
    return await _run_generation(request, tenant_id, db, renderer, analyzer, storage, cache, title=title)

"""
Persistence for generation sessions.

A record is created in "processing" before the angle loop starts and
settled afterwards. Status is "completed" only when every angle
completed; partial results are stored as "failed" with their images.
"""

import dataclasses
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.storage import StorageBackend
from ..models.domain import AngleStatus, AngleTask, GenerationRequest, normalize_camera_angles
from ..models.product_image import ProductImageSet

logger = logging.getLogger(__name__)

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


def session_status(tasks: list[AngleTask]) -> str:
    if tasks and all(t.status == AngleStatus.COMPLETED and t.image_url for t in tasks):
        return STATUS_COMPLETED
    return STATUS_FAILED


def request_to_params(request: GenerationRequest) -> dict:
    return dataclasses.asdict(request)


def params_to_request(params: dict) -> GenerationRequest:
    names = {f.name for f in dataclasses.fields(GenerationRequest)}
    return GenerationRequest(**{k: v for k, v in (params or {}).items() if k in names})


async def create_processing_record(
    db: AsyncSession,
    tenant_id: str,
    session_id: str,
    request: GenerationRequest,
    title: Optional[str] = None,
) -> ProductImageSet:
    """Insert the record every angle will be reported against."""
    angles = [a.value for a in normalize_camera_angles(request.camera_angles)]
    record = ProductImageSet(
        tenant_id=tenant_id,
        session_id=session_id,
        title=title or f"Product images {datetime.now(timezone.utc):%Y-%m-%d}",
        original_image_url=request.original_image_url,
        background_type=request.background_type or "studio",
        camera_angles=angles,
        output_size=request.output_size,
        use_logo=request.use_logo,
        logo_position=request.logo_position,
        additional_notes=request.additional_notes,
        request_params=request_to_params(request),
        generated_images=[
            {"angle": angle, "imageUrl": "", "status": STATUS_PROCESSING, "errorMessage": ""}
            for angle in angles
        ],
        status=STATUS_PROCESSING,
    )
    db.add(record)
    await db.flush()
    logger.info("Created product image set %s (session=%s)", record.id, session_id)
    return record


async def save_generation_result(
    db: AsyncSession,
    record: ProductImageSet,
    tasks: list[AngleTask],
) -> ProductImageSet:
    """Store per-angle outcomes and the mapped session status."""
    record.generated_images = [t.to_dict() for t in tasks]
    record.generated_image_url = next((t.image_url for t in tasks if t.image_url), "")
    record.status = session_status(tasks)
    record.error_message = next(
        (t.error_message for t in tasks if t.status == AngleStatus.FAILED and t.error_message), ""
    )
    await db.flush()
    return record


async def mark_failed(
    db: AsyncSession,
    record: ProductImageSet,
    error_message: str,
    tasks: Optional[list[AngleTask]] = None,
) -> ProductImageSet:
    """Session-level failure. Angle detail is kept when available."""
    if tasks:
        record.generated_images = [t.to_dict() for t in tasks]
    record.status = STATUS_FAILED
    record.error_message = error_message
    await db.flush()
    return record


async def get_image_set(db: AsyncSession, tenant_id: str, record_id: str) -> Optional[ProductImageSet]:
    result = await db.execute(
        select(ProductImageSet).where(
            ProductImageSet.id == record_id,
            ProductImageSet.tenant_id == tenant_id,
        )
    )
    return result.scalar_one_or_none()


def _list_filters(tenant_id: str, search: str = "", background_type: str = "", status: str = "") -> list:
    filters = [ProductImageSet.tenant_id == tenant_id]
    if search:
        filters.append(ProductImageSet.title.ilike(f"%{search}%"))
    if background_type:
        filters.append(ProductImageSet.background_type == background_type)
    if status:
        filters.append(ProductImageSet.status == status)
    return filters


async def list_image_sets(
    db: AsyncSession,
    tenant_id: str,
    limit: int = 20,
    page: int = 1,
    search: str = "",
    background_type: str = "",
    status: str = "",
) -> list[ProductImageSet]:
    """Newest first. search matches the title case-insensitively."""
    result = await db.execute(
        select(ProductImageSet)
        .where(*_list_filters(tenant_id, search, background_type, status))
        .order_by(ProductImageSet.created_at.desc(), ProductImageSet.id)
        .offset((max(page, 1) - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all())


async def count_image_sets(
    db: AsyncSession,
    tenant_id: str,
    search: str = "",
    background_type: str = "",
    status: str = "",
) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(ProductImageSet)
        .where(*_list_filters(tenant_id, search, background_type, status))
    )
    return result.scalar_one()


async def delete_image_set(db: AsyncSession, tenant_id: str, record_id: str) -> Optional[ProductImageSet]:
    """Remove the row. Returns the deleted record, or None if not found."""
    record = await get_image_set(db, tenant_id, record_id)
    if record is None:
        return None
    await db.delete(record)
    await db.flush()
    logger.info("Deleted product image set %s", record_id)
    return record


def generated_file_urls(record: ProductImageSet) -> list[str]:
    """Generated image URLs of a record, deduplicated. The original upload is not included."""
    urls = [record.generated_image_url] + [g.get("imageUrl") for g in record.generated_images or []]
    return list(dict.fromkeys(u for u in urls if u))


async def delete_generated_files(storage: StorageBackend, urls: list[str]) -> tuple[int, list[str]]:
    """
    Delete stored files. Returns (files deleted, urls not found). A failing
    delete is logged and counted as not found; the rest still run.
    """
    deleted = 0
    not_found = []
    for url in urls:
        try:
            removed = await storage.delete_file(url)
        except Exception as e:
            logger.warning("Failed to delete %s: %s", url, e)
            removed = False
        if removed:
            deleted += 1
        else:
            not_found.append(url)
    return deleted, not_found

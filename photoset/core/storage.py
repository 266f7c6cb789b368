"""
File storage abstraction. S3 OR local filesystem. Controlled by FF_USE_S3 flag.

Reference images (original upload, logo) are always read from the local
upload root; generated images go to the active backend.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Optional
from urllib.parse import urlparse

from .config import get_settings
from .errors import InvalidReferencePath
from .flags import get_flags
from ..models.domain import ReferenceImage

logger = logging.getLogger(__name__)

GENERATED_FOLDER = "product-images"

_EXTENSIONS = {
    "image/png": ".png",
    "image/webp": ".webp",
    "image/jpeg": ".jpg",
}


def mime_type_for(path: str) -> str:
    suffix = Path(path or "").suffix.lower()
    if suffix == ".png":
        return "image/png"
    if suffix == ".webp":
        return "image/webp"
    return "image/jpeg"


def extension_for(mime_type: str) -> str:
    return _EXTENSIONS.get(mime_type, ".jpg")


# ── Reference paths ──────────────────────────────────────────────────

def resolve_reference_path(url: str, root: Optional[str] = None) -> Path:
    """
    Map an /uploads/... path (or an http(s) URL whose path is /uploads/...)
    to a file under the storage root.

    Raises InvalidReferencePath for anything else, including paths that
    escape the root.
    """
    settings = get_settings()
    prefix = settings.public_upload_prefix
    base = Path(root or settings.storage_root).resolve()

    if not isinstance(url, str) or not url.strip():
        raise InvalidReferencePath("Invalid image URL path")

    raw = url.strip()
    if raw.lower().startswith(("http://", "https://")):
        parsed = urlparse(raw)
        if not parsed.netloc:
            raise InvalidReferencePath("Invalid image URL")
        raw = parsed.path or ""

    if not raw.startswith(prefix):
        raise InvalidReferencePath(f"Only local upload paths are supported ({prefix}...)")

    relative = PurePosixPath(raw[len(prefix):])
    if not relative.parts or ".." in relative.parts:
        raise InvalidReferencePath("Reference path escapes the storage root")

    path = (base / Path(*relative.parts)).resolve()
    if base != path and base not in path.parents:
        raise InvalidReferencePath("Reference path escapes the storage root")
    return path


def read_reference(url: str, root: Optional[str] = None) -> ReferenceImage:
    """Load a reference image. Raises InvalidReferencePath if it is missing."""
    path = resolve_reference_path(url, root)
    if not path.is_file():
        raise InvalidReferencePath(f"Reference image not found: {url}")
    return ReferenceImage(data=path.read_bytes(), mime_type=mime_type_for(path.name), url=url)


# ── Backends for generated images ────────────────────────────────────

class StorageBackend(ABC):
    @abstractmethod
    async def save_image(self, data: bytes, mime_type: str, folder: str = GENERATED_FOLDER) -> str:
        """Store image bytes. Returns the URL/path to the stored file."""
        ...

    @abstractmethod
    async def get_url(self, key: str) -> str:
        """Get public/accessible URL for a stored file."""
        ...

    @abstractmethod
    async def delete_file(self, url: str) -> bool:
        """Delete a file by the URL save_image returned. False if it is not there."""
        ...


class S3Storage(StorageBackend):
    def __init__(self):
        self._client = None

    def _get_client(self):
        if self._client is None:
            import boto3

            settings = get_settings()
            kwargs = {"region_name": settings.aws_region}
            if settings.aws_access_key_id:
                kwargs["aws_access_key_id"] = settings.aws_access_key_id
                kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
            self._client = boto3.client("s3", **kwargs)
        return self._client

    async def save_image(self, data: bytes, mime_type: str, folder: str = GENERATED_FOLDER) -> str:
        settings = get_settings()
        key = f"{folder}/{uuid.uuid4().hex}{extension_for(mime_type)}".strip("/")

        # boto3 is blocking.
        await asyncio.to_thread(
            self._get_client().put_object,
            Bucket=settings.s3_bucket_name,
            Key=key,
            Body=data,
            ContentType=mime_type,
        )
        logger.info("Uploaded to S3: %s", key)
        return await self.get_url(key)

    async def get_url(self, key: str) -> str:
        settings = get_settings()
        return f"https://{settings.s3_bucket_name}.s3.{settings.aws_region}.amazonaws.com/{key}"

    async def delete_file(self, url: str) -> bool:
        prefix = await self.get_url("")
        if not url or not url.startswith(prefix) or url == prefix:
            return False
        key = url[len(prefix):]
        await asyncio.to_thread(
            self._get_client().delete_object, Bucket=get_settings().s3_bucket_name, Key=key,
        )
        logger.info("Deleted from S3: %s", key)
        return True


class LocalStorage(StorageBackend):
    def __init__(self, base_path: Optional[str] = None):
        self.base_path = Path(base_path or get_settings().storage_root)

    async def save_image(self, data: bytes, mime_type: str, folder: str = GENERATED_FOLDER) -> str:
        dir_path = self.base_path / folder if folder else self.base_path
        dir_path.mkdir(parents=True, exist_ok=True)

        filename = f"{uuid.uuid4().hex}{extension_for(mime_type)}"
        (dir_path / filename).write_bytes(data)

        key = f"{folder}/{filename}" if folder else filename
        logger.info("Saved locally: %s", dir_path / filename)
        return await self.get_url(key)

    async def get_url(self, key: str) -> str:
        return f"{get_settings().public_upload_prefix}{key}"

    async def delete_file(self, url: str) -> bool:
        try:
            path = resolve_reference_path(url, str(self.base_path))
        except InvalidReferencePath:
            return False
        if not path.is_file():
            return False
        path.unlink()
        logger.info("Deleted locally: %s", path)
        return True


def get_storage() -> StorageBackend:
    """Return the active storage backend based on feature flags."""
    if get_flags().use_s3:
        return S3Storage()
    return LocalStorage()

"""
Logo compositing — overlays the brand logo on a generated image with Pillow.

Never fails an angle: on any error the uncomposited image is returned.
"""

import asyncio
import io
import logging
from typing import Optional

import httpx
from PIL import Image

from ..core.storage import read_reference
from ..models.domain import RenderedImage

logger = logging.getLogger(__name__)

LOGO_PADDING = 30
LOGO_MAX_RATIO = 0.15
LOGO_MAX_PX = 200

_FORMATS = {"image/png": "PNG", "image/webp": "WEBP", "image/jpeg": "JPEG"}


def logo_box(image_size: tuple[int, int], logo_size: tuple[int, int], position: str) -> tuple[int, int]:
    """Top-left corner of the logo for a position name."""
    width, height = image_size
    logo_w, logo_h = logo_size
    right = width - logo_w - LOGO_PADDING
    bottom = height - logo_h - LOGO_PADDING

    if position == "top-left":
        left, top = LOGO_PADDING, LOGO_PADDING
    elif position == "top-right":
        left, top = right, LOGO_PADDING
    elif position == "bottom-left":
        left, top = LOGO_PADDING, bottom
    elif position == "center":
        left, top = round((width - logo_w) / 2), round((height - logo_h) / 2)
    else:
        left, top = right, bottom
    return max(0, left), max(0, top)


def overlay_logo(image: RenderedImage, logo_bytes: bytes, position: str) -> RenderedImage:
    """Sync Pillow composite. Raises on undecodable input."""
    with Image.open(io.BytesIO(image.data)) as base_src, Image.open(io.BytesIO(logo_bytes)) as logo_src:
        base = base_src.convert("RGBA")
        width, height = base.size

        max_w = min(round(width * LOGO_MAX_RATIO), LOGO_MAX_PX)
        max_h = min(round(height * LOGO_MAX_RATIO), LOGO_MAX_PX)
        logo = logo_src.convert("RGBA")
        logo.thumbnail((max_w, max_h))

        base.alpha_composite(logo, dest=logo_box((width, height), logo.size, position))

        fmt = _FORMATS.get(image.mime_type, "PNG")
        out = io.BytesIO()
        if fmt == "JPEG":
            base.convert("RGB").save(out, fmt)
        else:
            base.save(out, fmt)
    return RenderedImage(data=out.getvalue(), mime_type=image.mime_type if image.mime_type in _FORMATS else "image/png")


class LogoCompositor:
    """Loads a logo once per session and composites it onto each angle."""

    def __init__(self, logo_url: str, position: str):
        self.logo_url = logo_url
        self.position = position
        self._logo: Optional[bytes] = None

    async def _load_logo(self) -> bytes:
        if self._logo is not None:
            return self._logo
        if self.logo_url.lower().startswith(("http://", "https://")) and "/uploads/" not in self.logo_url:
            async with httpx.AsyncClient(timeout=httpx.Timeout(30)) as client:
                resp = await client.get(self.logo_url)
                resp.raise_for_status()
                self._logo = resp.content
        else:
            self._logo = read_reference(self.logo_url).data
        return self._logo

    async def composite(self, image: RenderedImage) -> RenderedImage:
        try:
            logo = await self._load_logo()
            return await asyncio.to_thread(overlay_logo, image, logo, self.position)
        except Exception as e:
            logger.warning("Logo overlay failed, keeping original image: %s", e)
            return image

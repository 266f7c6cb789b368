"""
Render collaborator — Google Gemini native image generation.

Async wrapper around the sync google-genai SDK (runs in a worker thread).
Exactly one generated image per successful call; a response without an
image part is a RenderFailure.
"""

import asyncio
import logging
from typing import Optional, Protocol

from ..core.config import get_settings
from ..core.errors import RenderFailure
from ..models.domain import ReferenceImage, RenderedImage

logger = logging.getLogger(__name__)

NO_IMAGE_MESSAGE = "No image generated in response"


class Renderer(Protocol):
    async def render(self, prompt: str, references: list[ReferenceImage]) -> RenderedImage:
        ...


_gemini_client = None


def _get_gemini_client():
    """Lazy-load and cache the google-genai client as a singleton."""
    global _gemini_client
    if _gemini_client is not None:
        return _gemini_client
    from google import genai

    settings = get_settings()
    if not settings.gemini_api_key:
        raise ValueError("GEMINI_API_KEY is required for image generation")
    _gemini_client = genai.Client(api_key=settings.gemini_api_key)
    return _gemini_client


def extract_image(response) -> Optional[RenderedImage]:
    """First inline image part of a generate_content response, if any."""
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is None or not inline.data:
                continue
            mime_type = inline.mime_type or "image/png"
            if mime_type.startswith("image/"):
                return RenderedImage(data=inline.data, mime_type=mime_type)
    return None


class GeminiRenderer:
    """Renders one image from a prompt plus ordered reference images."""

    def __init__(self, model: Optional[str] = None, client=None):
        self.model = model or get_settings().image_model
        self._client = client

    def _sync_render(self, prompt: str, references: list[ReferenceImage]) -> RenderedImage:
        from google.genai import types

        client = self._client or _get_gemini_client()
        contents = [
            types.Part.from_bytes(data=ref.data, mime_type=ref.mime_type)
            for ref in references
        ]
        contents.append(prompt)

        response = client.models.generate_content(
            model=self.model,
            contents=contents,
            config=types.GenerateContentConfig(
                response_modalities=["TEXT", "IMAGE"],
            ),
        )

        image = extract_image(response)
        if image is None:
            logger.warning("Gemini returned no image (model=%s)", self.model)
            raise RenderFailure(NO_IMAGE_MESSAGE)
        return image

    async def render(self, prompt: str, references: list[ReferenceImage]) -> RenderedImage:
        try:
            return await asyncio.to_thread(self._sync_render, prompt, references)
        except RenderFailure:
            raise
        except Exception as e:
            raise RenderFailure(str(e) or e.__class__.__name__) from e

"""Pytest configuration and fixtures for the product photo pipeline."""

import io
import json
from pathlib import Path
from typing import Callable, Optional

import pytest
from PIL import Image

from photoset.core.config import get_settings
from photoset.core.flags import get_flags
from photoset.core.storage import GENERATED_FOLDER, StorageBackend
from photoset.models.domain import ReferenceImage, RenderedImage


def make_png(size: tuple[int, int] = (64, 64), color=(200, 30, 30, 255)) -> bytes:
    """Small solid-color RGBA PNG."""
    out = io.BytesIO()
    Image.new("RGBA", size, color).save(out, "PNG")
    return out.getvalue()


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point storage at a temp dir and reset cached settings/flags per test."""
    root = tmp_path / "uploads"
    root.mkdir()
    monkeypatch.setenv("STORAGE_ROOT", str(root))
    monkeypatch.setenv("GEMINI_API_KEY", "")
    monkeypatch.setenv("FF_USE_S3", "false")
    monkeypatch.setenv("FF_USE_REDIS", "false")
    monkeypatch.setenv("FF_DEBUG_PROMPT", "false")
    get_settings.cache_clear()
    get_flags.cache_clear()
    yield root
    get_settings.cache_clear()
    get_flags.cache_clear()


@pytest.fixture
def storage_root(isolated_settings) -> Path:
    return isolated_settings


@pytest.fixture
def original_image_url(storage_root) -> str:
    """A product photo saved under the upload root."""
    folder = storage_root / "products"
    folder.mkdir()
    (folder / "mug.png").write_bytes(make_png())
    return "/uploads/products/mug.png"


@pytest.fixture
def original_image(original_image_url) -> ReferenceImage:
    return ReferenceImage(data=make_png(), mime_type="image/png", url=original_image_url)


class FakeRenderer:
    """
    Renderer double. `outcomes` is consumed one entry per call: an
    Exception is raised, anything else is ignored and an image returned.
    Once exhausted, every call succeeds.
    """

    def __init__(self, outcomes: Optional[list] = None, fail_when: Optional[Callable[[str], bool]] = None):
        self.outcomes = list(outcomes or [])
        self.fail_when = fail_when
        self.calls: list[tuple[str, list[ReferenceImage]]] = []

    async def render(self, prompt: str, references: list[ReferenceImage]) -> RenderedImage:
        self.calls.append((prompt, list(references)))
        if self.fail_when is not None and self.fail_when(prompt):
            raise RuntimeError("render rejected")
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
        # Distinct bytes per call so chained references can be told apart.
        shade = (len(self.calls) * 20) % 255
        return RenderedImage(data=make_png(color=(shade, shade, shade, 255)), mime_type="image/png")


class FakeStorage(StorageBackend):
    def __init__(self):
        self.saved: dict[str, bytes] = {}

    async def save_image(self, data: bytes, mime_type: str, folder: str = GENERATED_FOLDER) -> str:
        key = f"{folder}/{len(self.saved) + 1}.png"
        self.saved[key] = data
        return await self.get_url(key)

    async def get_url(self, key: str) -> str:
        return f"/uploads/{key}"

    async def delete_file(self, url: str) -> bool:
        return self.saved.pop(url.removeprefix("/uploads/"), None) is not None


class RecordingNotifier:
    def __init__(self):
        self.events: list[tuple[str, object]] = []

    async def __call__(self, event_type: str, data=None) -> None:
        self.events.append((event_type, data))

    @property
    def types(self) -> list[str]:
        return [e for e, _ in self.events]


ANALYSIS_JSON = {
    "productType": "ceramic coffee mug",
    "category": "kitchenware",
    "material": "glazed ceramic",
    "texture": "smooth glossy glaze",
    "shape": "cylindrical with C-shaped handle",
    "colors": ["matte red", "white rim"],
    "features": ["C-shaped handle", "white rim", "embossed logo"],
    "patterns": "embossed circular logo",
    "summary": "A red ceramic coffee mug with a white rim and embossed logo.",
}


def make_analyzer(reply: Optional[str] = None, error: Optional[Exception] = None):
    """Vision call double returning a fixed reply and recording prompts."""
    calls: list[str] = []

    async def analyzer(prompt: str, images: list[tuple[bytes, str]]) -> str:
        calls.append(prompt)
        if error is not None:
            raise error
        return json.dumps(ANALYSIS_JSON) if reply is None else reply

    analyzer.calls = calls
    return analyzer


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def analyzer():
    return make_analyzer()

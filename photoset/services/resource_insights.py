"""
Brand resource insights — short vision summaries of uploaded brand assets
(moodboards, packaging shots, previous campaigns) appended to brand context.

Best effort: a resource that cannot be read or analysed becomes a
placeholder note, never a request failure.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..core.cache import NullResourceCache, ResourceCache
from ..core.config import get_settings
from ..core.storage import read_reference
from .product_analysis import VisionCall
from . import llm

logger = logging.getLogger(__name__)

COMPACT_MAX_LENGTH = 500
BULLET_MAX_LENGTH = 160
NOTE_MAX_LENGTH = 280
MAX_BULLETS = 3

UNAVAILABLE_NOTE = "This resource could not be analysed right now."

RESOURCE_PROMPT = (
    "Analyse this brand resource to support multi-channel marketing content. "
    "Summarise briefly in 4 points: visual identity, tone/style, usable messages, "
    "execution notes. Answer clearly and concisely."
)

_BULLET_PREFIX = re.compile(r"^[-*\d.)\s]+")


@dataclass(frozen=True)
class ResourceInsight:
    analysis: str
    bullets: tuple[str, ...] = ()

    @property
    def note(self) -> str:
        return " | ".join(self.bullets) if self.bullets else self.analysis


def shorten_text(value: Optional[str], max_length: int = 260) -> str:
    text = " ".join(str(value or "").split())
    if len(text) <= max_length:
        return text
    return text[: max_length - 3].strip() + "..."


def extract_top_bullet_lines(text: Optional[str], max_items: int = 2) -> list[str]:
    lines = [_BULLET_PREFIX.sub("", line).strip() for line in str(text or "").splitlines()]
    return [shorten_text(line, BULLET_MAX_LENGTH) for line in lines if line][:max_items]


def is_upload_resource(url: str) -> bool:
    return isinstance(url, str) and url.strip().startswith(get_settings().public_upload_prefix)


async def analyze_resource(
    url: str,
    vision: Optional[VisionCall] = None,
    cache: Optional[ResourceCache] = None,
) -> ResourceInsight:
    """Analyse one uploaded resource, memoised by URL."""
    if cache is None:
        cache = NullResourceCache()
    cached = cache.get(url)
    if cached is not None:
        return cached

    image = read_reference(url)
    call = vision or llm.chat_with_vision
    analysis = await call(RESOURCE_PROMPT, [(image.data, image.mime_type)])

    insight = ResourceInsight(
        analysis=shorten_text(analysis, COMPACT_MAX_LENGTH),
        bullets=tuple(extract_top_bullet_lines(analysis, MAX_BULLETS)),
    )
    cache.set(url, insight)
    return insight


async def build_resource_insights(
    urls: list[str],
    vision: Optional[VisionCall] = None,
    cache: Optional[ResourceCache] = None,
) -> str:
    """Summary block for every /uploads/ resource, or "" if there are none."""
    notes = []
    for url in urls or []:
        if not is_upload_resource(url):
            continue
        label = url.rsplit("/", 1)[-1]
        try:
            note = (await analyze_resource(url, vision=vision, cache=cache)).note
        except Exception as e:
            logger.warning("Brand resource analysis failed (%s): %s", url, e)
            note = UNAVAILABLE_NOTE
        if note:
            notes.append(f"- [{len(notes) + 1}] {label}: {shorten_text(note, NOTE_MAX_LENGTH)}")

    if not notes:
        return ""
    return "\n".join([
        "### Resource insights",
        "Insights from the brand's uploaded resources:",
        *notes,
        "Use these insights consistently with the brand identity.",
    ])

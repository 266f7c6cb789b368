"""
Brand context — formats brand settings into a brand-voice block and
sanitizes that block before it reaches an image prompt.

Brand-voice text is usually written for copywriting and can carry style
words ("anime", "watercolor", ...) that pull the renderer away from
photorealism. Those words are stripped unless the user asked for them
in visual style or notes.

Usage:
    text = format_brand_for_prompt(brand)
    result = sanitize_brand_context(text, visual_style=..., additional_notes=...)
"""

import logging
import re
import unicodedata
from typing import Optional

from ..models.domain import BrandContextSanitization
from .intent import match_any_keyword

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 1200
TRUNCATION_MARKER = "..."

NOISY_STYLE_SIGNALS = (
    "anime", "lofi", "cartoon", "chibi", "illustration", "2d", "comic", "manga",
    "pixel art", "cell shading", "vector style", "flat design", "watercolor",
    "oil painting", "sketch",
)


def format_brand_for_prompt(brand: Optional[dict]) -> str:
    """
    Format brand settings into a text block for image prompts.
    Colors, fonts and keywords are capped so the block stays short.
    """
    if not brand:
        return ""

    parts = []

    if brand.get("name"):
        parts.append(f"Brand: {brand['name']}")
    if brand.get("identity"):
        parts.append(f"Identity: {brand['identity']}")
    if brand.get("description"):
        desc = brand["description"]
        if len(desc) > 300:
            desc = desc[:297] + "..."
        parts.append(f"About: {desc}")
    if brand.get("industry"):
        parts.append(f"Industry: {brand['industry']}")
    if brand.get("tone_of_voice"):
        parts.append(f"Tone of voice: {brand['tone_of_voice']}")
    if brand.get("colors"):
        parts.append(f"Brand colors: {', '.join(brand['colors'][:6])}")
    if brand.get("fonts"):
        parts.append(f"Brand fonts: {', '.join(brand['fonts'][:4])}")
    if brand.get("keywords"):
        parts.append(f"Keywords: {', '.join(brand['keywords'][:8])}")
    if brand.get("product_groups"):
        parts.append(f"Product groups: {', '.join(brand['product_groups'][:6])}")
    if brand.get("strengths"):
        parts.append(f"Strengths: {brand['strengths']}")

    return "\n".join(parts)


def _requested_signals(visual_style: str, additional_notes: str) -> set[str]:
    user_text = " ".join(f for f in (visual_style, additional_notes) if f)
    return {s for s in NOISY_STYLE_SIGNALS if match_any_keyword(user_text, (s,))}


def _fold_with_index(line: str) -> tuple[str, list[int]]:
    """Diacritic-free lowercase view of line, with the source index of each char."""
    folded: list[str] = []
    index: list[int] = []
    for i, ch in enumerate(line):
        for part in unicodedata.normalize("NFD", ch):
            if unicodedata.combining(part):
                continue
            for c in ("d" if part in "đĐ" else part.lower()):
                folded.append(c)
                index.append(i)
    return "".join(folded), index


def _remove_token(line: str, token: str) -> tuple[str, int]:
    """Remove token as a whole word, matching accented spellings too."""
    folded, index = _fold_with_index(line)
    pattern = r"(?<![a-z0-9])" + re.escape(token).replace(r"\ ", r"\s+") + r"(?![a-z0-9])"
    spans = [(index[m.start()], index[m.end() - 1] + 1) for m in re.finditer(pattern, folded)]
    for start, end in reversed(spans):
        # Take trailing combining marks of a decomposed last letter too.
        while end < len(line) and unicodedata.combining(line[end]):
            end += 1
        line = line[:start] + line[end:]
    return line, len(spans)


def _clean_line(line: str) -> str:
    """Tidy separators left behind by a removed token."""
    line = re.sub(r"\s+([,.;:])", r"\1", line)
    line = re.sub(r"([,;|/])\s*(?:[,;|/]\s*)+", r"\1 ", line)
    line = re.sub(r"\s{2,}", " ", line)
    return line.strip(" \t,;:|/-")


def sanitize_brand_context(
    brand_context: Optional[str],
    visual_style: str = "",
    additional_notes: str = "",
    max_length: int = DEFAULT_MAX_LENGTH,
) -> BrandContextSanitization:
    """
    Strip noisy style tokens from brand text, line by line.

    A token survives only if the user explicitly requested it. Lines left
    with no letters or digits are dropped. The result is capped at
    max_length with a trailing "...".
    """
    raw = brand_context if isinstance(brand_context, str) else ""
    if not raw.strip():
        return BrandContextSanitization(text="", removed_signals=(), original_length=len(raw))

    keep = _requested_signals(visual_style, additional_notes)
    removed: list[str] = []
    lines = []

    for line in re.split(r"\r?\n+", raw):
        line = line.strip()
        if not line:
            continue
        touched = False
        for signal in NOISY_STYLE_SIGNALS:
            if signal in keep:
                continue
            line, count = _remove_token(line, signal)
            if not count:
                continue
            if signal not in removed:
                removed.append(signal)
            touched = True
        if touched:
            line = _clean_line(line)
        if re.search(r"[a-z0-9]", line, flags=re.IGNORECASE):
            lines.append(line)

    text = re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()
    if len(text) > max_length:
        text = text[:max_length].strip() + TRUNCATION_MARKER

    if removed:
        logger.info("Brand context: removed style signals %s", ", ".join(removed))

    return BrandContextSanitization(
        text=text,
        removed_signals=tuple(removed),
        original_length=len(raw),
    )

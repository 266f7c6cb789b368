"""
Intent resolution — turns free-text request fields into IntentSignals.

Matching is keyword-based over a normalized form of the text (diacritics
stripped, case-folded, whitespace collapsed) with word-boundary-aware
patterns, so "use" never matches inside "house". Every signal owns its own
keyword list covering English and Vietnamese vocabulary.

The taxonomy lives in rule tables below; one generic matcher consumes them.
Action priority is the order of ACTION_RULES.
"""

import logging
import re
import unicodedata
from functools import lru_cache
from typing import Iterable, Optional

from ..models.domain import ActionType, IntentSignals

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY_MAX_LENGTH = 700

# ── Rule tables ───────────────────────────────────────────────────────

OUTDOOR_KEYWORDS = (
    "outdoor", "outside", "open air", "nature", "natural park", "street", "garden",
    "beach", "sunlight",
    "ngoai troi", "ngoai canh", "thien nhien", "cong vien", "duong pho", "san vuon",
    "bo bien", "anh sang tu nhien",
)

NO_PEOPLE_KEYWORDS = (
    "no people", "without people", "without person", "no human", "no hands",
    "khong nguoi", "khong co nguoi", "khong ban tay",
)

HUMAN_KEYWORDS = (
    "human interaction", "people interacting", "person", "people", "hands", "holding",
    "using", "diner", "customer", "server", "chef",
    "co nguoi", "con nguoi", "tuong tac", "ban tay", "cam tren tay", "su dung",
    "thuc khach", "khach hang", "phuc vu", "dau bep",
)

# Ordered by resolution priority: eat > drink > cook > serve > use.
ACTION_RULES: tuple[tuple[ActionType, tuple[str, ...]], ...] = (
    (ActionType.EAT, (
        "eat", "eating", "bite", "biting", "taste", "tasting", "consume", "consuming",
        "thuong thuc", "an uong", "nham nhi", "dang an", "dang uong", "nguoi an", "nguoi uong",
    )),
    (ActionType.DRINK, (
        "drink", "drinking", "sip", "sipping", "beverage", "cocktail", "coffee drinking",
        "uong", "dang uong", "nham nhi", "thuong thuc do uong",
    )),
    (ActionType.COOK, (
        "cook", "cooking", "prepare", "preparing", "grill", "grilling", "fry", "frying",
        "roast", "roasting", "bake", "baking", "boil", "boiling", "plate", "plating",
        "nau", "nau nuong", "che bien", "nuong", "ran", "chien", "xao", "hap", "dau bep",
        "phuc vu mon",
    )),
    (ActionType.SERVE, (
        "serve", "serving", "presentation", "plated service", "table service",
        "phuc vu", "bay mon", "mang mon", "don mon",
    )),
    (ActionType.USE, (
        "use", "using", "in use", "hands-on", "demonstration", "actively used",
        "su dung", "dang su dung", "trai nghiem",
    )),
)

STYLIZED_KEYWORDS = (
    "anime", "cartoon", "chibi", "illustration", "2d", "lofi", "manga", "comic",
)

PHOTOREAL_KEYWORDS = (
    "photoreal", "photo realistic", "realistic", "hyperreal", "true to life",
    "commercial photography",
    "chan thuc", "nhu that", "anh that", "thuc te",
)

LIFESTYLE_BACKGROUND = "lifestyle"
OUTDOOR_BACKGROUND = "outdoor"
ACTION_BACKGROUND = "action"


# ── Matcher ───────────────────────────────────────────────────────────

def normalize_text(value: Optional[str]) -> str:
    """Strip diacritics, case-fold and collapse whitespace."""
    text = unicodedata.normalize("NFD", str(value or ""))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = text.replace("đ", "d").replace("Đ", "d")
    return re.sub(r"\s+", " ", text.lower()).strip()


@lru_cache(maxsize=1024)
def _keyword_pattern(keyword: str) -> Optional[re.Pattern]:
    normalized = normalize_text(keyword)
    if not normalized:
        return None
    return re.compile(r"(^|[^a-z0-9])" + re.escape(normalized) + r"([^a-z0-9]|$)")


def match_any_keyword(text: str, keywords: Iterable[str]) -> bool:
    """True if any keyword appears in text as a whole word or phrase."""
    normalized = normalize_text(text)
    for keyword in keywords:
        pattern = _keyword_pattern(keyword)
        if pattern is not None and pattern.search(normalized):
            return True
    return False


def matched_keywords(text: str, keywords: Iterable[str]) -> list[str]:
    """Every keyword from the list that appears in text."""
    return [k for k in keywords if match_any_keyword(text, (k,))]


def resolve_actions(text: str) -> tuple[ActionType, ...]:
    """All requested actions, highest priority first."""
    return tuple(action for action, keywords in ACTION_RULES if match_any_keyword(text, keywords))


# ── Resolver ──────────────────────────────────────────────────────────

def build_scene_summary(
    background_type: str = "",
    custom_background: str = "",
    usage_purpose: str = "",
    display_info: str = "",
    visual_style: str = "",
    additional_notes: str = "",
    target_audience: str = "",
    product_type: str = "",
    max_length: int = DEFAULT_SUMMARY_MAX_LENGTH,
) -> str:
    parts = [
        f"Background={background_type}" if background_type else "Background=studio",
        f"Custom={custom_background}" if custom_background else None,
        f"Purpose={usage_purpose}" if usage_purpose else None,
        f"Display={display_info}" if display_info else None,
        f"Style={visual_style}" if visual_style else None,
        f"Audience={target_audience}" if target_audience else None,
        f"Notes={additional_notes}" if additional_notes else None,
        f"Product={product_type}" if product_type else None,
    ]
    return " | ".join(p for p in parts if p)[:max_length]


def resolve_intent(
    background_type: str = "",
    custom_background: str = "",
    additional_notes: str = "",
    usage_purpose: str = "",
    display_info: str = "",
    visual_style: str = "",
    target_audience: str = "",
    product_type: str = "",
    max_summary_length: int = DEFAULT_SUMMARY_MAX_LENGTH,
) -> IntentSignals:
    """
    Resolve IntentSignals from the request's free-text fields.

    Pure function. Target audience and product type only feed the scene
    summary: they describe who buys the product, not what the scene shows.
    """
    background = normalize_text(background_type)
    text = normalize_text(" ".join(
        f for f in (
            background_type, custom_background, additional_notes,
            usage_purpose, display_info, visual_style,
        ) if f
    ))

    wants_outdoor = background == OUTDOOR_BACKGROUND or match_any_keyword(text, OUTDOOR_KEYWORDS)

    actions = resolve_actions(text)
    background_action = background == ACTION_BACKGROUND
    wants_action = background_action or bool(actions)
    if actions:
        action_type = actions[0]
    elif background_action:
        action_type = ActionType.USE
    else:
        action_type = ActionType.NONE

    explicit_no_people = match_any_keyword(text, NO_PEOPLE_KEYWORDS)
    wants_human_presence = not explicit_no_people and (
        match_any_keyword(text, HUMAN_KEYWORDS)
        or background == LIFESTYLE_BACKGROUND
        or action_type != ActionType.NONE
    )

    stylized = match_any_keyword(text, STYLIZED_KEYWORDS)
    is_photoreal_priority = match_any_keyword(text, PHOTOREAL_KEYWORDS) or not stylized

    summary = build_scene_summary(
        background_type=background_type,
        custom_background=custom_background,
        usage_purpose=usage_purpose,
        display_info=display_info,
        visual_style=visual_style,
        additional_notes=additional_notes,
        target_audience=target_audience,
        product_type=product_type,
        max_length=max_summary_length,
    )

    signals = IntentSignals(
        wants_outdoor=wants_outdoor,
        wants_human_presence=wants_human_presence,
        wants_action=wants_action,
        action_type=action_type,
        is_photoreal_priority=is_photoreal_priority,
        requested_scene_summary=summary,
        requested_actions=actions,
    )
    logger.debug("Resolved intent: %s", signals.summary_line())
    return signals


def build_user_scene_intent_block(signals: IntentSignals) -> str:
    """Bullet block restating the resolved intent for the render prompt."""
    action = signals.action_type.value if signals.action_type != ActionType.NONE else "use"
    lines = [
        f"Requested scene summary: {signals.requested_scene_summary}"
        if signals.requested_scene_summary
        else "Requested scene summary: follow user context for this generation.",
        "Outdoor intent: REQUIRED. Build believable outdoor depth and natural light."
        if signals.wants_outdoor
        else "Outdoor intent: NOT requested. Keep non-outdoor context unless explicitly requested.",
        "Human presence intent: ALLOWED/REQUESTED. Include natural interaction while preserving full product recognizability."
        if signals.wants_human_presence
        else "Human presence intent: NOT requested. Keep scene free of people and hands unless explicitly requested.",
        f"Action intent: REQUESTED ({action}). Keep action natural and subordinate to product identity."
        if signals.wants_action
        else "Action intent: NOT requested. Keep scene static and product-focused.",
        "Conflict rule: do not preserve original reference background when it conflicts with this USER SCENE INTENT.",
    ]
    return "\n".join(f"- {line}" for line in lines)

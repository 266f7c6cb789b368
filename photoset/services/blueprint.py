"""
Scene blueprint — one deterministic scene/lighting/composition description
plus the hard negative rules shared by every angle of a session.

Generic guardrail rules are generated from templates, then reconciled
against IntentSignals: a rule that would block something the user
explicitly asked for (outdoor, people, the requested action) is dropped.
"""

import logging
import re
from typing import Callable, Iterable, Optional

from ..models.domain import (
    ActionType,
    BACKGROUND_DESCRIPTIONS,
    DEFAULT_BACKGROUND,
    IntentSignals,
    ProductAttributes,
    SceneBlueprint,
)
from .intent import normalize_text

logger = logging.getLogger(__name__)

# ── Rule templates ────────────────────────────────────────────────────

IDENTITY_RULE = (
    "Do not alter product identity: shape, material, colors, packaging details, "
    "logos, and label marks must stay consistent."
)
SUBSTITUTION_RULE = (
    "Do not replace the product with another variant, ingredient set, or unrelated object."
)
TEXT_RULE = "Do not generate text overlays, watermarks, or AI-invented brand marks."
PHOTOREAL_RULE = "Do not apply stylized filters, surreal grading, or non-photoreal rendering."
NO_OUTDOOR_RULE = "Do not force outdoor scenery when user intent does not request it."
NO_HUMAN_RULE = "Do not add people or hand interaction unless explicitly requested by user intent."
NO_ACTION_RULE = "Do not depict action or active product usage unless explicitly requested by user intent."
UNRELATED_ACTION_RULE = 'Do not depict actions unrelated to "{action}" when action is requested.'


def build_guardrail_rules(signals: IntentSignals) -> list[str]:
    """Generic hard negative rules, before reconciliation."""
    rules = [IDENTITY_RULE, SUBSTITUTION_RULE, TEXT_RULE]
    if signals.is_photoreal_priority:
        rules.append(PHOTOREAL_RULE)
    if not signals.wants_outdoor:
        rules.append(NO_OUTDOOR_RULE)
    if not signals.wants_human_presence:
        rules.append(NO_HUMAN_RULE)
    if not signals.wants_action:
        rules.append(NO_ACTION_RULE)
    elif signals.action_type != ActionType.NONE:
        rules.append(UNRELATED_ACTION_RULE.format(action=signals.action_type.value))
    return rules


# ── Reconciliation ────────────────────────────────────────────────────

_NEGATION = r"\b(do not|dont|don t|never|avoid|no)\b"


def _blocks(*terms: str) -> re.Pattern:
    return re.compile(_NEGATION + r".*\b(" + "|".join(terms) + r")\b")


_EXCEPTION = re.compile(r"\b(unrelated|except|other than)\b")

BLOCKS_OUTDOOR = _blocks("outdoor", "outdoors", "outside", "nature", "daylight")
BLOCKS_HUMAN = _blocks(
    "people", "person", "persons", "human", "humans", "hand", "hands", "model", "models",
    "customer", "customers", "chef", "chefs", "server", "servers",
)
BLOCKS_ANY_ACTION = _blocks(
    "action", "actions", "using", "usage", "eat", "eating", "drink", "drinking",
    "cook", "cooking", "serve", "serving",
)
BLOCKS_REQUESTED_ACTION: dict[ActionType, re.Pattern] = {
    ActionType.EAT: _blocks("eat", "eating", "bite", "biting", "consume", "consuming"),
    ActionType.DRINK: _blocks("drink", "drinking", "sip", "sipping", "beverage", "beverages"),
    ActionType.COOK: _blocks("cook", "cooking", "prepare", "preparing", "grill", "grilling",
                             "fry", "frying", "bake", "baking"),
    ActionType.SERVE: _blocks("serve", "serving", "plated", "presentation"),
    ActionType.USE: _blocks("use", "using", "hands on", "demonstration"),
}


def rule_conflicts(rule: str, signals: IntentSignals) -> bool:
    """True if the rule would block something the user explicitly requested."""
    text = normalize_text(rule)
    if signals.wants_outdoor and BLOCKS_OUTDOOR.search(text):
        return True
    if signals.wants_human_presence and BLOCKS_HUMAN.search(text):
        return True
    if signals.wants_action:
        if BLOCKS_ANY_ACTION.search(text) and not _EXCEPTION.search(text):
            return True
        # Exception wording does not save a rule that names the requested action.
        for action in signals.requested_actions or (signals.action_type,):
            pattern = BLOCKS_REQUESTED_ACTION.get(action)
            if pattern is not None and pattern.search(text):
                return True
    return False


def sanitize_hard_negative_rules(rules: Iterable[str], signals: IntentSignals) -> list[str]:
    """Drop conflicting rules, blanks and duplicates. Order is kept."""
    seen: set[str] = set()
    result = []
    for rule in rules:
        rule = str(rule or "").strip()
        if not rule:
            continue
        if rule_conflicts(rule, signals):
            logger.debug("Dropped conflicting rule: %s", rule)
            continue
        key = normalize_text(rule)
        if key in seen:
            continue
        seen.add(key)
        result.append(rule)
    return result


# ── Lighting decision table ───────────────────────────────────────────

OUTDOOR_LIGHTING = (
    "Use consistent natural daylight with coherent shadow direction, realistic contrast, "
    "and neutral white balance across all angles."
)
WARM_AMBIENT_LIGHTING = (
    "Use warm practical ambient lighting balanced by soft key fill to preserve realistic "
    "food/product textures and color fidelity across angles."
)
STUDIO_LIGHTING = (
    "Use consistent professional photorealistic lighting with stable shadow softness and "
    "white balance across all angle outputs."
)

LightingRule = Callable[[str, IntentSignals], bool]

LIGHTING_TABLE: tuple[tuple[LightingRule, str], ...] = (
    (lambda bg, s: s.wants_outdoor, OUTDOOR_LIGHTING),
    (lambda bg, s: bg in ("kitchen", "restaurant") or ActionType.COOK in s.requested_actions,
     WARM_AMBIENT_LIGHTING),
)


def choose_lighting(background_type: str, signals: IntentSignals) -> str:
    for predicate, lighting in LIGHTING_TABLE:
        if predicate(background_type, signals):
            return lighting
    return STUDIO_LIGHTING


# ── Builder ───────────────────────────────────────────────────────────

def build_scene_blueprint(
    attributes: ProductAttributes,
    signals: IntentSignals,
    background_type: str = DEFAULT_BACKGROUND,
    custom_background: str = "",
    usage_purpose: str = "",
    display_info: str = "",
    additional_notes: str = "",
    brand_context: str = "",
    extra_rules: Optional[Iterable[str]] = None,
) -> SceneBlueprint:
    """
    Build the session's SceneBlueprint. Deterministic: same inputs, same text.

    extra_rules are reconciled together with the generated ones.
    """
    background_type = background_type or DEFAULT_BACKGROUND
    background_desc = BACKGROUND_DESCRIPTIONS.get(background_type) or BACKGROUND_DESCRIPTIONS[DEFAULT_BACKGROUND]
    action = signals.action_type.value if signals.action_type != ActionType.NONE else "use"

    scene_parts = [
        f"Create one consistent {background_type} product scene ({background_desc}).",
        f"Preserve product appearance cues from analysis: {attributes.summary}." if attributes.summary else None,
        f"Primary custom scene direction: {custom_background}." if custom_background else None,
        f"Usage purpose cue: {usage_purpose}." if usage_purpose else None,
        f"Display presentation cue: {display_info}." if display_info else None,
        f"Additional user notes to honor: {additional_notes}." if additional_notes else None,
        "Environment should clearly read as outdoor with natural spatial depth and believable daylight."
        if signals.wants_outdoor
        else "Environment should stay aligned with requested non-outdoor context unless user explicitly asks otherwise.",
        "Human interaction is allowed where requested, while keeping the product fully recognizable and primary."
        if signals.wants_human_presence or signals.wants_action
        else "Keep the scene free of human interaction unless explicitly requested.",
        f"Requested action type: {action} (keep to this action, no substitutes)."
        if signals.wants_action
        else "No action requested; keep scene static and product-focused.",
        f"Optional low-priority brand context cue: {brand_context}." if brand_context else None,
    ]

    composition_parts = [
        "Keep product scale, identity cues, and relative placement to key scene elements stable across outputs.",
        "Only camera viewpoint/framing should vary between angles.",
        f"Respect display framing requirements: {display_info}." if display_info else None,
        "When action is requested, preserve action continuity without hiding core product identity features."
        if signals.wants_action
        else None,
    ]

    rules = build_guardrail_rules(signals) + list(extra_rules or [])
    hard_negative_rules = sanitize_hard_negative_rules(rules, signals)

    return SceneBlueprint(
        scene=" ".join(p for p in scene_parts if p),
        lighting=choose_lighting(background_type, signals),
        composition=" ".join(p for p in composition_parts if p),
        hard_negative_rules=tuple(hard_negative_rules),
    )

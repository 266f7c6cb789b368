"""
Domain guardrail registry.

A domain injector inspects the aggregated request context and returns an
extra prompt block (or "") when its domain applies. Register one with the
@guardrail_injector decorator. Food & beverage is the built-in domain.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from ..models.domain import ActionType, IntentSignals
from ..services.intent import match_any_keyword, matched_keywords
from .composer import compose_prompt_blocks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuardrailContext:
    """Everything an injector may look at."""
    text: str
    signals: IntentSignals = field(default_factory=IntentSignals)

    @classmethod
    def from_parts(cls, *parts: str, signals: IntentSignals | None = None) -> "GuardrailContext":
        return cls(text=" ".join(p for p in parts if p), signals=signals or IntentSignals())


GuardrailInjector = Callable[[GuardrailContext], str]

_injectors: dict[str, GuardrailInjector] = {}


def guardrail_injector(name: str):
    """Decorator: register a domain guardrail injector under a name."""

    def decorator(func: GuardrailInjector) -> GuardrailInjector:
        if name in _injectors:
            logger.warning("Guardrail injector '%s' already registered, overwriting", name)
        _injectors[name] = func
        return func

    return decorator


def get_injector_names() -> list[str]:
    return list(_injectors.keys())


def build_domain_guardrails(context: GuardrailContext) -> str:
    """Run every registered injector and compose the non-empty blocks."""
    blocks = []
    for name, injector in _injectors.items():
        block = injector(context)
        if block:
            logger.debug("Domain guardrails applied: %s", name)
            blocks.append(block)
    return compose_prompt_blocks(blocks)


# ── Food & beverage ───────────────────────────────────────────────────

FOOD_BEVERAGE_KEYWORDS = (
    "food", "foods", "beverage", "beverages", "drink", "drinks", "tea", "coffee",
    "cake", "cakes", "dessert", "desserts", "meal", "meals", "dish", "dishes",
    "restaurant", "kitchen", "menu", "snack", "snacks", "juice", "cocktail", "cocktails",
    "wine", "beer", "rice", "noodle", "noodles", "soup", "pizza", "burger", "burgers",
    "salad", "steak", "bakery", "bread", "pastry",
    "mon an", "do uong", "ca phe", "tra sua", "banh", "pho", "bun", "com tam", "dia com",
)

_EDIBLE_ACTIONS = (ActionType.EAT, ActionType.DRINK, ActionType.COOK, ActionType.SERVE)


def detect_food_beverage(text: str) -> bool:
    return match_any_keyword(text, FOOD_BEVERAGE_KEYWORDS)


@guardrail_injector("food_beverage")
def food_beverage_guardrails(context: GuardrailContext) -> str:
    if not detect_food_beverage(context.text):
        return ""

    logger.debug(
        "F&B context matched: %s", ", ".join(matched_keywords(context.text, FOOD_BEVERAGE_KEYWORDS)[:5])
    )
    lines = [
        "### F&B PHOTOREALISM GUARDRAILS",
        "- Keep food/beverage appearance physically plausible and appetizing.",
        "- Preserve realistic moisture, texture, steam, reflections, and ingredient structure.",
        "- Avoid CGI-looking or plastic-like food surfaces, over-smoothing, or surreal color shifts.",
        "- Keep correct real-world scale between dish, utensils, glassware, and hands.",
        "- Keep plating and garnishes coherent across all angles.",
    ]
    requested = [a for a in context.signals.requested_actions if a in _EDIBLE_ACTIONS]
    if context.signals.wants_action and requested:
        actions = ", ".join(a.value for a in requested)
        lines.append(
            f"- Requested {actions} action is allowed: show it naturally with believable bites, "
            "sips, or handling, without hiding the product."
        )
    return "\n".join(lines)

"""
Angle prompt — the full instruction text for one render attempt.

Every call restates the same identity anchor and scene blueprint verbatim;
only the angle delta, the anchor/follower role and the retry clause change.
Section order follows the instruction priority stated in the prompt:
safety > product identity > user scene intent > multi-angle consistency >
creative context > brand context.
"""

from dataclasses import dataclass

from ..models.domain import (
    CAMERA_ANGLE_PROMPTS,
    DEFAULT_OUTPUT_SIZE,
    OUTPUT_SIZES,
    CameraAngle,
    IntentSignals,
    SceneBlueprint,
)
from .composer import compose_prompt_blocks

INSTRUCTION_PRIORITY = (
    "Safety policy",
    "Product identity lock",
    "User scene intent",
    "Multi-angle consistency",
    "Creative context",
    "Brand context (non-conflicting)",
)

ANCHOR_ROLE = (
    "You are generating the canonical anchor image for this batch. This image will be "
    "used as the visual baseline for all other angles."
)
FOLLOWER_ROLE = (
    "You are generating a non-anchor angle. Match canonical and original references as "
    "closely as possible while changing only viewpoint."
)


@dataclass(frozen=True)
class AnglePromptContext:
    """Session-level prompt inputs, identical for every angle."""

    identity_anchor: str
    blueprint: SceneBlueprint
    signals: IntentSignals
    user_scene_intent_block: str = ""
    brand_context: str = ""
    creative_block: str = ""
    domain_guardrails: str = ""
    output_size: str = DEFAULT_OUTPUT_SIZE


def build_angle_notes(angle: CameraAngle, base_notes: str = "") -> str:
    """Base notes plus the framing hint for this angle."""
    requirement = f"Angle requirement: {angle.value} - {CAMERA_ANGLE_PROMPTS[angle]}"
    return f"{base_notes}\n\n{requirement}" if base_notes else requirement


def _reference_lines(has_canonical_ref: bool, has_previous_ref: bool) -> str:
    lines = ["- Image #1: ORIGINAL PRODUCT (highest priority identity lock)"]
    index = 2
    if has_canonical_ref:
        lines.append(f"- Image #{index}: CANONICAL ANCHOR IMAGE (second priority scene lock)")
        index += 1
    if has_previous_ref:
        lines.append(f"- Image #{index}: PREVIOUS ANGLE IMAGE (continuity support)")
    return "\n".join(lines)


def _retry_clause(retry_level: int) -> str:
    if retry_level <= 0:
        return ""
    return (
        f"### RETRY MODE (attempt {retry_level + 1})\n"
        "Be extra strict about identity continuity. Reduce any style drift. "
        "Keep all immutable attributes exactly consistent with references."
    )


def build_angle_prompt(
    context: AnglePromptContext,
    angle: CameraAngle,
    notes: str = "",
    is_anchor: bool = False,
    has_canonical_ref: bool = False,
    has_previous_ref: bool = False,
    retry_level: int = 0,
) -> str:
    size = OUTPUT_SIZES.get(context.output_size) or OUTPUT_SIZES[DEFAULT_OUTPUT_SIZE]
    blueprint = context.blueprint
    priority = "\n".join(f"{i}) {item}" for i, item in enumerate(INSTRUCTION_PRIORITY, 1))
    negative_rules = "\n".join(f"{i}. {rule}" for i, rule in enumerate(blueprint.hard_negative_rules, 1))

    header = f"""## MULTI-ANGLE PRODUCT IMAGE GENERATION (CONSISTENCY MODE)

### INSTRUCTION PRIORITY
{priority}

### GOAL
Generate one image that belongs to the same angle set with high consistency.
- Similarity target with sibling images: 80-90%
- Allowed variation: 10-20% ONLY (camera viewpoint/framing)

### SAFETY
- Keep the image safe for commercial use: no graphic, explicit, or hateful content.

### ATTACHED REFERENCE ORDER
{_reference_lines(has_canonical_ref, has_previous_ref)}

Reference usage policy:
- ORIGINAL and CANONICAL references are identity lock sources for product shape/material/colors/labels.
- PREVIOUS ANGLE reference is continuity support only.
- Do NOT preserve original reference background when it conflicts with USER SCENE INTENT.

### ROLE
{ANCHOR_ROLE if is_anchor else FOLLOWER_ROLE}"""

    identity = f"### IMMUTABLE PRODUCT IDENTITY\n{context.identity_anchor}"

    user_intent = (
        "### USER SCENE INTENT (HIGH PRIORITY)\n"
        f"{context.user_scene_intent_block or '- Follow user scene request while preserving product identity lock.'}\n"
        f"- Resolved intent signals: {context.signals.summary_line()}"
    )

    consistency = f"""### IMMUTABLE SCENE BLUEPRINT
- Scene: {blueprint.scene}
- Lighting: {blueprint.lighting}
- Composition: {blueprint.composition}

### ANGLE DELTA (ONLY THIS MAY CHANGE)
- Target camera angle: {angle.value}
- Framing guidance: {CAMERA_ANGLE_PROMPTS[angle]}"""

    negatives = f"### HARD NEGATIVE RULES\n{negative_rules}" if negative_rules else ""

    technical = f"""### TECHNICAL REQUIREMENTS
- Aspect ratio: {size.label} ({size.width}x{size.height})
- Style: Photorealistic professional commercial photography
- Keep natural and coherent shadows with unchanged scene context
- No text, no watermark, no AI-invented branding

### OPTIONAL USER NOTES
{notes or '(none)'}"""

    brand = f"### BRAND CONTEXT (LOW PRIORITY)\n{context.brand_context or '(none)'}"

    return compose_prompt_blocks([
        header,
        identity,
        user_intent,
        consistency,
        negatives,
        technical,
        context.domain_guardrails,
        _retry_clause(retry_level),
        context.creative_block,
        brand,
    ])

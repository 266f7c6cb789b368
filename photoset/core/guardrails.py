"""
Guardrails — request validation before any external call.

Layers:
  1. Required fields (original image, custom background text)
  2. Enum surfaces (background type, output size, logo position)
  3. Free-text length limits
  4. Prompt-injection patterns in free text (logged, not blocked)

Camera angles are normalized separately; unknown angles are dropped, not rejected.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..models.domain import (
    BACKGROUND_DESCRIPTIONS,
    LOGO_POSITIONS,
    OUTPUT_SIZES,
    GenerationRequest,
)

logger = logging.getLogger(__name__)

# ── Configuration ─────────────────────────────────────────────────────

MAX_TEXT_FIELD_LENGTH = 2000     # Any single creative / notes field
MAX_BRAND_CONTEXT_LENGTH = 20000 # Raw brand text before sanitization
MAX_BRAND_RESOURCES = 10

TEXT_FIELDS = (
    "custom_background",
    "usage_purpose",
    "display_info",
    "ad_intensity",
    "typography_guidance",
    "target_audience",
    "visual_style",
    "realism_priority",
    "additional_notes",
)

INJECTION_PATTERNS = (
    r"ignore\s+(all\s+)?previous\s+instructions",
    r"ignore\s+(all\s+)?above",
    r"disregard\s+(all\s+)?previous",
    r"system\s*:\s*",
    r"<\s*system\s*>",
)


@dataclass
class GuardrailResult:
    """Result of a guardrail check."""
    allowed: bool
    reason: Optional[str] = None


def _reject(reason: str) -> GuardrailResult:
    return GuardrailResult(allowed=False, reason=reason)


def check_generation_request(request: GenerationRequest) -> GuardrailResult:
    """
    Validate a generation request.
    Returns GuardrailResult with allowed=False and a reason if rejected.
    """

    # 1. Required fields
    if not (request.original_image_url or "").strip():
        return _reject("Original image is required")

    background = (request.background_type or "").strip().lower()
    if background not in BACKGROUND_DESCRIPTIONS:
        return _reject(f"Unknown background type '{request.background_type}'")
    if background == "custom" and not (request.custom_background or "").strip():
        return _reject("Custom background description is required")

    # 2. Enum surfaces
    if request.output_size not in OUTPUT_SIZES:
        return _reject(f"Unknown output size '{request.output_size}'")
    if request.logo_position not in LOGO_POSITIONS:
        return _reject(f"Unknown logo position '{request.logo_position}'")

    # 3. Length limits
    for name in TEXT_FIELDS:
        value = getattr(request, name) or ""
        if len(value) > MAX_TEXT_FIELD_LENGTH:
            return _reject(f"{name} too long ({len(value)} chars). Maximum is {MAX_TEXT_FIELD_LENGTH}.")
    if len(request.brand_context or "") > MAX_BRAND_CONTEXT_LENGTH:
        return _reject(f"Brand context too long. Maximum is {MAX_BRAND_CONTEXT_LENGTH}.")
    if len(request.brand_resource_urls or []) > MAX_BRAND_RESOURCES:
        return _reject(f"Too many brand resources. Maximum is {MAX_BRAND_RESOURCES}.")

    # 4. Injection patterns in free text
    free_text = " ".join(getattr(request, name) or "" for name in TEXT_FIELDS).lower()
    for pattern in INJECTION_PATTERNS:
        if re.search(pattern, free_text):
            # Logged only; the renderer never executes instructions.
            logger.warning("Potential prompt injection in generation request: %s", free_text[:100])
            break

    return GuardrailResult(allowed=True)

"""
Product image pipeline — one request in, an ordered set of angle results out.

request → validate → analyze product → {intent, brand context} →
{blueprint, identity anchor, creative + domain blocks} → angle loop.

Every external collaborator (vision, renderer, storage, cache, notifier)
is injectable; defaults come from settings and feature flags.

Usage:
    result = await generate_product_images(request, renderer=GeminiRenderer())
    for task in result.tasks:
        print(task.angle, task.status, task.image_url)
"""

import logging
import uuid
from dataclasses import dataclass, replace
from typing import Optional

from ..core.cache import ResourceCache
from ..core.config import get_settings
from ..core.errors import InvalidGenerationRequest
from ..core.flags import get_flags
from ..core.guardrails import check_generation_request
from ..core.prompt_debug import log_prompt_debug
from ..core.redis import SessionNotifier
from ..core.storage import StorageBackend, get_storage, read_reference
from ..models.domain import (
    AngleTask,
    BrandContextSanitization,
    GenerationRequest,
    IntentSignals,
    ProductAttributes,
    SceneBlueprint,
    normalize_camera_angles,
)
from ..orchestrator.orchestrator import GenerationOrchestrator, Notifier
from ..prompts.angle import AnglePromptContext
from ..prompts.creative import CreativeInputs, build_creative_block
from ..prompts.guardrails import GuardrailContext, build_domain_guardrails
from .blueprint import build_scene_blueprint
from .brand_context import format_brand_for_prompt, sanitize_brand_context
from .identity import build_identity_anchor
from .intent import build_user_scene_intent_block, resolve_intent
from .logo import LogoCompositor
from .product_analysis import VisionCall, analyze_product_image
from .renderer import GeminiRenderer, Renderer
from .resource_insights import build_resource_insights

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """Outcome of one session. Tasks are in generation order."""
    session_id: str
    tasks: list[AngleTask]
    attributes: ProductAttributes
    signals: IntentSignals
    blueprint: SceneBlueprint
    identity_anchor: str
    brand: BrandContextSanitization

    @property
    def removed_brand_signals(self) -> tuple[str, ...]:
        return self.brand.removed_signals

    @property
    def first_image_url(self) -> str:
        return next((t.image_url for t in self.tasks if t.image_url), "")

    @property
    def all_completed(self) -> bool:
        return bool(self.tasks) and all(t.image_url for t in self.tasks)


def _normalized(request: GenerationRequest) -> GenerationRequest:
    return replace(
        request,
        background_type=(request.background_type or "").strip().lower(),
        custom_background=(request.custom_background or "").strip(),
        additional_notes=(request.additional_notes or "").strip(),
    )


def build_compositor(request: GenerationRequest) -> Optional[LogoCompositor]:
    """A compositor only when the logo is enabled, positioned and available."""
    if not get_flags().use_logo_overlay:
        return None
    if not request.use_logo or not request.logo_url or request.logo_position == "none":
        return None
    return LogoCompositor(request.logo_url, request.logo_position)


async def generate_product_images(
    request: GenerationRequest,
    *,
    brand: Optional[dict] = None,
    renderer: Optional[Renderer] = None,
    analyzer: Optional[VisionCall] = None,
    storage: Optional[StorageBackend] = None,
    cache: Optional[ResourceCache] = None,
    compositor: Optional[LogoCompositor] = None,
    notifier: Optional[Notifier] = None,
    tenant_id: str = "default",
    session_id: Optional[str] = None,
) -> GenerationResult:
    """
    Run one multi-angle generation session.

    Raises InvalidGenerationRequest / InvalidReferencePath before any
    external call, AnalysisFailure if the product cannot be analyzed and
    AllAnglesFailed if no angle produced an image.
    """
    settings = get_settings()
    flags = get_flags()
    session_id = session_id or uuid.uuid4().hex

    # 1. Validate
    check = check_generation_request(request)
    if not check.allowed:
        raise InvalidGenerationRequest(check.reason)
    request = _normalized(request)
    angles = normalize_camera_angles(request.camera_angles)

    raw_brand_context = request.brand_context or format_brand_for_prompt(brand)
    log_prompt_debug("received-input", {
        "backgroundType": request.background_type,
        "cameraAngles": [a.value for a in angles],
        "useLogo": request.use_logo,
        "logoPosition": request.logo_position,
        "outputSize": request.output_size,
        "usagePurpose": request.usage_purpose,
        "displayInfo": request.display_info,
        "adIntensity": request.ad_intensity,
        "typographyGuidance": request.typography_guidance,
        "targetAudience": request.target_audience,
        "visualStyle": request.visual_style,
        "realismPriority": request.realism_priority,
        "hasBrandContext": bool(raw_brand_context),
        "brandContextLengthRaw": len(raw_brand_context),
    })

    # 2. Reference image (path checked before any external call)
    original = read_reference(request.original_image_url)

    # 3. Product analysis (fatal on failure)
    attributes = await analyze_product_image(original, vision=analyzer)

    # 4. Intent + brand context
    signals = resolve_intent(
        background_type=request.background_type,
        custom_background=request.custom_background,
        additional_notes=request.additional_notes,
        usage_purpose=request.usage_purpose,
        display_info=request.display_info,
        visual_style=request.visual_style,
        target_audience=request.target_audience,
        product_type=attributes.product_type,
        max_summary_length=settings.scene_summary_max_length,
    )

    if flags.use_resource_insights and request.brand_resource_urls:
        insights = await build_resource_insights(request.brand_resource_urls, vision=analyzer, cache=cache)
        if insights:
            raw_brand_context = f"{raw_brand_context}\n\n{insights}" if raw_brand_context else insights

    brand_sanitized = sanitize_brand_context(
        raw_brand_context,
        visual_style=request.visual_style,
        additional_notes=request.additional_notes,
        max_length=settings.brand_context_max_length,
    )

    # 5. Session-level prompt blocks
    creative = CreativeInputs.normalize(
        usage_purpose=request.usage_purpose,
        display_info=request.display_info,
        ad_intensity=request.ad_intensity,
        typography_guidance=request.typography_guidance,
        target_audience=request.target_audience,
        visual_style=request.visual_style,
        realism_priority=request.realism_priority,
    )
    domain_guardrails = ""
    if flags.use_domain_guardrails:
        domain_guardrails = build_domain_guardrails(GuardrailContext.from_parts(
            creative.context_text(),
            request.background_type,
            request.custom_background,
            request.additional_notes,
            brand_sanitized.text,
            attributes.context_text(),
            signals=signals,
        ))

    identity_anchor = build_identity_anchor(attributes)
    blueprint = build_scene_blueprint(
        attributes,
        signals,
        background_type=request.background_type,
        custom_background=request.custom_background,
        usage_purpose=request.usage_purpose,
        display_info=request.display_info,
        additional_notes=request.additional_notes,
        brand_context=brand_sanitized.text,
    )
    user_scene_intent_block = build_user_scene_intent_block(signals)

    brand_debug = {
        "brandContextLengthRaw": brand_sanitized.original_length,
        "brandContextLengthSanitized": brand_sanitized.final_length,
        "removedSignals": list(brand_sanitized.removed_signals),
    }
    log_prompt_debug("intent-resolution", {
        "intentSignals": signals,
        "hardNegativeFinal": list(blueprint.hard_negative_rules),
        **brand_debug,
    })
    log_prompt_debug("brand-context", {
        "available": bool(raw_brand_context),
        "preview": brand_sanitized.text,
        **brand_debug,
    })
    log_prompt_debug("prompt-built", {
        "mode": "multi-angle-plan",
        "normalizedAngles": [a.value for a in angles],
        "identityAnchor": identity_anchor,
        "sceneBlueprint": blueprint,
        "userSceneIntentBlock": user_scene_intent_block,
    })

    context = AnglePromptContext(
        identity_anchor=identity_anchor,
        blueprint=blueprint,
        signals=signals,
        user_scene_intent_block=user_scene_intent_block,
        brand_context=brand_sanitized.text,
        creative_block=build_creative_block(creative),
        domain_guardrails=domain_guardrails,
        output_size=request.output_size,
    )

    # 6. Angle loop
    orchestrator = GenerationOrchestrator(
        renderer=renderer or GeminiRenderer(),
        storage=storage or get_storage(),
        compositor=compositor or build_compositor(request),
        max_attempts=settings.max_render_attempts,
        notifier=notifier or SessionNotifier(tenant_id, session_id),
    )
    state = await orchestrator.run(context, original, angles, base_notes=request.additional_notes)

    logger.info(
        "Session %s: %d/%d angles completed (tenant=%s)",
        session_id, len(state.completed), len(state.tasks), tenant_id,
    )
    return GenerationResult(
        session_id=session_id,
        tasks=list(state.tasks),
        attributes=attributes,
        signals=signals,
        blueprint=blueprint,
        identity_anchor=identity_anchor,
        brand=brand_sanitized,
    )

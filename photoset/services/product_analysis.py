"""
Product analysis — one vision call turning the reference photo into
ProductAttributes. Any failure here is fatal to the session.
"""

import logging
from typing import Awaitable, Callable, Optional

from ..core.errors import AnalysisFailure
from ..models.domain import ProductAttributes, ReferenceImage
from . import llm

logger = logging.getLogger(__name__)

VisionCall = Callable[[str, list[tuple[bytes, str]]], Awaitable[str]]

ANALYSIS_PROMPT = """You are an expert product photographer and visual analyst. Analyze this image in EXTREME DETAIL for AI image generation purposes.

This tool is used by many different businesses with various product types: electronics, fashion, cosmetics, food, furniture, jewelry, toys, automotive parts, tools, artwork, etc. Analyze accordingly.

=== ANALYZE EVERY ASPECT ===
1. PRODUCT IDENTIFICATION: exact type and category, model/variant, approximate scale, state (new, raw, cooked, packaged...)
2. VISUAL CHARACTERISTICS: every color with its finish, surface texture, exact shape and silhouette, patterns/prints/logos/engravings/stitching, material, surface finish
3. QUALITY & DETAILS: craftsmanship signs, premium indicators, visible brand elements (logos, tags, packaging)
4. CURRENT SETTING: background, props, lighting style, photography angle
5. CONTEXT & MARKET: target market, industry/niche, likely use case, mood

Return a JSON object with this structure:
{
    "productType": "specific product name with model/variant",
    "category": "main product category",
    "subcategory": "more specific category",
    "industry": "industry/niche",
    "material": "primary material(s)",
    "features": ["detailed feature 1", "detailed feature 2", "...at least 5-7 features"],
    "colors": ["specific color with finish description", "..."],
    "texture": "detailed texture description (2-3 sentences)",
    "shape": "shape and dimension description",
    "patterns": "any patterns, prints, or visual details",
    "brandElements": "any visible branding, logos, text",
    "currentBackground": "detailed background description",
    "lightingStyle": "lighting description",
    "mood": "overall mood/style",
    "summary": "A DETAILED 4-5 sentence summary describing this product as if explaining to another AI that needs to recreate it perfectly."
}

Only return valid JSON."""


def parse_analysis(text: str) -> ProductAttributes:
    """JSON reply → full attributes; free text → summary only."""
    parsed = llm.parse_json_response(text)
    if parsed is not None:
        attributes = ProductAttributes.from_dict(parsed)
        if not attributes.is_empty():
            return attributes
    return ProductAttributes(summary=text.strip())


async def analyze_product_image(
    image: ReferenceImage,
    vision: Optional[VisionCall] = None,
) -> ProductAttributes:
    """
    Analyze the original product photo.

    Raises AnalysisFailure if the vision call errors or returns nothing.
    """
    call = vision or llm.chat_with_vision
    try:
        text = await call(ANALYSIS_PROMPT, [(image.data, image.mime_type)])
    except Exception as e:
        logger.error("Product analysis failed: %s", e)
        raise AnalysisFailure(f"Product analysis failed: {e}") from e

    if not text or not text.strip():
        raise AnalysisFailure("Product analysis returned an empty response")

    attributes = parse_analysis(text)
    logger.info(
        "Product analyzed: type=%r colors=%d features=%d",
        attributes.product_type or attributes.category, len(attributes.colors), len(attributes.features),
    )
    return attributes

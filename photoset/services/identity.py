"""
Identity anchor — the product description every render call repeats verbatim.
"""

from ..models.domain import ProductAttributes

MAX_MUST_KEEP_FEATURES = 6

IDENTITY_LOCK_RULE = (
    "Identity lock rule: Keep product identity at 90-95% consistency with the "
    "original reference across all angles."
)
SCENE_CONFLICT_RULE = (
    "Scene conflict rule: User scene intent overrides the original reference "
    "background; never force the original background if it conflicts with the "
    "requested scene."
)


def build_identity_anchor(attributes: ProductAttributes) -> str:
    colors = (
        ", ".join(attributes.colors)
        if attributes.colors
        else "match the exact colors from original image"
    )
    features = (
        "; ".join(attributes.features[:MAX_MUST_KEEP_FEATURES])
        if attributes.features
        else "preserve all distinctive visual features from original image"
    )
    material = f"{attributes.material} {attributes.texture}".strip()

    return "\n".join([
        f"Product type: {attributes.product_type or attributes.category or 'same product as reference'}",
        f"Shape: {attributes.shape or 'same silhouette and proportions as reference image'}",
        f"Material/texture: {material or 'same material and texture as reference image'}",
        f"Colors: {colors}",
        f"Patterns/marks: {attributes.patterns or attributes.brand_elements or 'no changes to logos/marks/details'}",
        f"Must-keep features: {features}",
        IDENTITY_LOCK_RULE,
        SCENE_CONFLICT_RULE,
    ])

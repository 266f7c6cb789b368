"""
In-memory domain types for one generation session.

These are plain dataclasses, not ORM rows. Everything computed once per
session (attributes, intent, blueprint) is frozen and shared read-only by
every angle. AngleTask transitions return new instances.
"""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class CameraAngle(str, Enum):
    WIDE = "wide"
    MEDIUM = "medium"
    CLOSEUP = "closeup"
    TOPDOWN = "topdown"
    DETAIL = "detail"


class AngleStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ActionType(str, Enum):
    """Requested scene action. Declaration order is resolution priority."""
    NONE = "none"
    EAT = "eat"
    DRINK = "drink"
    COOK = "cook"
    SERVE = "serve"
    USE = "use"


@dataclass(frozen=True)
class OutputSize:
    width: int
    height: int
    label: str


# ── Fixed enum surfaces ───────────────────────────────────────────────

CAMERA_ANGLE_PROMPTS: dict[CameraAngle, str] = {
    CameraAngle.WIDE: "wide shot, full composition, product and surrounding context clearly visible",
    CameraAngle.MEDIUM: "medium shot, balanced framing between product and context",
    CameraAngle.CLOSEUP: "close-up shot, product dominates frame while keeping contextual cues",
    CameraAngle.TOPDOWN: "top-down / flat-lay perspective with clear product arrangement",
    CameraAngle.DETAIL: "macro detail shot, emphasize premium texture, material, and craftsmanship details",
}

# Anchor-quality framings first; the first success becomes the canonical reference.
PREFERRED_ANGLE_ORDER: tuple[CameraAngle, ...] = (
    CameraAngle.MEDIUM,
    CameraAngle.WIDE,
    CameraAngle.CLOSEUP,
    CameraAngle.DETAIL,
    CameraAngle.TOPDOWN,
)

OUTPUT_SIZES: dict[str, OutputSize] = {
    "1:1": OutputSize(1024, 1024, "square"),
    "4:5": OutputSize(1024, 1280, "portrait 4:5"),
    "9:16": OutputSize(720, 1280, "vertical story 9:16"),
    "16:9": OutputSize(1280, 720, "landscape 16:9"),
    "3:4": OutputSize(960, 1280, "portrait 3:4"),
}
DEFAULT_OUTPUT_SIZE = "1:1"

BACKGROUND_DESCRIPTIONS: dict[str, str] = {
    "studio": "professional photography studio with soft lighting, clean white/gray backdrop",
    "outdoor": "outdoor natural environment with soft daylight, nature or urban backdrop",
    "lifestyle": (
        "real-life usage context showing the product being used naturally "
        "(e.g., someone holding, using, or interacting with the product)"
    ),
    "minimal": "ultra-clean minimal background with solid color, modern aesthetic",
    "luxury": "premium luxurious setting with marble, velvet, gold accents, sophisticated lighting",
    "kitchen": "professional modern kitchen setting with cooking equipment and utensils",
    "restaurant": "elegant restaurant dining setting with table, plates, professional presentation",
    "action": "dynamic action scene showing the product in motion or being actively used",
    "custom": "",
}
DEFAULT_BACKGROUND = "studio"

LOGO_POSITIONS = ("top-left", "top-right", "bottom-left", "bottom-right", "center", "none")
DEFAULT_LOGO_POSITION = "bottom-right"


def normalize_camera_angles(angles: Optional[list]) -> list[CameraAngle]:
    """Drop unknown angles and duplicates (order kept). Empty → [wide]."""
    normalized: list[CameraAngle] = []
    for raw in angles or []:
        value = raw.value if isinstance(raw, CameraAngle) else str(raw or "").strip().lower()
        try:
            angle = CameraAngle(value)
        except ValueError:
            continue
        if angle not in normalized:
            normalized.append(angle)
    return normalized or [CameraAngle.WIDE]


def order_angles(angles: list[CameraAngle]) -> list[CameraAngle]:
    """Regroup angles into the preferred generation order."""
    preferred = [a for a in PREFERRED_ANGLE_ORDER if a in angles]
    rest = [a for a in angles if a not in PREFERRED_ANGLE_ORDER]
    return preferred + rest


# ── Session values ────────────────────────────────────────────────────

_ATTRIBUTE_KEYS = {
    "product_type": "productType",
    "category": "category",
    "subcategory": "subcategory",
    "industry": "industry",
    "material": "material",
    "texture": "texture",
    "shape": "shape",
    "patterns": "patterns",
    "brand_elements": "brandElements",
    "summary": "summary",
}


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v).strip() for v in value if str(v).strip())
    return str(value).strip()


def _as_list(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value.strip(),) if value.strip() else ()
    if isinstance(value, (list, tuple)):
        return tuple(str(v).strip() for v in value if str(v).strip())
    return ()


@dataclass(frozen=True)
class ProductAttributes:
    """Structured product description produced by the vision model."""

    product_type: str = ""
    category: str = ""
    subcategory: str = ""
    industry: str = ""
    material: str = ""
    texture: str = ""
    shape: str = ""
    patterns: str = ""
    colors: tuple[str, ...] = ()
    features: tuple[str, ...] = ()
    brand_elements: str = ""
    summary: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "ProductAttributes":
        """Build from the model's JSON (camelCase or snake_case keys)."""
        values = {}
        for attr, camel in _ATTRIBUTE_KEYS.items():
            values[attr] = _as_text(data.get(camel, data.get(attr)))
        values["colors"] = _as_list(data.get("colors"))
        values["features"] = _as_list(data.get("features"))
        return cls(**values)

    def is_empty(self) -> bool:
        return not any(dataclasses.astuple(self))

    def context_text(self) -> str:
        """Flat text used by domain detectors."""
        return " ".join(
            v for v in (
                self.product_type, self.category, self.subcategory,
                self.industry, self.summary,
            ) if v
        )


@dataclass(frozen=True)
class IntentSignals:
    wants_outdoor: bool = False
    wants_human_presence: bool = False
    wants_action: bool = False
    action_type: ActionType = ActionType.NONE
    is_photoreal_priority: bool = True
    requested_scene_summary: str = ""
    # Every action whose keywords matched, in priority order.
    requested_actions: tuple[ActionType, ...] = ()

    def summary_line(self) -> str:
        action = self.action_type.value if self.action_type != ActionType.NONE else "yes"
        return (
            f"outdoor={'yes' if self.wants_outdoor else 'no'}, "
            f"human={'yes' if self.wants_human_presence else 'no'}, "
            f"action={action if self.wants_action else 'no'}"
        )


@dataclass(frozen=True)
class SceneBlueprint:
    scene: str
    lighting: str
    composition: str
    hard_negative_rules: tuple[str, ...] = ()


@dataclass(frozen=True)
class BrandContextSanitization:
    text: str = ""
    removed_signals: tuple[str, ...] = ()
    original_length: int = 0

    @property
    def final_length(self) -> int:
        return len(self.text)


@dataclass(frozen=True)
class ReferenceImage:
    """An image handed to the renderer as visual reference."""
    data: bytes
    mime_type: str = "image/png"
    url: str = ""


@dataclass(frozen=True)
class RenderedImage:
    data: bytes
    mime_type: str = "image/png"


@dataclass(frozen=True)
class AngleTask:
    angle: CameraAngle
    status: AngleStatus = AngleStatus.PENDING
    image_url: str = ""
    error_message: str = ""
    retry_count: int = 0

    @property
    def is_settled(self) -> bool:
        return self.status in (AngleStatus.COMPLETED, AngleStatus.FAILED)

    def start(self) -> "AngleTask":
        self._ensure_open()
        return dataclasses.replace(self, status=AngleStatus.PROCESSING)

    def complete(self, image_url: str, retry_count: int = 0) -> "AngleTask":
        self._ensure_open()
        return dataclasses.replace(
            self,
            status=AngleStatus.COMPLETED,
            image_url=image_url,
            error_message="",
            retry_count=retry_count,
        )

    def fail(self, error_message: str, retry_count: int = 0) -> "AngleTask":
        self._ensure_open()
        return dataclasses.replace(
            self,
            status=AngleStatus.FAILED,
            image_url="",
            error_message=error_message,
            retry_count=retry_count,
        )

    def _ensure_open(self) -> None:
        if self.is_settled:
            raise ValueError(f"Angle task '{self.angle.value}' is already {self.status.value}")

    def to_dict(self) -> dict:
        """Shape consumed by persistence and the HTTP response."""
        return {
            "angle": self.angle.value,
            "imageUrl": self.image_url,
            "status": self.status.value,
            "errorMessage": self.error_message,
        }


@dataclass
class GenerationRequest:
    """Everything a caller supplies for one multi-angle generation."""

    original_image_url: str
    background_type: str = DEFAULT_BACKGROUND
    camera_angles: list = field(default_factory=lambda: ["wide"])
    custom_background: str = ""
    usage_purpose: str = ""
    display_info: str = ""
    ad_intensity: str = ""
    typography_guidance: str = ""
    target_audience: str = ""
    visual_style: str = ""
    realism_priority: str = ""
    additional_notes: str = ""
    use_logo: bool = True
    logo_position: str = DEFAULT_LOGO_POSITION
    logo_url: Optional[str] = None
    output_size: str = DEFAULT_OUTPUT_SIZE
    brand_context: str = ""
    brand_resource_urls: list[str] = field(default_factory=list)

"""
Creative context block — the campaign-level hints a user can attach to a request.
"""

from dataclasses import dataclass, fields
from typing import Any

NOT_SPECIFIED = "(not specified)"


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


@dataclass(frozen=True)
class CreativeInputs:
    usage_purpose: str = ""
    display_info: str = ""
    ad_intensity: str = ""
    typography_guidance: str = ""
    target_audience: str = ""
    visual_style: str = ""
    realism_priority: str = ""

    @classmethod
    def normalize(cls, **values: Any) -> "CreativeInputs":
        """Trim strings; anything else (None, numbers, lists) becomes ""."""
        names = {f.name for f in fields(cls)}
        return cls(**{k: _clean(v) for k, v in values.items() if k in names})

    def context_text(self) -> str:
        return " ".join(getattr(self, f.name) for f in fields(self) if getattr(self, f.name))


def build_creative_block(inputs: CreativeInputs) -> str:
    return "\n".join([
        "### CREATIVE CONTEXT",
        f"- Usage purpose: {inputs.usage_purpose or NOT_SPECIFIED}",
        f"- Display info: {inputs.display_info or NOT_SPECIFIED}",
        f"- Ad intensity: {inputs.ad_intensity or NOT_SPECIFIED}",
        f"- Typography guidance: {inputs.typography_guidance or NOT_SPECIFIED}",
        f"- Target audience: {inputs.target_audience or NOT_SPECIFIED}",
        f"- Visual style: {inputs.visual_style or NOT_SPECIFIED}",
        f"- Realism priority: {inputs.realism_priority or NOT_SPECIFIED}",
    ])

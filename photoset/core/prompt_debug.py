"""
Structured prompt-debug log lines. Controlled by FF_DEBUG_PROMPT flag.

One JSON object per pipeline step, with secret-looking keys redacted and
long strings truncated.
"""

import dataclasses
import json
import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .flags import get_flags

logger = logging.getLogger(__name__)

MAX_STRING_LENGTH = 1200
SENSITIVE_KEY_PATTERN = re.compile(r"(token|password|api[_-]?key|secret|authorization)", re.IGNORECASE)
REDACTED = "[REDACTED]"
CIRCULAR = "[Circular]"


def truncate_string(value: Any) -> str:
    text = str(value)
    if len(text) <= MAX_STRING_LENGTH:
        return text
    return f"{text[:MAX_STRING_LENGTH]}...[truncated:{len(text) - MAX_STRING_LENGTH}]"


def sanitize_value(value: Any, key: str = "", _seen: set[int] | None = None) -> Any:
    """JSON-safe copy of value with secrets redacted and long strings cut."""
    seen = _seen if _seen is not None else set()

    if SENSITIVE_KEY_PATTERN.search(str(key)):
        return REDACTED
    if isinstance(value, Enum):
        value = value.value
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return truncate_string(value)
    if isinstance(value, bytes):
        return f"<{len(value)} bytes>"
    is_record = dataclasses.is_dataclass(value) and not isinstance(value, type)

    if is_record or isinstance(value, (list, tuple, dict)):
        marker = id(value)
        if marker in seen:
            return CIRCULAR
        seen.add(marker)
        try:
            if is_record:
                value = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
            if isinstance(value, dict):
                return {str(k): sanitize_value(v, str(k), seen) for k, v in value.items()}
            return [sanitize_value(item, key, seen) for item in value]
        finally:
            seen.discard(marker)

    return truncate_string(value)


def log_prompt_debug(step: str, data: Any = None, tool: str = "product-images") -> None:
    """Emit one prompt-debug line. No-op unless FF_DEBUG_PROMPT is on."""
    if not get_flags().debug_prompt:
        return

    payload = {
        "type": "prompt-debug",
        "ts": datetime.now(timezone.utc).isoformat(),
        "tool": tool,
        "step": step,
        "data": sanitize_value(data if data is not None else {}),
    }
    logger.info(json.dumps(payload, ensure_ascii=False))

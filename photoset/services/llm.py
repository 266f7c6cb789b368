"""
Vision client for product and brand-resource analysis.

Talks to the Gemini OpenAI-compatible chat endpoint over one pooled
httpx client. Busy responses (429/5xx) and timeouts are retried with
exponential backoff, honouring Retry-After when the server sends it.
Client errors (other 4xx) are raised immediately.
"""

import asyncio
import base64
import json
import logging
import random
import re
import time
from typing import Any, Optional

import httpx

from ..core.config import get_settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})
BASE_DELAY = 1.0
MAX_DELAY = 16.0

_client: Optional[httpx.AsyncClient] = None


def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        timeout = get_settings().llm_timeout_seconds
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )
    return _client


async def close_client():
    """Close the pooled client. Called on app shutdown."""
    global _client
    if _client is not None and not _client.is_closed:
        await _client.aclose()
    _client = None


# ── Retry ─────────────────────────────────────────────────────────────

def backoff_delay(attempt: int, retry_after: Optional[str] = None) -> float:
    """Seconds to wait before retry number attempt + 1."""
    if retry_after:
        try:
            return max(0.0, float(retry_after))
        except ValueError:
            pass
    return min(MAX_DELAY, BASE_DELAY * (2 ** attempt) + random.uniform(0, 1))


async def _post_with_retry(url: str, payload: dict, headers: dict) -> httpx.Response:
    retries = max(0, get_settings().llm_max_retries)
    last_error: Optional[Exception] = None

    for attempt in range(retries + 1):
        try:
            resp = await _get_client().post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            last_error = e
            delay = backoff_delay(attempt)
            logger.warning("Vision call timed out (attempt %d/%d), retrying in %.1fs",
                           attempt + 1, retries + 1, delay)
        else:
            if resp.status_code not in RETRYABLE_STATUS:
                if resp.is_error:
                    logger.error("Vision API error %d: %s", resp.status_code, resp.text[:300])
                resp.raise_for_status()
                return resp
            last_error = httpx.HTTPStatusError(
                f"Vision API busy ({resp.status_code})", request=resp.request, response=resp,
            )
            delay = backoff_delay(attempt, resp.headers.get("retry-after"))
            logger.warning("Vision API %d (attempt %d/%d), retrying in %.1fs",
                           resp.status_code, attempt + 1, retries + 1, delay)

        if attempt < retries:
            await asyncio.sleep(delay)

    raise last_error or RuntimeError("Vision call failed")


# ── Vision ────────────────────────────────────────────────────────────

def to_data_url(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('utf-8')}"


def build_vision_messages(prompt: str, images: list[tuple[bytes, str]], system: str = "") -> list[dict]:
    content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
    content.extend(
        {"type": "image_url", "image_url": {"url": to_data_url(data, mime_type)}}
        for data, mime_type in images
    )
    messages = [{"role": "system", "content": system}] if system else []
    messages.append({"role": "user", "content": content})
    return messages


async def chat_with_vision(
    prompt: str,
    images: list[tuple[bytes, str]],
    system: str = "",
    model: Optional[str] = None,
) -> str:
    """
    One vision completion. `images` are (bytes, mime_type) pairs sent
    inline as data URLs. Returns the reply text ("" if the model sent none).
    """
    settings = get_settings()
    if not settings.gemini_api_key:
        raise ValueError("GEMINI_API_KEY is required for vision analysis")

    payload = {
        "model": model or settings.vision_model,
        "messages": build_vision_messages(prompt, images, system),
        "temperature": settings.llm_temperature,
        "max_tokens": settings.llm_max_tokens,
    }
    url = f"{settings.gemini_openai_base_url.rstrip('/')}/chat/completions"
    headers = {"Authorization": f"Bearer {settings.gemini_api_key}"}

    start = time.monotonic()
    resp = await _post_with_retry(url, payload, headers)
    data = resp.json()

    usage = data.get("usage") or {}
    logger.info(
        "Vision call: %dms | images=%d | in=%s out=%s tokens | model=%s",
        int((time.monotonic() - start) * 1000), len(images),
        usage.get("prompt_tokens", "?"), usage.get("completion_tokens", "?"), payload["model"],
    )
    choices = data.get("choices") or [{}]
    return (choices[0].get("message") or {}).get("content") or ""


def parse_json_response(text: str) -> Optional[dict]:
    """Parse the first {...} span of a model reply. None if absent or invalid."""
    match = re.search(r"\{[\s\S]*\}", text or "")
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning("JSON parse error in model reply: %s", e)
        return None
    return parsed if isinstance(parsed, dict) else None

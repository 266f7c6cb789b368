"""
Central feature flags. One file controls every optional dependency.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the system uses a local/no-op fallback. Nothing crashes.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────────
    use_s3: bool = Field(default=False, alias="FF_USE_S3")
    # ON  → Generated images go to AWS S3. Needs AWS creds + S3_BUCKET_NAME.
    # OFF → Saved under STORAGE_ROOT/product-images/. Returns /uploads/... URLs.

    # ── Realtime ─────────────────────────────────────────────────────
    use_redis: bool = Field(default=False, alias="FF_USE_REDIS")
    # ON  → Per-angle progress published over Redis pub/sub. Needs REDIS_URL.
    # OFF → Notifications silently skipped.

    # ── Post-processing ──────────────────────────────────────────────
    use_logo_overlay: bool = Field(default=True, alias="FF_USE_LOGO_OVERLAY")
    # OFF → Logo is never composited, even if the request asks for it.

    # ── Prompt building ──────────────────────────────────────────────
    use_domain_guardrails: bool = Field(default=True, alias="FF_USE_DOMAIN_GUARDRAILS")
    # OFF → Registered domain guardrail blocks (F&B, ...) are not injected.

    use_resource_insights: bool = Field(default=True, alias="FF_USE_RESOURCE_INSIGHTS")
    # ON  → Brand resource images are summarised by the vision model (cached).
    # OFF → Brand resources are ignored.

    # ── Debugging ────────────────────────────────────────────────────
    debug_prompt: bool = Field(default=False, alias="FF_DEBUG_PROMPT")
    # ON  → One redacted JSON log line per pipeline step (inputs, prompts, results).


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()

"""
Per-angle progress events over Redis pub/sub. Controlled by FF_USE_REDIS.

Subscribers listen on session:{tenant_id}:{session_id}. Each message is
{"type": <event>, "data": <payload>}. With the flag off every publish is a
no-op, and a failing publish never affects generation.
"""

import json
import logging
from typing import Any

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)

ANGLE_STARTED = "angle_started"
ANGLE_COMPLETED = "angle_completed"
ANGLE_FAILED = "angle_failed"
SESSION_COMPLETED = "session_completed"

_redis_client = None


def get_redis_client():
    """Lazy shared client; the connection is opened on first publish."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis

        _redis_client = aioredis.from_url(
            get_settings().redis_url, decode_responses=True, socket_connect_timeout=5,
        )
    return _redis_client


def session_channel(tenant_id: str, session_id: str) -> str:
    return f"session:{tenant_id}:{session_id}"


async def publish(channel: str, event_type: str, data: Any = None) -> bool:
    """Returns True if the event was handed to Redis."""
    if not get_flags().use_redis:
        return False
    message = json.dumps({"type": event_type, "data": data}, default=str)
    try:
        await get_redis_client().publish(channel, message)
    except Exception as e:
        logger.warning("Redis publish failed (channel=%s, event=%s): %s", channel, event_type, e)
        return False
    return True


class SessionNotifier:
    """Notifier bound to one session's channel; called as notifier(event, data)."""

    def __init__(self, tenant_id: str, session_id: str):
        self.channel = session_channel(tenant_id, session_id)

    async def __call__(self, event_type: str, data: Any = None) -> None:
        await publish(self.channel, event_type, data)


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("Redis connection closed")
    _redis_client = None

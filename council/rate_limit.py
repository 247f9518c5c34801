"""Fixed-window limiter shared by every process calling the model backend."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Final

from redis.exceptions import RedisError

from .config import settings
from .redis_client import get_redis_client

logger = logging.getLogger(__name__)

# KEYS[1] window key, ARGV[1] limit, ARGV[2] window seconds. Returns 1 when allowed.
RATE_LIMIT_LUA: Final[str] = """
local used = redis.call('INCR', KEYS[1])
if used == 1 then
  redis.call('EXPIRE', KEYS[1], ARGV[2])
end
if used > tonumber(ARGV[1]) then
  return 0
end
return 1
"""

POLL_INTERVAL_SECONDS: Final[float] = 1.0


def window_key(model: str, now: float | None = None) -> str:
    window = settings.llm_rate_window
    slot = int((time.time() if now is None else now) // window)
    return f"ratelimit:llm:{model}:{slot}"


async def acquire_model_slot(model: str) -> bool:
    """Take one call from the current window. False when the window is spent."""
    redis = get_redis_client()
    allowed = await redis.eval(
        RATE_LIMIT_LUA, 1, window_key(model), settings.llm_rate_limit, settings.llm_rate_window
    )
    return allowed == 1


async def wait_for_model_slot(model: str | None = None) -> bool:
    """Poll for a slot until `redis_rate_limit_wait_seconds` runs out.

    Returns True when a call may proceed. An unreachable Redis never blocks a call.
    """
    if not settings.redis_rate_limit_enabled:
        return True

    model = model or settings.llm_model
    deadline = time.monotonic() + settings.redis_rate_limit_wait_seconds
    while time.monotonic() < deadline:
        try:
            if await acquire_model_slot(model):
                return True
        except (RedisError, OSError) as e:
            logger.warning("Rate limiter unavailable, calling %s unthrottled: %s", model, e)
            return True
        await asyncio.sleep(POLL_INTERVAL_SECONDS)

    logger.warning("No model slot for %s within %ss", model, settings.redis_rate_limit_wait_seconds)
    return False

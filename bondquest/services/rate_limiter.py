# =============================================================================
# AI Rate Limiter — Redis-Based Per-User Sliding Window
# =============================================================================
#
# Throttles the endpoints that call an LLM (persona chat, onboarding
# conversations, quiz/insight/competition generation).
#
# SlidingWindowLimiter keeps one Redis sorted set per key. A hit prunes
# members older than the window, counts what is left, then records
# itself; the count returned is the number of earlier hits still inside
# the window.
#
# Redis being down is not an error here: `hit()` returns None, the
# request goes through and a warning is logged.
#
# Uses Redis db 2 (db 0/1 reserved for Celery).
# =============================================================================

from __future__ import annotations

import logging
import time
import uuid
from typing import TYPE_CHECKING

from bondquest.config import settings
from bondquest.services.errors import RateLimitedError

if TYPE_CHECKING:
    from bondquest.db.models import User

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60

# Lazy Redis connection
_redis_client = None


def _get_rate_limit_redis():
    """Lazily create and cache the async Redis client for rate limiting."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        _redis_client = aioredis.from_url(
            settings.rate_limit_redis_url,
            decode_responses=True,
        )
    return _redis_client


class SlidingWindowLimiter:
    """Per-key hit counter over a rolling window."""

    def __init__(self, prefix: str, window_seconds: int = WINDOW_SECONDS) -> None:
        self.prefix = prefix
        self.window_seconds = window_seconds

    def key_for(self, key: object) -> str:
        return f"{self.prefix}:{key}"

    async def hit(self, key: object) -> int | None:
        """Record a hit; return prior hits in the window, or None without Redis."""
        redis_key = self.key_for(key)
        now = time.time()
        try:
            pipe = _get_rate_limit_redis().pipeline()
            pipe.zremrangebyscore(redis_key, 0, now - self.window_seconds)
            pipe.zcard(redis_key)
            # Unique member so two hits in the same microsecond both count
            pipe.zadd(redis_key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
            pipe.expire(redis_key, self.window_seconds + 10)
            _, count, _, _ = await pipe.execute()
        except Exception as e:
            logger.warning("Rate limiter unavailable (Redis error): %s. Allowing request.", e)
            return None
        return count


_ai_limiter = SlidingWindowLimiter("ratelimit:ai:user")


async def check_ai_rate_limit(user: User | None) -> None:
    """
    Count one AI request against the user's per-minute budget.

    Raises:
        RateLimitedError: budget spent; `retry_after` is the window length.

    No-op when there is no user or the limit is 0 (disabled).
    """
    limit = settings.ai_rate_limit_rpm
    if user is None or limit <= 0:
        return

    count = await _ai_limiter.hit(user.id)
    if count is not None and count >= limit:
        logger.info("AI rate limit hit for user %d (%d/min)", user.id, limit)
        raise RateLimitedError(limit, _ai_limiter.window_seconds)

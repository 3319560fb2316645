"""Rate limiting service using Redis."""

from __future__ import annotations

import logging
import time
import uuid

import redis

from ..cache import get_redis_client

logger = logging.getLogger(__name__)


def check_rate_limit(key: str, limit: int, window_seconds: int = 60) -> tuple[bool, int]:
    """
    Check and record a request against a sliding window.

    Each request is a member of a sorted set scored by its timestamp; members
    older than the window are pruned before counting.

    Args:
        key: Redis key for the window (e.g., "ratelimit:ip:{addr}")
        limit: Maximum number of requests allowed in the window
        window_seconds: Time window in seconds (default: 60)

    Returns:
        Tuple of (allowed: bool, remaining: int)
    """
    client = get_redis_client()

    # If Redis is unavailable, allow the request (fail open)
    if not client:
        logger.warning(f"Redis unavailable, allowing request for key '{key}'")
        return True, limit

    now = time.time()
    window_start = now - window_seconds

    try:
        pipe = client.pipeline()
        pipe.zremrangebyscore(key, 0, window_start)
        pipe.zcard(key)
        _, count = pipe.execute()

        if count >= limit:
            return False, 0

        pipe = client.pipeline()
        pipe.zadd(key, {f"{now}:{uuid.uuid4().hex}": now})
        pipe.expire(key, window_seconds)
        pipe.execute()

        return True, max(0, limit - count - 1)

    except redis.RedisError as e:
        logger.error(f"Rate limit check error for key '{key}': {e}")
        # Fail open - allow request if Redis error
        return True, limit


def get_rate_limit_remaining(key: str, limit: int, window_seconds: int = 60) -> int:
    """Get remaining requests without recording one."""
    client = get_redis_client()

    if not client:
        return limit

    try:
        count = client.zcount(key, time.time() - window_seconds, "+inf")
        return max(0, limit - count)
    except redis.RedisError as e:
        logger.error(f"Rate limit get error for key '{key}': {e}")
        return limit

"""Redis client and small cache helpers."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

import redis

logger = logging.getLogger(__name__)

# Redis connection
_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis | None:
    """
    Get or create Redis client instance.

    Returns None if the connection fails; callers decide whether to fail open.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    try:
        redis_url = os.getenv("REDIS_URL", "redis://cache:6379/0")
        client = redis.from_url(redis_url, decode_responses=True)
        # Test connection
        client.ping()
        logger.info("Redis connected successfully")
        _redis_client = client
        return _redis_client
    except redis.RedisError as e:
        logger.warning(f"Redis unavailable: {e}")
        return None


def set_redis_client(client: redis.Redis | None) -> None:
    """Replace the shared client (used by tests and on reconnect)."""
    global _redis_client
    _redis_client = client


def cache_get(key: str) -> Any | None:
    """
    Retrieve a cached value by key.

    Returns:
        Cached value if found, None otherwise
    """
    client = get_redis_client()
    if not client:
        return None

    try:
        value = client.get(key)
        if value is None:
            return None

        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return value
    except redis.RedisError as e:
        logger.warning(f"Cache get error for key '{key}': {e}")
        return None


def cache_set(key: str, value: Any, ttl: int = 300) -> bool:
    """
    Set a cached value with TTL.

    Args:
        key: Cache key
        value: Value to cache (JSON-serialized if dict/list)
        ttl: Time to live in seconds (default: 300 = 5 minutes)
    """
    client = get_redis_client()
    if not client:
        return False

    try:
        if isinstance(value, (dict, list)):
            serialized = json.dumps(value)
        else:
            serialized = str(value)

        client.setex(key, ttl, serialized)
        return True
    except redis.RedisError as e:
        logger.warning(f"Cache set error for key '{key}': {e}")
        return False


def cache_delete(key: str) -> bool:
    """Delete a specific cache key."""
    client = get_redis_client()
    if not client:
        return False

    try:
        return bool(client.delete(key))
    except redis.RedisError as e:
        logger.warning(f"Cache delete error for key '{key}': {e}")
        return False


def cache_pop(key: str) -> str | None:
    """Atomically read and delete a key (single-use values)."""
    client = get_redis_client()
    if not client:
        return None

    try:
        return client.getdel(key)
    except redis.RedisError as e:
        logger.warning(f"Cache pop error for key '{key}': {e}")
        return None

"""System endpoints (health, config)."""

from __future__ import annotations

import logging
import time

import redis
from fastapi import APIRouter, HTTPException, status

from .. import schemas, settings
from ..assets import ALLOWED_MIME_TYPES
from ..cache import get_redis_client

router = APIRouter(prefix="", tags=["System"])
logger = logging.getLogger(__name__)

# Global startup time for uptime calculation
_STARTUP_TIME = time.time()


@router.get("/health", response_model=schemas.HealthResponse)
def get_health() -> schemas.HealthResponse:
    """Liveness check."""
    uptime_s = time.time() - _STARTUP_TIME
    return schemas.HealthResponse(status="ok", uptime_s=uptime_s)


@router.get("/health/redis")
def check_redis_health() -> dict:
    """
    Redis health check endpoint.

    Returns 200 if Redis is available, 503 if not.
    """
    client = get_redis_client()
    if not client:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Redis unavailable",
        )

    try:
        client.ping()
        return {"status": "ok", "message": "Redis is available"}
    except redis.RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Redis error: {e}",
        )


@router.get("/config", response_model=schemas.Config)
def get_public_config() -> schemas.Config:
    """Public limits the client needs to validate input."""
    return schemas.Config(
        max_upload_bytes=settings.MAX_UPLOAD_SIZE_BYTES,
        allowed_image_types=list(ALLOWED_MIME_TYPES),
        verification_duration_seconds=settings.VERIFICATION_DURATION_SECONDS,
    )

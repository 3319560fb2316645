"""Server-side sessions kept in Redis.

The browser only holds an opaque random id in an HTTP-only cookie; the id maps
to the user id under ``session:<id>`` with a TTL.
"""

from __future__ import annotations

import logging
import secrets

from fastapi import Response

from .. import settings
from ..cache import cache_delete, cache_get, cache_set

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session:"


def _session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


def create_session(user_id: int, remember: bool = False) -> tuple[str, int]:
    """
    Create a session for a user.

    Returns:
        Tuple of (session_id, ttl_seconds)

    Raises:
        RuntimeError: If the session store is unavailable
    """
    ttl = settings.SESSION_REMEMBER_TTL_SECONDS if remember else settings.SESSION_TTL_SECONDS
    session_id = secrets.token_urlsafe(32)
    if not cache_set(_session_key(session_id), str(user_id), ttl=ttl):
        raise RuntimeError("Session store unavailable")
    logger.info(f"Created session for user {user_id} (ttl={ttl}s)")
    return session_id, ttl


def get_session_user_id(session_id: str | None) -> int | None:
    """Resolve a session id to a user id, or None when unknown/expired."""
    if not session_id:
        return None
    value = cache_get(_session_key(session_id))
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Discarding malformed session entry")
        cache_delete(_session_key(session_id))
        return None


def destroy_session(session_id: str | None) -> None:
    if session_id:
        cache_delete(_session_key(session_id))


def set_session_cookie(response: Response, session_id: str, max_age: int) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session_id,
        max_age=max_age,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="none" if settings.SESSION_COOKIE_SECURE else "lax",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=settings.SESSION_COOKIE_NAME)

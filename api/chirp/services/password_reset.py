"""Password reset service for handling password reset tokens.

Tokens live in Redis under the SHA256 of the emailed token, so a token expires
on its own after one hour and can be consumed exactly once.
"""

from __future__ import annotations

import hashlib
import logging
import secrets

from sqlalchemy.orm import Session

from .. import models
from ..cache import cache_get, cache_pop, cache_set
from .email import send_password_reset_email
from .passwords import hash_password
from .rate_limit import check_rate_limit

logger = logging.getLogger(__name__)

# Token expiration: 1 hour
PASSWORD_RESET_TOKEN_TTL_SECONDS = 60 * 60

# Rate limiting: max 3 reset requests per hour per user
RESET_RATE_LIMIT_WINDOW_SECONDS = 60 * 60
RESET_RATE_LIMIT_COUNT = 3

TOKEN_KEY_PREFIX = "password_reset:"


def _hash_token(token: str) -> str:
    """Hash a token using SHA256."""
    return hashlib.sha256(token.encode()).hexdigest()


def _token_key(token: str) -> str:
    return f"{TOKEN_KEY_PREFIX}{_hash_token(token)}"


def create_reset_token(user_id: int) -> str:
    """
    Create a password reset token for a user.

    Returns:
        Plain text token (to be sent via email)

    Raises:
        ValueError: If rate limit exceeded
        RuntimeError: If the token store is unavailable
    """
    allowed, _ = check_rate_limit(
        f"ratelimit:password_reset:{user_id}",
        RESET_RATE_LIMIT_COUNT,
        RESET_RATE_LIMIT_WINDOW_SECONDS,
    )
    if not allowed:
        raise ValueError("Rate limit exceeded. Please wait before requesting another password reset.")

    plain_token = secrets.token_hex(32)
    if not cache_set(_token_key(plain_token), str(user_id), ttl=PASSWORD_RESET_TOKEN_TTL_SECONDS):
        raise RuntimeError("Password reset token store unavailable")

    logger.info(f"Created password reset token for user {user_id}")
    return plain_token


def peek_reset_token(token: str) -> int | None:
    """Return the user id a token belongs to without consuming it."""
    value = cache_get(_token_key(token))
    return _as_user_id(value)


def consume_reset_token(token: str) -> int | None:
    """
    Consume a password reset token.

    Returns:
        The user id if the token was valid, None otherwise. A second call with
        the same token always returns None.
    """
    value = cache_pop(_token_key(token))
    user_id = _as_user_id(value)
    if user_id is not None:
        logger.info(f"Consumed password reset token for user {user_id}")
    return user_id


def _as_user_id(value: object) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def send_reset_email_for_user(user: models.User) -> bool:
    """
    Create a reset token and send password reset email to a user.

    Returns:
        True if email was sent successfully, False otherwise

    Raises:
        ValueError: If rate limit exceeded
        RuntimeError: If the token store is unavailable
    """
    token = create_reset_token(user.id)

    result = send_password_reset_email(
        to_email=user.email,
        token=token,
        username=user.username,
    )
    return result is not None


def reset_password(db: Session, token: str, new_password: str) -> models.User | None:
    """
    Consume a token and set a new password.

    Returns:
        The updated user, or None if the token was invalid/expired/used.
    """
    user_id = consume_reset_token(token)
    if user_id is None:
        return None

    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        logger.warning(f"Password reset token referenced missing user {user_id}")
        return None

    user.password_hash = hash_password(new_password)
    db.commit()
    db.refresh(user)
    logger.info(f"Password reset successful for user {user.id}")
    return user

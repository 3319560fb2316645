from __future__ import annotations

import logging
import os
from datetime import timedelta

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from . import models, settings
from .db import utcnow
from .deps import get_db
from .services.sessions import get_session_user_id

logger = logging.getLogger(__name__)

# Security scheme for Bearer token
oauth2_scheme = HTTPBearer(auto_error=False)

# JWT Configuration
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
if not JWT_SECRET_KEY:
    raise RuntimeError(
        "JWT_SECRET_KEY environment variable is required but not set. "
        "Generate a secure key with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
    )
# Minimum key length (256 bits)
if len(JWT_SECRET_KEY) < 32:
    raise RuntimeError(
        "JWT_SECRET_KEY is too short. Must be at least 32 characters long. "
        "Generate a secure key with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
    )
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_ACCESS_TOKEN_EXPIRE_DAYS = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_DAYS", "7"))


def create_access_token(user: models.User, expires_in_seconds: int | None = None) -> str:
    """
    Create a JWT access token for a user.
    """
    if expires_in_seconds is None:
        expires_in_seconds = JWT_ACCESS_TOKEN_EXPIRE_DAYS * 24 * 60 * 60

    now = utcnow()
    payload = {
        "user_id": user.id,
        "username": user.username,
        "email": user.email,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in_seconds),
    }

    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> int | None:
    """Return the user id carried by a valid token, None for any invalid token."""
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired access token")
        return None
    except jwt.InvalidTokenError:
        logger.debug("Rejected invalid access token")
        return None

    user_id = payload.get("user_id")
    try:
        return int(user_id)
    except (TypeError, ValueError):
        return None


def _load_user(db: Session, user_id: int | None) -> models.User | None:
    if user_id is None:
        return None
    return db.query(models.User).filter(models.User.id == user_id).first()


def resolve_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
    db: Session,
) -> tuple[models.User | None, bool]:
    """
    Resolve the acting user from a Bearer token, then from the session cookie.

    Returns:
        Tuple of (user or None, whether a bearer token was presented and rejected)
    """
    bearer_rejected = False

    if credentials and credentials.credentials:
        user = _load_user(db, decode_access_token(credentials.credentials))
        if user:
            return user, False
        bearer_rejected = True

    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    user = _load_user(db, get_session_user_id(session_id))
    if user:
        return user, False

    return None, bearer_rejected


def wants_html(request: Request) -> bool:
    """True for browser navigation, which gets redirected instead of a JSON error."""
    if request.headers.get("X-Requested-With", "").lower() == "xmlhttprequest":
        return False
    accept = request.headers.get("Accept", "").lower()
    return "text/html" in accept and "json" not in accept


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    """
    Get the current authenticated user from a Bearer token or session cookie.
    """
    user, bearer_rejected = resolve_user(request, credentials, db)
    if user:
        return user

    if wants_html(request):
        raise HTTPException(
            status_code=status.HTTP_303_SEE_OTHER,
            detail="Authentication required",
            headers={"Location": "/login"},
        )

    if bearer_rejected:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired token",
        )

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_optional(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User | None:
    """
    Get current user if authenticated, None otherwise.

    Used for endpoints that work differently for authenticated vs anonymous users.
    """
    user, _ = resolve_user(request, credentials, db)
    return user


def require_self(user_id: int, current_user: models.User, action: str = "modify") -> None:
    """
    Require that the path user is the acting user.

    Raises 403 Forbidden otherwise.
    """
    if user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You can only {action} your own account",
        )


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request, handling proxies.

    X-Forwarded-For is only honoured when the direct peer is one of
    TRUSTED_PROXIES. The client is then the right-most hop that is not
    itself a trusted proxy; entries left of it are client-supplied.
    """
    peer = request.client.host if request.client else None

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for and peer in settings.TRUSTED_PROXIES:
        hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
        for hop in reversed(hops):
            if hop not in settings.TRUSTED_PROXIES:
                return hop

    return peer or "unknown"

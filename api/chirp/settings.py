"""Centralized environment-driven settings.

Keep this module lightweight: stdlib only, no app imports, to avoid circular deps.
"""

from __future__ import annotations

import os


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# Run Alembic migrations during startup (disable for tests / read replicas)
RUN_MIGRATIONS: bool = _bool_env("RUN_MIGRATIONS", True)

# Public base URL, used in password reset links
BASE_URL: str = os.getenv("BASE_URL", "http://localhost:5173")

# Sessions (server-side, stored in Redis)
SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "chirp_session")
SESSION_TTL_SECONDS: int = _int_env("SESSION_TTL_SECONDS", 7 * 24 * 60 * 60)
SESSION_REMEMBER_TTL_SECONDS: int = _int_env("SESSION_REMEMBER_TTL_SECONDS", 30 * 24 * 60 * 60)
SESSION_COOKIE_SECURE: bool = _bool_env("SESSION_COOKIE_SECURE", ENVIRONMENT == "production")

# Uploads
# Configured via .env: MAX_UPLOAD_SIZE_BYTES=10485760  (10 MiB)
MAX_UPLOAD_SIZE_BYTES: int = _int_env("MAX_UPLOAD_SIZE_BYTES", 10 * 1024 * 1024)
CLOUDINARY_UPLOAD_TIMEOUT: int = _int_env("CLOUDINARY_UPLOAD_TIMEOUT", 60)
CLOUDINARY_POST_FOLDER: str = os.getenv("CLOUDINARY_POST_FOLDER", "chirp/posts")
CLOUDINARY_PROFILE_IMAGE_FOLDER: str = os.getenv("CLOUDINARY_PROFILE_IMAGE_FOLDER", "chirp/profile_images")
CLOUDINARY_PROFILE_COVER_FOLDER: str = os.getenv("CLOUDINARY_PROFILE_COVER_FOLDER", "chirp/profile_covers")

# Default images assigned at registration. Their keys are never deleted.
DEFAULT_PROFILE_PHOTO_URL: str = os.getenv(
    "DEFAULT_PROFILE_PHOTO_URL",
    "https://res.cloudinary.com/chirp/image/upload/v1/defaults/profile.png",
)
DEFAULT_PROFILE_PHOTO_KEY: str = os.getenv("DEFAULT_PROFILE_PHOTO_KEY", "defaults/profile")
DEFAULT_COVER_PHOTO_URL: str = os.getenv(
    "DEFAULT_COVER_PHOTO_URL",
    "https://res.cloudinary.com/chirp/image/upload/v1/defaults/cover.webp",
)
DEFAULT_COVER_PHOTO_KEY: str = os.getenv("DEFAULT_COVER_PHOTO_KEY", "defaults/cover")

# Temporary verification ("premium") lasts this long after activation
VERIFICATION_DURATION_SECONDS: int = _int_env("VERIFICATION_DURATION_SECONDS", 2 * 60)

# Naive per-client rate limiting
RATE_LIMIT_ENABLED: bool = _bool_env("RATE_LIMIT_ENABLED", True)
RATE_LIMIT_MAX_REQUESTS: int = _int_env("RATE_LIMIT_MAX_REQUESTS", 100)
RATE_LIMIT_WINDOW_SECONDS: int = _int_env("RATE_LIMIT_WINDOW_SECONDS", 15 * 60)

# Feed pagination
FEED_DEFAULT_LIMIT: int = _int_env("FEED_DEFAULT_LIMIT", 10)
FEED_MAX_LIMIT: int = _int_env("FEED_MAX_LIMIT", 50)

# Reverse proxies whose X-Forwarded-For header is trusted (comma-separated IPs)
TRUSTED_PROXIES: frozenset[str] = frozenset(
    ip.strip() for ip in os.getenv("TRUSTED_PROXIES", "").split(",") if ip.strip()
)

"""Image uploads to Cloudinary.

Every stored image is identified by the provider's public id (``key``), which is
what we persist next to the public URL so the image can be deleted later. The
configured default profile/cover keys are shared by many users and are never
deleted.
"""

from __future__ import annotations

import base64
import io
import logging
import os
from dataclasses import dataclass

import cloudinary
import cloudinary.uploader
from PIL import Image, UnidentifiedImageError

from . import settings

logger = logging.getLogger(__name__)

# Allowed image MIME types
ALLOWED_MIME_TYPES: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}

EXTENSION_TO_MIME: dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}

PROFILE_TRANSFORMATION = [
    {"width": 400, "height": 400, "crop": "fill", "gravity": "face"},
    {"quality": "auto", "fetch_format": "auto"},
]
COVER_TRANSFORMATION = [
    {"width": 1500, "height": 500, "crop": "fill"},
    {"quality": "auto", "fetch_format": "auto"},
]
POST_TRANSFORMATION = [
    {"width": 1200, "height": 1200, "crop": "limit"},
    {"quality": "auto", "fetch_format": "auto"},
]


class AssetUploadError(Exception):
    """Raised when an image is rejected or the provider upload fails."""


@dataclass(frozen=True)
class StoredAsset:
    url: str
    key: str
    bytes: int
    width: int | None = None
    height: int | None = None
    format: str | None = None


_configured = False


def _configure_cloudinary() -> None:
    """Apply credentials from the environment once (CLOUDINARY_URL also works)."""
    global _configured
    if _configured:
        return

    cloud_name = os.getenv("CLOUDINARY_CLOUD_NAME")
    api_key = os.getenv("CLOUDINARY_API_KEY")
    api_secret = os.getenv("CLOUDINARY_API_SECRET")
    if cloud_name and api_key and api_secret:
        cloudinary.config(
            cloud_name=cloud_name,
            api_key=api_key,
            api_secret=api_secret,
            secure=True,
        )
    else:
        logger.warning("Cloudinary credentials not fully configured; relying on CLOUDINARY_URL")
    _configured = True


def normalize_mime_type(content_type: str | None, filename: str | None = None) -> str:
    """
    Resolve the declared content type to an allowed MIME type.

    Falls back to the file extension when the declared type is missing or
    unknown.

    Raises:
        AssetUploadError: If neither the type nor the extension is allowed
    """
    mime_type = (content_type or "").lower().strip()
    if mime_type == "image/jpg":
        mime_type = "image/jpeg"

    if mime_type not in ALLOWED_MIME_TYPES:
        name = filename or ""
        ext = name.lower().rsplit(".", 1)[-1] if "." in name else ""
        mime_type = EXTENSION_TO_MIME.get(ext, "")

    if mime_type not in ALLOWED_MIME_TYPES:
        raise AssetUploadError(
            "Invalid image format. Allowed formats: JPEG, PNG, GIF, WebP"
        )
    return mime_type


def validate_image(file_content: bytes, mime_type: str) -> tuple[int, int]:
    """
    Check size limits and that the bytes decode as an image.

    Returns:
        (width, height) of the decoded image
    """
    if not file_content:
        raise AssetUploadError("Uploaded image is empty")

    if len(file_content) > settings.MAX_UPLOAD_SIZE_BYTES:
        max_mb = settings.MAX_UPLOAD_SIZE_BYTES / (1024 * 1024)
        actual_mb = len(file_content) / (1024 * 1024)
        raise AssetUploadError(
            f"File size ({actual_mb:.2f} MB) exceeds maximum of {max_mb:g} MB"
        )

    try:
        with Image.open(io.BytesIO(file_content)) as img:
            img.verify()
            width, height = img.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
        logger.info(f"Rejected upload declared as {mime_type}: {e}")
        raise AssetUploadError(
            "Could not read image file. Please ensure it's a valid image."
        ) from e

    return width, height


def _to_stored_asset(result: dict, fallback_size: int) -> StoredAsset:
    url = result.get("secure_url") or result.get("url")
    key = result.get("public_id")
    if not url or not key:
        raise AssetUploadError("Image upload failed: provider returned no URL")
    return StoredAsset(
        url=url,
        key=key,
        bytes=int(result.get("bytes") or fallback_size),
        width=result.get("width"),
        height=result.get("height"),
        format=result.get("format"),
    )


def _upload(
    file_content: bytes,
    content_type: str | None,
    filename: str | None,
    folder: str,
    transformation: list[dict],
) -> StoredAsset:
    """Validate, then upload with one direct attempt and one data-URI fallback."""
    mime_type = normalize_mime_type(content_type, filename)
    validate_image(file_content, mime_type)
    _configure_cloudinary()

    options = {
        "folder": folder,
        "resource_type": "image",
        "transformation": transformation,
        "timeout": settings.CLOUDINARY_UPLOAD_TIMEOUT,
    }

    try:
        result = cloudinary.uploader.upload(io.BytesIO(file_content), **options)
        return _to_stored_asset(result, len(file_content))
    except AssetUploadError:
        raise
    except Exception as e:
        logger.warning(f"Direct upload to '{folder}' failed, retrying as data URI: {e}")

    data_uri = f"data:{mime_type};base64,{base64.b64encode(file_content).decode('ascii')}"
    try:
        result = cloudinary.uploader.upload(data_uri, **options)
    except Exception as e:
        logger.error(f"Fallback upload to '{folder}' failed: {e}")
        raise AssetUploadError(f"Image upload failed: {e}") from e

    return _to_stored_asset(result, len(file_content))


def upload_profile_image(
    file_content: bytes, content_type: str | None, filename: str | None = None
) -> StoredAsset:
    return _upload(
        file_content,
        content_type,
        filename,
        settings.CLOUDINARY_PROFILE_IMAGE_FOLDER,
        PROFILE_TRANSFORMATION,
    )


def upload_cover_image(
    file_content: bytes, content_type: str | None, filename: str | None = None
) -> StoredAsset:
    return _upload(
        file_content,
        content_type,
        filename,
        settings.CLOUDINARY_PROFILE_COVER_FOLDER,
        COVER_TRANSFORMATION,
    )


def upload_post_image(
    file_content: bytes, content_type: str | None, filename: str | None = None
) -> StoredAsset:
    return _upload(
        file_content,
        content_type,
        filename,
        settings.CLOUDINARY_POST_FOLDER,
        POST_TRANSFORMATION,
    )


def is_default_key(key: str | None) -> bool:
    return key in (settings.DEFAULT_PROFILE_PHOTO_KEY, settings.DEFAULT_COVER_PHOTO_KEY)


def delete_asset(key: str | None) -> bool:
    """
    Best-effort delete of a stored image by its key.

    Returns True if the provider confirmed the deletion, False otherwise.
    Default images are never deleted.
    """
    if not key or is_default_key(key):
        return False

    _configure_cloudinary()
    try:
        result = cloudinary.uploader.destroy(key, resource_type="image", invalidate=True)
    except Exception as e:
        logger.warning(f"Failed to delete asset {key}: {e}")
        return False

    deleted = (result or {}).get("result") == "ok"
    if not deleted:
        logger.warning(f"Asset provider did not delete {key}: {result}")
    return deleted

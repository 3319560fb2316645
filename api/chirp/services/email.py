"""Email service using Resend for sending transactional emails."""

from __future__ import annotations

import logging
import os
from typing import Any

import resend

from .. import settings

logger = logging.getLogger(__name__)

# Resend configuration from environment
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
RESEND_FROM_EMAIL = os.getenv("RESEND_FROM_EMAIL", "noreply@chirp.example.com")


def _init_resend() -> bool:
    """Initialize Resend API key. Returns True if configured."""
    if not RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not configured - email sending disabled")
        return False
    resend.api_key = RESEND_API_KEY
    return True


def build_reset_url(token: str) -> str:
    return f"{settings.BASE_URL.rstrip('/')}/reset-password/{token}"


def send_password_reset_email(
    to_email: str, token: str, username: str | None = None
) -> dict[str, Any] | None:
    """
    Send password reset email to a user.

    Args:
        to_email: The recipient's email address
        token: The reset token (plain, not hashed)
        username: Optional username for personalization

    Returns:
        Resend API response if successful, None if email sending is disabled or fails
    """
    if not _init_resend():
        logger.info(f"Email sending disabled - would send password reset to {to_email}")
        return None

    reset_url = build_reset_url(token)
    greeting = f"Hi {username}!" if username else "Hi there!"

    html_content = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Password Reset Request</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1 style="font-size: 22px;">Password Reset Request</h1>
    <p>{greeting}</p>
    <p>You requested a password reset. Click the link below to reset your password:</p>
    <p style="margin: 30px 0;">
        <a href="{reset_url}"
           style="background: #1d9bf0; color: white; text-decoration: none; padding: 12px 24px; border-radius: 999px; font-weight: bold;">
            Reset Password
        </a>
    </p>
    <p style="color: #666; font-size: 12px; word-break: break-all;">{reset_url}</p>
    <p style="color: #999; font-size: 12px;">
        This link will expire in 1 hour.<br>
        If you didn't request this, please ignore this email.
    </p>
</body>
</html>
"""

    text_content = f"""{greeting}

You requested a password reset. Open the link below to reset your password:
{reset_url}

This link will expire in 1 hour.

If you didn't request this, please ignore this email.
"""

    try:
        params: resend.Emails.SendParams = {
            "from": RESEND_FROM_EMAIL,
            "to": [to_email],
            "subject": "Password Reset Request",
            "html": html_content,
            "text": text_content,
        }

        response = resend.Emails.send(params)
        logger.info(f"Password reset email sent to {to_email}, id: {response.get('id', 'unknown')}")
        return response
    except Exception as e:
        logger.error(f"Failed to send password reset email to {to_email}: {e}")
        return None

"""Time-boxed verification ("premium").

Verification is a stored expiry; a user counts as verified while
``verified_until`` lies in the future. Nothing runs when it lapses.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models, settings
from ..db import utcnow

logger = logging.getLogger(__name__)

SUGGESTION_COUNT = 5


def activate_verification(db: Session, user: models.User) -> models.User:
    user.verified_until = utcnow() + timedelta(seconds=settings.VERIFICATION_DURATION_SECONDS)
    db.commit()
    db.refresh(user)
    logger.info(f"Verification activated for user {user.id} until {user.verified_until}")
    return user


def verification_expires_at(user: models.User):
    """Expiry of an active verification, or None when not verified."""
    return user.verified_until if user.is_verified else None


def suggested_users(db: Session, user: models.User, limit: int = SUGGESTION_COUNT) -> list[models.User]:
    """Random sample of other users."""
    return (
        db.query(models.User)
        .filter(models.User.id != user.id)
        .order_by(func.random())
        .limit(limit)
        .all()
    )

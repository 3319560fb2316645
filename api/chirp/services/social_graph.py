"""Follow and block relationships between users.

Each relationship is a single row keyed by the (actor, target) pair, so the
"following" and "followers" views (and "blocked" / "blocked by") can never
disagree.
"""

from __future__ import annotations

import logging
import random

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models

logger = logging.getLogger(__name__)


class SelfRelationError(ValueError):
    """Raised when a user tries to follow or block themselves."""


# ============================================================================
# FOLLOWS
# ============================================================================


def is_following(db: Session, follower_id: int, following_id: int) -> bool:
    return (
        db.query(models.Follow)
        .filter(
            models.Follow.follower_id == follower_id,
            models.Follow.following_id == following_id,
        )
        .first()
        is not None
    )


def follow(db: Session, follower: models.User, target: models.User) -> bool:
    """
    Make ``follower`` follow ``target``.

    Returns:
        True if a new relation was created, False if it already existed.

    Raises:
        SelfRelationError: If both users are the same
    """
    if follower.id == target.id:
        raise SelfRelationError("You cannot follow yourself")

    if is_following(db, follower.id, target.id):
        return False

    db.add(models.Follow(follower_id=follower.id, following_id=target.id))
    try:
        db.commit()
    except IntegrityError:
        # Concurrent follow already inserted the pair
        db.rollback()
        return False

    logger.info(f"User {follower.id} followed user {target.id}")
    return True


def unfollow(db: Session, follower: models.User, target: models.User) -> bool:
    """
    Remove the follow relation if present.

    Returns:
        True if a relation was removed, False if there was none.
    """
    if follower.id == target.id:
        raise SelfRelationError("You cannot unfollow yourself")

    deleted = (
        db.query(models.Follow)
        .filter(
            models.Follow.follower_id == follower.id,
            models.Follow.following_id == target.id,
        )
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted:
        logger.info(f"User {follower.id} unfollowed user {target.id}")
    return bool(deleted)


def follow_random_user(db: Session, user: models.User) -> models.User | None:
    """Have a newly registered user follow one random pre-existing user."""
    candidate_ids = [
        row[0] for row in db.query(models.User.id).filter(models.User.id != user.id).all()
    ]
    if not candidate_ids:
        return None

    target = db.query(models.User).filter(models.User.id == random.choice(candidate_ids)).first()
    if target is None:
        return None

    follow(db, user, target)
    return target


def get_followers(db: Session, user_id: int) -> list[models.User]:
    return (
        db.query(models.User)
        .join(models.Follow, models.Follow.follower_id == models.User.id)
        .filter(models.Follow.following_id == user_id)
        .order_by(models.Follow.created_at.desc(), models.Follow.id.desc())
        .all()
    )


def get_following(db: Session, user_id: int) -> list[models.User]:
    return (
        db.query(models.User)
        .join(models.Follow, models.Follow.following_id == models.User.id)
        .filter(models.Follow.follower_id == user_id)
        .order_by(models.Follow.created_at.desc(), models.Follow.id.desc())
        .all()
    )


def follow_counts(db: Session, user_id: int) -> tuple[int, int]:
    """Return (followers_count, following_count)."""
    followers = (
        db.query(func.count(models.Follow.id))
        .filter(models.Follow.following_id == user_id)
        .scalar()
    )
    following = (
        db.query(func.count(models.Follow.id))
        .filter(models.Follow.follower_id == user_id)
        .scalar()
    )
    return followers or 0, following or 0


# ============================================================================
# BLOCKS
# ============================================================================


def block(db: Session, blocker: models.User, target: models.User) -> bool:
    """
    Block ``target`` on behalf of ``blocker``. Follow relations are left as-is.

    Returns:
        True if a new block was created, False if it already existed.
    """
    if blocker.id == target.id:
        raise SelfRelationError("You cannot block yourself")

    existing = (
        db.query(models.Block)
        .filter(models.Block.blocker_id == blocker.id, models.Block.blocked_id == target.id)
        .first()
    )
    if existing:
        return False

    db.add(models.Block(blocker_id=blocker.id, blocked_id=target.id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False

    logger.info(f"User {blocker.id} blocked user {target.id}")
    return True


def unblock(db: Session, blocker: models.User, target: models.User) -> bool:
    if blocker.id == target.id:
        raise SelfRelationError("You cannot unblock yourself")

    deleted = (
        db.query(models.Block)
        .filter(models.Block.blocker_id == blocker.id, models.Block.blocked_id == target.id)
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted:
        logger.info(f"User {blocker.id} unblocked user {target.id}")
    return bool(deleted)


def blocked_user_ids(db: Session, user_id: int) -> list[int]:
    """Ids of users that ``user_id`` has blocked."""
    rows = (
        db.query(models.Block.blocked_id)
        .filter(models.Block.blocker_id == user_id)
        .order_by(models.Block.id)
        .all()
    )
    return [row[0] for row in rows]


def blocked_by_ids(db: Session, user_id: int) -> list[int]:
    """Ids of users that have blocked ``user_id``."""
    rows = (
        db.query(models.Block.blocker_id)
        .filter(models.Block.blocked_id == user_id)
        .order_by(models.Block.id)
        .all()
    )
    return [row[0] for row in rows]


def is_blocked_either_way(db: Session, user_a_id: int, user_b_id: int) -> bool:
    return (
        db.query(models.Block)
        .filter(
            or_(
                (models.Block.blocker_id == user_a_id) & (models.Block.blocked_id == user_b_id),
                (models.Block.blocker_id == user_b_id) & (models.Block.blocked_id == user_a_id),
            )
        )
        .first()
        is not None
    )

"""Account deletion."""

from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import models
from ..assets import delete_asset

logger = logging.getLogger(__name__)


def delete_account(db: Session, user: models.User) -> int:
    """
    Delete a user and everything that belongs to them in one transaction.

    Removes the user's posts (with their replies, likes and bookmarks), the
    user's replies and likes everywhere, their bookmarks, and every follow and
    block row in either direction. Messages are kept with the user's side set
    to NULL. Stored images are deleted after the commit, best-effort.

    Returns:
        Number of posts deleted
    """
    user_id = user.id
    asset_keys: list[str] = [
        key for key in (user.profile_photo_key, user.cover_photo_key) if key
    ]

    try:
        posts = db.query(models.Post).filter(models.Post.author_id == user_id).all()
        for post in posts:
            if post.image_key:
                asset_keys.append(post.image_key)
            db.delete(post)
        db.flush()

        own_comment_ids = db.query(models.Comment.id).filter(models.Comment.author_id == user_id)
        db.query(models.CommentLike).filter(
            or_(
                models.CommentLike.user_id == user_id,
                models.CommentLike.comment_id.in_(own_comment_ids.scalar_subquery()),
            )
        ).delete(synchronize_session=False)
        db.query(models.Comment).filter(models.Comment.author_id == user_id).delete(
            synchronize_session=False
        )
        db.query(models.PostLike).filter(models.PostLike.user_id == user_id).delete(
            synchronize_session=False
        )
        db.query(models.Bookmark).filter(models.Bookmark.user_id == user_id).delete(
            synchronize_session=False
        )
        db.query(models.Follow).filter(
            or_(models.Follow.follower_id == user_id, models.Follow.following_id == user_id)
        ).delete(synchronize_session=False)
        db.query(models.Block).filter(
            or_(models.Block.blocker_id == user_id, models.Block.blocked_id == user_id)
        ).delete(synchronize_session=False)

        db.query(models.Message).filter(models.Message.sender_id == user_id).update(
            {models.Message.sender_id: None}, synchronize_session=False
        )
        db.query(models.Message).filter(models.Message.receiver_id == user_id).update(
            {models.Message.receiver_id: None}, synchronize_session=False
        )

        db.delete(user)
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Failed to delete account {user_id}", exc_info=True)
        raise

    logger.info(f"Deleted account {user_id} with {len(posts)} posts")

    for key in asset_keys:
        delete_asset(key)

    return len(posts)

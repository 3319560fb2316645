"""Posts and replies: loading, toggles and response assembly."""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from .. import models, schemas

logger = logging.getLogger(__name__)


# ============================================================================
# LOOKUPS
# ============================================================================


def get_post(db: Session, post_id: int) -> models.Post | None:
    return (
        db.query(models.Post)
        .options(joinedload(models.Post.author))
        .filter(models.Post.id == post_id)
        .first()
    )


def get_comment(db: Session, post_id: int, comment_id: UUID) -> models.Comment | None:
    return (
        db.query(models.Comment)
        .options(joinedload(models.Comment.author))
        .filter(models.Comment.id == comment_id, models.Comment.post_id == post_id)
        .first()
    )


def feed_page(db: Session, page: int, limit: int) -> tuple[list[models.Post], int, int]:
    """
    Reverse-chronological page of every post.

    Returns:
        Tuple of (posts, total_posts, total_pages)
    """
    total_posts = db.query(func.count(models.Post.id)).scalar() or 0
    posts = (
        db.query(models.Post)
        .options(joinedload(models.Post.author))
        .order_by(models.Post.created_at.desc(), models.Post.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return posts, total_posts, math.ceil(total_posts / limit) if limit else 0


def posts_by_author(db: Session, author_id: int) -> list[models.Post]:
    return (
        db.query(models.Post)
        .options(joinedload(models.Post.author))
        .filter(models.Post.author_id == author_id)
        .order_by(models.Post.created_at.desc(), models.Post.id.desc())
        .all()
    )


def bookmarked_posts(db: Session, user_id: int) -> list[models.Post]:
    """Posts bookmarked by a user, most recently bookmarked first."""
    return (
        db.query(models.Post)
        .join(models.Bookmark, models.Bookmark.post_id == models.Post.id)
        .options(joinedload(models.Post.author))
        .filter(models.Bookmark.user_id == user_id)
        .order_by(models.Bookmark.created_at.desc(), models.Bookmark.id.desc())
        .all()
    )


def comments_for_post(db: Session, post_id: int) -> list[models.Comment]:
    return (
        db.query(models.Comment)
        .options(joinedload(models.Comment.author))
        .filter(models.Comment.post_id == post_id)
        .order_by(models.Comment.created_at.asc(), models.Comment.id.asc())
        .all()
    )


# ============================================================================
# TOGGLES
# ============================================================================


def toggle_post_like(db: Session, post: models.Post, user: models.User) -> tuple[bool, int]:
    """
    Like the post if the user hasn't, otherwise remove the like.

    Returns:
        Tuple of (liked, likes_count)
    """
    existing = (
        db.query(models.PostLike)
        .filter(models.PostLike.post_id == post.id, models.PostLike.user_id == user.id)
        .first()
    )
    if existing:
        db.delete(existing)
        db.commit()
        liked = False
    else:
        db.add(models.PostLike(post_id=post.id, user_id=user.id))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
        liked = True

    count = (
        db.query(func.count(models.PostLike.id))
        .filter(models.PostLike.post_id == post.id)
        .scalar()
    )
    return liked, count or 0


def toggle_bookmark(db: Session, post: models.Post, user: models.User) -> bool:
    """Returns True if the post is bookmarked after the call."""
    existing = (
        db.query(models.Bookmark)
        .filter(models.Bookmark.post_id == post.id, models.Bookmark.user_id == user.id)
        .first()
    )
    if existing:
        db.delete(existing)
        db.commit()
        return False

    db.add(models.Bookmark(post_id=post.id, user_id=user.id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
    return True


def toggle_comment_like(
    db: Session, comment: models.Comment, user: models.User
) -> tuple[bool, int]:
    existing = (
        db.query(models.CommentLike)
        .filter(
            models.CommentLike.comment_id == comment.id,
            models.CommentLike.user_id == user.id,
        )
        .first()
    )
    if existing:
        db.delete(existing)
        db.commit()
        liked = False
    else:
        db.add(models.CommentLike(comment_id=comment.id, user_id=user.id))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
        liked = True

    count = (
        db.query(func.count(models.CommentLike.id))
        .filter(models.CommentLike.comment_id == comment.id)
        .scalar()
    )
    return liked, count or 0


# ============================================================================
# RESPONSE ASSEMBLY
# ============================================================================


def serialize_comments(
    db: Session, comments: list[models.Comment], viewer: models.User | None
) -> list[schemas.Comment]:
    if not comments:
        return []

    likes: dict[UUID, list[int]] = defaultdict(list)
    rows = (
        db.query(models.CommentLike.comment_id, models.CommentLike.user_id)
        .filter(models.CommentLike.comment_id.in_([c.id for c in comments]))
        .order_by(models.CommentLike.id)
        .all()
    )
    for comment_id, user_id in rows:
        likes[comment_id].append(user_id)

    result = []
    for comment in comments:
        liked_by = likes.get(comment.id, [])
        result.append(
            schemas.Comment(
                id=comment.id,
                post_id=comment.post_id,
                author_id=comment.author_id,
                author=schemas.UserSummary.model_validate(comment.author) if comment.author else None,
                content=comment.content,
                edited=comment.edited,
                likes=liked_by,
                likes_count=len(liked_by),
                is_liked=viewer is not None and viewer.id in liked_by,
                created_at=comment.created_at,
                updated_at=comment.updated_at,
            )
        )
    return result


def serialize_posts(
    db: Session, posts: list[models.Post], viewer: models.User | None
) -> list[schemas.Post]:
    """Build post responses with author, like list and viewer flags in bulk."""
    if not posts:
        return []

    post_ids = [p.id for p in posts]

    likes: dict[int, list[int]] = defaultdict(list)
    for post_id, user_id in (
        db.query(models.PostLike.post_id, models.PostLike.user_id)
        .filter(models.PostLike.post_id.in_(post_ids))
        .order_by(models.PostLike.id)
        .all()
    ):
        likes[post_id].append(user_id)

    comment_counts = dict(
        db.query(models.Comment.post_id, func.count(models.Comment.id))
        .filter(models.Comment.post_id.in_(post_ids))
        .group_by(models.Comment.post_id)
        .all()
    )

    bookmarked: set[int] = set()
    if viewer is not None:
        bookmarked = {
            row[0]
            for row in db.query(models.Bookmark.post_id)
            .filter(models.Bookmark.user_id == viewer.id, models.Bookmark.post_id.in_(post_ids))
            .all()
        }

    result = []
    for post in posts:
        liked_by = likes.get(post.id, [])
        result.append(
            schemas.Post(
                id=post.id,
                author_id=post.author_id,
                author=schemas.UserSummary.model_validate(post.author) if post.author else None,
                content=post.content,
                image_url=post.image_url,
                edited=post.edited,
                likes=liked_by,
                likes_count=len(liked_by),
                comments_count=comment_counts.get(post.id, 0),
                is_liked=viewer is not None and viewer.id in liked_by,
                is_bookmarked=post.id in bookmarked,
                created_at=post.created_at,
                updated_at=post.updated_at,
            )
        )
    return result


def serialize_post_detail(
    db: Session, post: models.Post, viewer: models.User | None
) -> schemas.PostDetail:
    base = serialize_posts(db, [post], viewer)[0]
    comments = serialize_comments(db, comments_for_post(db, post.id), viewer)
    return schemas.PostDetail(**base.model_dump(), comments=comments)

"""Reply endpoints, nested under posts."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user, get_current_user_optional
from ..deps import get_db
from ..services import content as content_service
from .posts import get_post_or_404

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/posts", tags=["Comments"])


def _get_comment_or_404(db: Session, post_id: int, comment_id: UUID) -> models.Comment:
    comment = content_service.get_comment(db, post_id, comment_id)
    if not comment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
    return comment


def _require_comment_author(comment: models.Comment, current_user: models.User, action: str) -> None:
    if comment.author_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You can only {action} your own replies",
        )


def _single(db: Session, comment: models.Comment, viewer: models.User | None) -> schemas.Comment:
    return content_service.serialize_comments(db, [comment], viewer)[0]


@router.post(
    "/{post_id}/reply",
    response_model=schemas.CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
def reply_to_post(
    post_id: int,
    payload: schemas.CommentCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.CommentResponse:
    post = get_post_or_404(db, post_id)

    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Reply content is required")

    comment = models.Comment(post_id=post.id, author_id=current_user.id, content=content)
    db.add(comment)
    db.commit()
    db.refresh(comment)

    logger.info(f"User {current_user.id} replied to post {post.id}")
    return schemas.CommentResponse(comment=_single(db, comment, current_user))


@router.get("/{post_id}/comments", response_model=schemas.CommentList)
def list_comments(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.CommentList:
    """Replies on a post, oldest first."""
    post = get_post_or_404(db, post_id)
    comments = content_service.comments_for_post(db, post.id)
    return schemas.CommentList(
        comments=content_service.serialize_comments(db, comments, current_user)
    )


@router.post("/{post_id}/comments/{comment_id}/like", response_model=schemas.LikeResponse)
def like_comment(
    post_id: int,
    comment_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.LikeResponse:
    """Toggle the current user's like on a reply."""
    get_post_or_404(db, post_id)
    comment = _get_comment_or_404(db, post_id, comment_id)
    liked, likes_count = content_service.toggle_comment_like(db, comment, current_user)
    return schemas.LikeResponse(liked=liked, likes_count=likes_count)


@router.put("/{post_id}/comments/{comment_id}", response_model=schemas.CommentResponse)
def update_comment(
    post_id: int,
    comment_id: UUID,
    payload: schemas.CommentUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.CommentResponse:
    get_post_or_404(db, post_id)
    comment = _get_comment_or_404(db, post_id, comment_id)
    _require_comment_author(comment, current_user, "edit")

    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Reply content is required")

    comment.content = content
    comment.edited = True
    db.commit()
    db.refresh(comment)

    return schemas.CommentResponse(comment=_single(db, comment, current_user))


@router.delete("/{post_id}/comments/{comment_id}", response_model=schemas.MessageResponse)
def delete_comment(
    post_id: int,
    comment_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.MessageResponse:
    get_post_or_404(db, post_id)
    comment = _get_comment_or_404(db, post_id, comment_id)
    _require_comment_author(comment, current_user, "delete")

    db.delete(comment)
    db.commit()

    logger.info(f"User {current_user.id} deleted reply {comment_id} on post {post_id}")
    return schemas.MessageResponse(message="Reply deleted")

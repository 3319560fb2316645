"""Post endpoints: feed, CRUD, likes and bookmarks."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from .. import models, schemas, settings
from ..assets import AssetUploadError, delete_asset, upload_post_image
from ..auth import get_current_user, get_current_user_optional
from ..deps import get_db
from ..services import content as content_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/posts", tags=["Posts"])

MAX_POST_LENGTH = 1000


def get_post_or_404(db: Session, post_id: int) -> models.Post:
    post = content_service.get_post(db, post_id)
    if not post:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return post


def _require_author(post: models.Post, current_user: models.User, action: str) -> None:
    if post.author_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You can only {action} your own posts",
        )


def _validate_content(content: str) -> str:
    content = content.strip()
    if len(content) > MAX_POST_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Post content must be at most {MAX_POST_LENGTH} characters",
        )
    return content


@router.get("", response_model=schemas.PostPage)
def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.FEED_DEFAULT_LIMIT, ge=1, le=settings.FEED_MAX_LIMIT),
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.PostPage:
    """Reverse-chronological feed of all posts."""
    posts, total_posts, total_pages = content_service.feed_page(db, page, limit)
    return schemas.PostPage(
        posts=content_service.serialize_posts(db, posts, current_user),
        current_page=page,
        total_pages=total_pages,
        total_posts=total_posts,
    )


@router.post("", response_model=schemas.PostResponse, status_code=status.HTTP_201_CREATED)
def create_post(
    content: str = Form(""),
    image: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.PostResponse:
    """Create a post with text, an image, or both."""
    content = _validate_content(content)
    has_image = image is not None and bool(image.filename)
    if not content and not has_image:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Post must have content or an image",
        )

    post = models.Post(author_id=current_user.id, content=content)

    if has_image:
        try:
            asset = upload_post_image(image.file.read(), image.content_type, image.filename)
        except AssetUploadError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        post.image_url = asset.url
        post.image_key = asset.key

    db.add(post)
    db.commit()
    db.refresh(post)

    logger.info(f"User {current_user.id} created post {post.id}")
    return schemas.PostResponse(
        post=content_service.serialize_post_detail(db, post, current_user)
    )


@router.get("/{post_id}", response_model=schemas.PostResponse)
def get_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.PostResponse:
    post = get_post_or_404(db, post_id)
    return schemas.PostResponse(
        post=content_service.serialize_post_detail(db, post, current_user)
    )


@router.put("/{post_id}", response_model=schemas.PostResponse)
def update_post(
    post_id: int,
    content: str | None = Form(None),
    image: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.PostResponse:
    """Edit a post. A new image replaces and deletes the previous one."""
    post = get_post_or_404(db, post_id)
    _require_author(post, current_user, "edit")

    new_content = _validate_content(content) if content is not None else post.content
    has_image = image is not None and bool(image.filename)
    if not new_content and not has_image and not post.image_url:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Post must have content or an image",
        )

    old_image_key = None
    if has_image:
        try:
            asset = upload_post_image(image.file.read(), image.content_type, image.filename)
        except AssetUploadError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        old_image_key = post.image_key
        post.image_url = asset.url
        post.image_key = asset.key

    post.content = new_content
    post.edited = True
    db.commit()
    db.refresh(post)

    if old_image_key:
        delete_asset(old_image_key)

    logger.info(f"User {current_user.id} edited post {post.id}")
    return schemas.PostResponse(
        post=content_service.serialize_post_detail(db, post, current_user)
    )


@router.delete("/{post_id}", response_model=schemas.MessageResponse)
def delete_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.MessageResponse:
    """Delete a post with its replies, likes and bookmarks."""
    post = get_post_or_404(db, post_id)
    _require_author(post, current_user, "delete")

    image_key = post.image_key
    db.delete(post)
    db.commit()

    if image_key:
        delete_asset(image_key)

    logger.info(f"User {current_user.id} deleted post {post_id}")
    return schemas.MessageResponse(message="Post deleted")


@router.post("/{post_id}/like", response_model=schemas.LikeResponse)
def like_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.LikeResponse:
    """Toggle the current user's like."""
    post = get_post_or_404(db, post_id)
    liked, likes_count = content_service.toggle_post_like(db, post, current_user)
    return schemas.LikeResponse(liked=liked, likes_count=likes_count)


@router.post("/{post_id}/bookmark", response_model=schemas.BookmarkResponse)
def bookmark_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.BookmarkResponse:
    """Toggle the bookmark."""
    post = get_post_or_404(db, post_id)
    bookmarked = content_service.toggle_bookmark(db, post, current_user)
    return schemas.BookmarkResponse(bookmarked=bookmarked)

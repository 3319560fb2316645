"""User endpoints: profiles, social graph, verification and account deletion."""

from __future__ import annotations

import logging
import re

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Request,
    Response,
    UploadFile,
    status,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas, settings
from ..assets import (
    AssetUploadError,
    StoredAsset,
    delete_asset,
    upload_cover_image,
    upload_profile_image,
)
from ..auth import get_current_user, get_current_user_optional, require_self
from ..deps import get_db
from ..services import social_graph
from ..services.accounts import delete_account
from ..services.content import bookmarked_posts, posts_by_author, serialize_posts
from ..services.profiles import (
    get_user_by_id,
    get_user_by_username,
    user_full,
    user_list_item,
    user_public,
    username_or_email_taken,
)
from ..services.sessions import clear_session_cookie, destroy_session
from ..services.verification import (
    activate_verification,
    suggested_users,
    verification_expires_at,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])


def _get_user_or_404(db: Session, username: str) -> models.User:
    user = get_user_by_username(db, username)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _get_user_by_id_or_404(db: Session, user_id: int) -> models.User:
    user = get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _premium_status(db: Session, user: models.User) -> schemas.PremiumStatus:
    return schemas.PremiumStatus(
        user=user_full(db, user),
        verified=user.is_verified,
        verification_expires_at=verification_expires_at(user),
        suggestions=[schemas.UserSummary.model_validate(u) for u in suggested_users(db, user)],
    )


# ============================================================================
# CURRENT USER
# ============================================================================


@router.get("/me", response_model=schemas.UserFull)
def get_me(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.UserFull:
    return user_full(db, current_user)


@router.get("/me/premium", response_model=schemas.PremiumStatus)
def get_premium(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.PremiumStatus:
    """Verification status, computed from the stored expiry on every read."""
    return _premium_status(db, current_user)


@router.post("/me/premium", response_model=schemas.PremiumStatus)
def activate_premium(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.PremiumStatus:
    """Mark the current user verified for VERIFICATION_DURATION_SECONDS."""
    activate_verification(db, current_user)
    return _premium_status(db, current_user)


@router.get("/me/bookmarks", response_model=schemas.PostList)
def get_bookmarks(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.PostList:
    posts = bookmarked_posts(db, current_user.id)
    return schemas.PostList(posts=serialize_posts(db, posts, current_user))


# ============================================================================
# DIRECTORY & PROFILES
# ============================================================================


@router.get("", response_model=schemas.UserList)
def list_users(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.UserList:
    """Every user with their block lists."""
    users = db.query(models.User).order_by(models.User.id).all()
    return schemas.UserList(users=[user_list_item(db, u) for u in users])


@router.get("/{username}", response_model=schemas.ProfileResponse)
def get_profile(
    username: str,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.ProfileResponse:
    """A user's profile with their posts, newest first."""
    user = _get_user_or_404(db, username)
    posts = posts_by_author(db, user.id)

    is_following = False
    if current_user and current_user.id != user.id:
        is_following = social_graph.is_following(db, current_user.id, user.id)

    return schemas.ProfileResponse(
        user=user_public(db, user),
        posts=serialize_posts(db, posts, current_user),
        is_following=is_following,
    )


@router.get("/{username}/followers", response_model=schemas.FollowList)
def get_followers(username: str, db: Session = Depends(get_db)) -> schemas.FollowList:
    user = _get_user_or_404(db, username)
    followers = social_graph.get_followers(db, user.id)
    return schemas.FollowList(
        user=schemas.UserSummary.model_validate(user),
        users=[schemas.UserSummary.model_validate(u) for u in followers],
    )


@router.get("/{username}/following", response_model=schemas.FollowList)
def get_following(username: str, db: Session = Depends(get_db)) -> schemas.FollowList:
    user = _get_user_or_404(db, username)
    following = social_graph.get_following(db, user.id)
    return schemas.FollowList(
        user=schemas.UserSummary.model_validate(user),
        users=[schemas.UserSummary.model_validate(u) for u in following],
    )


# ============================================================================
# FOLLOW
# ============================================================================


@router.post("/{username}/follow", response_model=schemas.FollowResponse)
def follow_user(
    username: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.FollowResponse:
    """Follow a user. Following someone already followed is a no-op."""
    target = _get_user_or_404(db, username)
    try:
        created = social_graph.follow(db, current_user, target)
    except social_graph.SelfRelationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    message = f"You are now following {target.username}" if created else f"Already following {target.username}"
    return schemas.FollowResponse(message=message, following=True)


@router.post("/{username}/unfollow", response_model=schemas.FollowResponse)
def unfollow_user(
    username: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.FollowResponse:
    target = _get_user_or_404(db, username)
    try:
        removed = social_graph.unfollow(db, current_user, target)
    except social_graph.SelfRelationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    message = f"You unfollowed {target.username}" if removed else f"Not following {target.username}"
    return schemas.FollowResponse(message=message, following=False)


# ============================================================================
# BLOCK
# ============================================================================


def _block_response(
    db: Session, current_user: models.User, target: models.User, message: str
) -> schemas.BlockResponse:
    return schemas.BlockResponse(
        message=message,
        user_id=current_user.id,
        target_user_id=target.id,
        blocked_users=social_graph.blocked_user_ids(db, current_user.id),
        blocked_by=social_graph.blocked_by_ids(db, target.id),
    )


@router.post("/{user_id}/block", response_model=schemas.BlockResponse)
def block_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.BlockResponse:
    """Block a user. Existing follow relations are kept."""
    target = _get_user_by_id_or_404(db, user_id)
    try:
        social_graph.block(db, current_user, target)
    except social_graph.SelfRelationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _block_response(db, current_user, target, "User blocked successfully")


@router.post("/{user_id}/unblock", response_model=schemas.BlockResponse)
def unblock_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.BlockResponse:
    target = _get_user_by_id_or_404(db, user_id)
    try:
        social_graph.unblock(db, current_user, target)
    except social_graph.SelfRelationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _block_response(db, current_user, target, "User unblocked successfully")


# ============================================================================
# PROFILE UPDATE & ACCOUNT DELETION
# ============================================================================


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@router.put("/{user_id}", response_model=schemas.UserFull)
def update_profile(
    user_id: int,
    username: str | None = Form(None),
    email: str | None = Form(None),
    name: str | None = Form(None, max_length=100),
    bio: str | None = Form(None, max_length=500),
    image: UploadFile | None = File(None, alias="Image"),
    cover: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.UserFull:
    """
    Update the current user's profile.

    Replacing the profile or cover photo deletes the previous image unless it
    is the shared default.
    """
    require_self(user_id, current_user, action="update")

    new_username = _clean(username)
    new_email = _clean(email)
    if new_email:
        new_email = new_email.lower()

    if new_username and not re.match(schemas.USERNAME_PATTERN, new_username):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username may only contain letters, numbers and underscores",
        )
    if new_username and not 3 <= len(new_username) <= 30:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username must be between 3 and 30 characters",
        )
    if new_email and not re.match(schemas.EMAIL_PATTERN, new_email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email address")

    if username_or_email_taken(
        db,
        username=new_username if new_username != current_user.username else None,
        email=new_email if new_email != current_user.email else None,
        exclude_user_id=current_user.id,
    ):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already exists",
        )

    uploaded: list[StoredAsset] = []
    replaced_keys: list[str] = []
    try:
        if image is not None and image.filename:
            asset = upload_profile_image(image.file.read(), image.content_type, image.filename)
            uploaded.append(asset)
            if current_user.profile_photo_key:
                replaced_keys.append(current_user.profile_photo_key)
            current_user.profile_photo_url = asset.url
            current_user.profile_photo_key = asset.key

        if cover is not None and cover.filename:
            asset = upload_cover_image(cover.file.read(), cover.content_type, cover.filename)
            uploaded.append(asset)
            if current_user.cover_photo_key:
                replaced_keys.append(current_user.cover_photo_key)
            current_user.cover_photo_url = asset.url
            current_user.cover_photo_key = asset.key
    except AssetUploadError as e:
        db.rollback()
        for asset in uploaded:
            delete_asset(asset.key)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if new_username:
        current_user.username = new_username
    if new_email:
        current_user.email = new_email
    if name is not None:
        current_user.name = _clean(name)
    if bio is not None:
        current_user.bio = _clean(bio)

    try:
        db.commit()
        db.refresh(current_user)
    except IntegrityError:
        db.rollback()
        for asset in uploaded:
            delete_asset(asset.key)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already exists",
        )

    for key in replaced_keys:
        delete_asset(key)

    logger.info(f"User {current_user.id} updated their profile")
    return user_full(db, current_user)


@router.delete("/{user_id}", response_model=schemas.AccountDeletedResponse)
def delete_user(
    user_id: int,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.AccountDeletedResponse:
    """Delete the current user's account and everything they created."""
    require_self(user_id, current_user, action="delete")

    deleted_posts = delete_account(db, current_user)

    destroy_session(request.cookies.get(settings.SESSION_COOKIE_NAME))
    clear_session_cookie(response)

    return schemas.AccountDeletedResponse(deleted_posts=deleted_posts)

"""User lookups and profile response assembly."""

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models, schemas
from .social_graph import blocked_by_ids, blocked_user_ids, follow_counts


def get_user_by_id(db: Session, user_id: int) -> models.User | None:
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_username(db: Session, username: str) -> models.User | None:
    return db.query(models.User).filter(models.User.username == username).first()


def get_user_by_email(db: Session, email: str) -> models.User | None:
    return (
        db.query(models.User)
        .filter(func.lower(models.User.email) == email.lower().strip())
        .first()
    )


def username_or_email_taken(
    db: Session,
    username: str | None = None,
    email: str | None = None,
    exclude_user_id: int | None = None,
) -> bool:
    filters = []
    if username:
        filters.append(models.User.username == username)
    if email:
        filters.append(func.lower(models.User.email) == email.lower())
    if not filters:
        return False

    query = db.query(models.User.id).filter(filters[0] if len(filters) == 1 else filters[0] | filters[1])
    if exclude_user_id is not None:
        query = query.filter(models.User.id != exclude_user_id)
    return query.first() is not None


def user_public(db: Session, user: models.User) -> schemas.UserPublic:
    followers, following = follow_counts(db, user.id)
    return schemas.UserPublic(
        **schemas.UserSummary.model_validate(user).model_dump(),
        bio=user.bio,
        cover_photo_url=user.cover_photo_url,
        created_at=user.created_at,
        followers_count=followers,
        following_count=following,
    )


def user_full(db: Session, user: models.User) -> schemas.UserFull:
    return schemas.UserFull(
        **user_public(db, user).model_dump(),
        email=user.email,
        verified_until=user.verified_until,
    )


def user_list_item(db: Session, user: models.User) -> schemas.UserListItem:
    return schemas.UserListItem(
        **schemas.UserSummary.model_validate(user).model_dump(),
        email=user.email,
        blocked_users=blocked_user_ids(db, user.id),
        blocked_by=blocked_by_ids(db, user.id),
    )

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from .db import Base, utcnow


# ============================================================================
# CORE ENTITIES
# ============================================================================


class User(Base):
    """User account with credentials and profile information."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    username = Column(String(30), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)

    name = Column(String(100), nullable=True)
    bio = Column(Text, nullable=True)

    # Images hosted by the asset provider; *_key is the provider's deletable id
    profile_photo_url = Column(String(1000), nullable=True)
    profile_photo_key = Column(String(255), nullable=True)
    cover_photo_url = Column(String(1000), nullable=True)
    cover_photo_key = Column(String(255), nullable=True)

    # Time-boxed verification; verified while this lies in the future
    verified_until = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)

    # Relationships
    posts = relationship("Post", back_populates="author", foreign_keys="Post.author_id")
    comments = relationship(
        "Comment", back_populates="author", foreign_keys="Comment.author_id"
    )

    @property
    def is_verified(self) -> bool:
        return self.verified_until is not None and self.verified_until > utcnow()


class Post(Base):
    """User-authored post with optional image."""

    __tablename__ = "posts"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    content = Column(Text, nullable=False, default="")
    image_url = Column(String(1000), nullable=True)
    image_key = Column(String(255), nullable=True)
    edited = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)

    # Relationships
    author = relationship("User", back_populates="posts", foreign_keys=[author_id])
    comments = relationship(
        "Comment",
        back_populates="post",
        cascade="all, delete-orphan",
        order_by="Comment.created_at",
    )
    likes = relationship("PostLike", back_populates="post", cascade="all, delete-orphan")
    bookmarks = relationship("Bookmark", back_populates="post", cascade="all, delete-orphan")

    __table_args__ = (Index("ix_posts_author_created", author_id, created_at.desc()),)


class Comment(Base):
    """Reply on a post."""

    __tablename__ = "comments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    post_id = Column(Integer, ForeignKey("posts.id"), nullable=False, index=True)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    content = Column(Text, nullable=False)
    edited = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)

    # Relationships
    post = relationship("Post", back_populates="comments")
    author = relationship("User", back_populates="comments", foreign_keys=[author_id])
    likes = relationship("CommentLike", back_populates="comment", cascade="all, delete-orphan")

    __table_args__ = (Index("ix_comments_post_created", post_id, created_at),)


# ============================================================================
# SOCIAL FEATURES
# ============================================================================


class PostLike(Base):
    """A user's like on a post."""

    __tablename__ = "post_likes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    post_id = Column(Integer, ForeignKey("posts.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    post = relationship("Post", back_populates="likes")

    __table_args__ = (UniqueConstraint("post_id", "user_id", name="uq_post_like_post_user"),)


class CommentLike(Base):
    """A user's like on a reply."""

    __tablename__ = "comment_likes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    comment_id = Column(Uuid, ForeignKey("comments.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    comment = relationship("Comment", back_populates="likes")

    __table_args__ = (
        UniqueConstraint("comment_id", "user_id", name="uq_comment_like_comment_user"),
    )


class Bookmark(Base):
    """A post saved by a user."""

    __tablename__ = "bookmarks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    post_id = Column(Integer, ForeignKey("posts.id"), nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    post = relationship("Post", back_populates="bookmarks")

    __table_args__ = (UniqueConstraint("user_id", "post_id", name="uq_bookmark_user_post"),)


class Follow(Base):
    """User following relationship."""

    __tablename__ = "follows"

    id = Column(Integer, primary_key=True, autoincrement=True)
    follower_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    following_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        UniqueConstraint(
            "follower_id", "following_id", name="uq_follow_follower_following"
        ),
        Index("ix_follows_following_created", following_id, created_at.desc()),
    )


class Block(Base):
    """User blocking relationship."""

    __tablename__ = "blocks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    blocker_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    blocked_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("blocker_id", "blocked_id", name="uq_block_blocker_blocked"),
    )


# ============================================================================
# MESSAGING
# ============================================================================


class Message(Base):
    """Direct message between two users. Never updated or deleted."""

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    # Nulled when the party deletes their account
    sender_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    receiver_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    content = Column(Text, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        Index("ix_messages_sender_receiver_created", sender_id, receiver_id, created_at),
    )

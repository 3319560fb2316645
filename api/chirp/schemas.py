from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

USERNAME_PATTERN = r"^[A-Za-z0-9_]+$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ============================================================================
# HEALTH & CONFIG
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["ok"] = "ok"
    uptime_s: float | None = None


class Config(BaseModel):
    """Public system configuration."""

    max_post_length: int = 1000
    max_comment_length: int = 1000
    max_message_length: int = 2000
    max_upload_bytes: int
    allowed_image_types: list[str]
    verification_duration_seconds: int


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


# ============================================================================
# USER SCHEMAS
# ============================================================================


class UserSummary(BaseModel):
    """Author card embedded in posts, comments and user lists."""

    id: int
    username: str
    name: str | None = None
    profile_photo_url: str | None = None
    is_verified: bool = False

    model_config = ConfigDict(from_attributes=True)


class UserPublic(UserSummary):
    """Public user profile."""

    bio: str | None = None
    cover_photo_url: str | None = None
    created_at: datetime
    followers_count: int = 0
    following_count: int = 0


class UserFull(UserPublic):
    """Full user profile (for the authenticated user)."""

    email: str
    verified_until: datetime | None = None


class UserListItem(UserSummary):
    """Directory entry, carrying block lists so the client can hide controls."""

    email: str
    blocked_users: list[int] = []
    blocked_by: list[int] = []


class UserList(BaseModel):
    users: list[UserListItem]


class ProfileResponse(BaseModel):
    """A user's profile page."""

    user: UserPublic
    posts: list["Post"]
    is_following: bool = False


class FollowList(BaseModel):
    """Followers or following of a user."""

    user: UserSummary
    users: list[UserSummary]


class FollowResponse(BaseModel):
    success: bool = True
    message: str
    following: bool


class BlockResponse(BaseModel):
    message: str
    user_id: int
    target_user_id: int
    blocked_users: list[int]
    blocked_by: list[int]


class PremiumStatus(BaseModel):
    """Temporary verification status."""

    user: UserFull
    verified: bool
    verification_expires_at: datetime | None = None
    suggestions: list[UserSummary] = []


class AccountDeletedResponse(BaseModel):
    message: str = "Account deleted"
    deleted_posts: int = 0


# ============================================================================
# AUTH SCHEMAS
# ============================================================================


class RegisterRequest(BaseModel):
    """User registration request."""

    username: str = Field(..., min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    email: str = Field(..., min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6, max_length=100)


class LoginRequest(BaseModel):
    """User login request - email and password."""

    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=100)
    remember: bool = False


class AuthResponse(BaseModel):
    """Login/registration response with a bearer token for API clients."""

    message: str
    user: UserFull
    token: str


class ForgotPasswordRequest(BaseModel):
    """Forgot password request - initiates password reset."""

    email: str = Field(..., min_length=1, max_length=255)


class ForgotPasswordResponse(BaseModel):
    """Forgot password response."""

    error: str | None = None
    success: str | None = "If an account exists with this email, a password reset link has been sent."


class ResetPasswordCheck(BaseModel):
    """Result of validating a reset link before showing the form."""

    token: str
    error: str | None = None


class ResetPasswordRequest(BaseModel):
    """Reset password request - completes password reset with the token in the path."""

    password: str = Field(..., min_length=6, max_length=100)
    confirm_password: str = Field(..., min_length=6, max_length=100)


# ============================================================================
# POST SCHEMAS
# ============================================================================


class Comment(BaseModel):
    """Reply on a post."""

    id: UUID
    post_id: int
    author_id: int
    author: UserSummary | None = None
    content: str
    edited: bool = False
    likes: list[int] = []
    likes_count: int = 0
    is_liked: bool = False
    created_at: datetime
    updated_at: datetime | None = None


class CommentCreate(BaseModel):
    """Create reply request."""

    content: str = Field(..., min_length=1, max_length=1000)


class CommentUpdate(BaseModel):
    """Edit reply request."""

    content: str = Field(..., min_length=1, max_length=1000)


class CommentList(BaseModel):
    comments: list[Comment]


class CommentResponse(BaseModel):
    comment: Comment


class Post(BaseModel):
    """Post with author expanded for display."""

    id: int
    author_id: int
    author: UserSummary | None = None
    content: str
    image_url: str | None = None
    edited: bool = False
    likes: list[int] = []
    likes_count: int = 0
    comments_count: int = 0
    is_liked: bool = False
    is_bookmarked: bool = False
    created_at: datetime
    updated_at: datetime | None = None


class PostDetail(Post):
    """Single post with its replies."""

    comments: list[Comment] = []


class PostResponse(BaseModel):
    post: PostDetail


class PostPage(BaseModel):
    """Page of the reverse-chronological feed."""

    posts: list[Post]
    current_page: int
    total_pages: int
    total_posts: int


class PostList(BaseModel):
    posts: list[Post]


class LikeResponse(BaseModel):
    liked: bool
    likes_count: int


class BookmarkResponse(BaseModel):
    bookmarked: bool


# ============================================================================
# MESSAGE SCHEMAS
# ============================================================================


class Message(BaseModel):
    """Direct message."""

    id: int
    sender_id: int | None = None
    receiver_id: int | None = None
    content: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessageCreate(BaseModel):
    """Send message request."""

    receiver: int | None = None
    content: str | None = Field(None, max_length=2000)


class MessageEnvelope(BaseModel):
    message: Message


class MessageList(BaseModel):
    messages: list[Message]


# ============================================================================
# SEARCH SCHEMAS
# ============================================================================


class SearchResultUser(UserSummary):
    type: Literal["user"] = "user"


class SearchResultPost(BaseModel):
    type: Literal["post"] = "post"
    id: int
    content: str
    author_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SearchResults(BaseModel):
    results: list[SearchResultUser | SearchResultPost]


ProfileResponse.model_rebuild()

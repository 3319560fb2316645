"""Registration, login/logout and password reset endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas, settings
from ..auth import create_access_token
from ..deps import get_db
from ..services.passwords import hash_password, verify_password
from ..services.password_reset import (
    peek_reset_token,
    reset_password as reset_password_with_token,
    send_reset_email_for_user,
)
from ..services.profiles import get_user_by_email, user_full, username_or_email_taken
from ..services.sessions import (
    clear_session_cookie,
    create_session,
    destroy_session,
    set_session_cookie,
)
from ..services.social_graph import follow_random_user

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])

INVALID_RESET_TOKEN = "Password reset token is invalid or expired."


def _start_session(response: Response, user: models.User, remember: bool = False) -> None:
    """Attach a session cookie; API clients still get a bearer token if the store is down."""
    try:
        session_id, ttl = create_session(user.id, remember=remember)
    except RuntimeError as e:
        logger.warning(f"Could not create session for user {user.id}: {e}")
        return
    set_session_cookie(response, session_id, ttl)


@router.post(
    "/register",
    response_model=schemas.AuthResponse,
    status_code=status.HTTP_201_CREATED,
)
def register(
    payload: schemas.RegisterRequest,
    response: Response,
    db: Session = Depends(get_db),
) -> schemas.AuthResponse:
    """
    Register a new user.

    - Username and email must be unique
    - The account starts with the default profile and cover photos
    - The new user follows one random existing user
    - A session is started and a bearer token returned
    """
    username = payload.username.strip()
    email = payload.email.lower().strip()

    if username_or_email_taken(db, username=username, email=email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already exists",
        )

    user = models.User(
        username=username,
        email=email,
        password_hash=hash_password(payload.password),
        profile_photo_url=settings.DEFAULT_PROFILE_PHOTO_URL,
        profile_photo_key=settings.DEFAULT_PROFILE_PHOTO_KEY,
        cover_photo_url=settings.DEFAULT_COVER_PHOTO_URL,
        cover_photo_key=settings.DEFAULT_COVER_PHOTO_KEY,
    )
    db.add(user)
    try:
        db.commit()
        db.refresh(user)
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already exists",
        )

    followed = follow_random_user(db, user)
    if followed:
        logger.info(f"New user {user.id} starts out following user {followed.id}")

    _start_session(response, user)
    logger.info(f"Registered user {user.id} ({user.username})")

    return schemas.AuthResponse(
        message="Registration successful",
        user=user_full(db, user),
        token=create_access_token(user),
    )


@router.post("/login", response_model=schemas.AuthResponse)
def login(
    payload: schemas.LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
) -> schemas.AuthResponse:
    """Log in with email and password."""
    user = get_user_by_email(db, payload.email)
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password.",
        )

    _start_session(response, user, remember=payload.remember)
    logger.info(f"User {user.id} logged in")

    return schemas.AuthResponse(
        message="Login successful",
        user=user_full(db, user),
        token=create_access_token(user),
    )


@router.post("/logout", response_model=schemas.MessageResponse)
def logout(request: Request, response: Response) -> schemas.MessageResponse:
    """End the session. Bearer tokens simply expire."""
    destroy_session(request.cookies.get(settings.SESSION_COOKIE_NAME))
    clear_session_cookie(response)
    return schemas.MessageResponse(message="Logged out")


@router.get("/forgot-password", response_model=schemas.ForgotPasswordResponse)
def forgot_password_form() -> schemas.ForgotPasswordResponse:
    return schemas.ForgotPasswordResponse(error=None, success=None)


@router.post("/forgot-password", response_model=schemas.ForgotPasswordResponse)
def forgot_password(
    payload: schemas.ForgotPasswordRequest,
    db: Session = Depends(get_db),
) -> schemas.ForgotPasswordResponse:
    """
    Request a password reset email.

    For security, always returns success even if the email doesn't exist.
    This prevents email enumeration attacks.
    """
    email = payload.email.lower().strip()
    user = get_user_by_email(db, email)

    if user:
        try:
            send_reset_email_for_user(user)
        except ValueError as e:
            # Rate limit exceeded - still return success for security
            logger.warning(f"Password reset rate limit for user {user.id}: {e}")
        except RuntimeError as e:
            logger.error(f"Failed to create password reset token for user {user.id}: {e}")
    else:
        logger.info("Password reset requested for unknown email")

    return schemas.ForgotPasswordResponse()


@router.get("/reset-password/{token}", response_model=schemas.ResetPasswordCheck)
def reset_password_form(token: str) -> schemas.ResetPasswordCheck:
    """Check a reset link before the client shows the new-password form."""
    if peek_reset_token(token) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_RESET_TOKEN)
    return schemas.ResetPasswordCheck(token=token)


@router.post("/reset-password/{token}", response_model=schemas.MessageResponse)
def reset_password(
    token: str,
    payload: schemas.ResetPasswordRequest,
    db: Session = Depends(get_db),
) -> schemas.MessageResponse:
    """
    Reset password using a token from email.

    The token is consumed on the first valid attempt.
    """
    if payload.password != payload.confirm_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Passwords do not match.",
        )

    user = reset_password_with_token(db, token, payload.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_RESET_TOKEN)

    return schemas.MessageResponse(message="Password has been reset. You can now log in.")

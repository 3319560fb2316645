"""Direct message endpoints and the real-time WebSocket."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from .. import models, schemas, settings
from ..auth import decode_access_token, get_current_user
from ..deps import get_db
from ..services.messaging import (
    MessagingBlockedError,
    get_conversation,
    get_inbox,
    send_message,
)
from ..services.profiles import get_user_by_id
from ..services.sessions import get_session_user_id
from ..websocket_manager import connection_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messages", tags=["Messages"])


@router.post("", response_model=schemas.MessageEnvelope, status_code=status.HTTP_201_CREATED)
def create_message(
    payload: schemas.MessageCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.MessageEnvelope:
    """
    Send a direct message.

    Refused with 403 when either user has blocked the other.
    """
    content = (payload.content or "").strip()
    if payload.receiver is None or not content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Receiver and content are required",
        )

    receiver = get_user_by_id(db, payload.receiver)
    if not receiver:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    try:
        message = send_message(db, current_user, receiver, content)
    except MessagingBlockedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    return schemas.MessageEnvelope(message=schemas.Message.model_validate(message))


@router.get("", response_model=schemas.MessageList)
def list_messages(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.MessageList:
    """Every message the current user sent or received."""
    messages = get_inbox(db, current_user.id)
    return schemas.MessageList(messages=[schemas.Message.model_validate(m) for m in messages])


@router.get("/{user_id}", response_model=schemas.MessageList)
def conversation(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.MessageList:
    """Conversation between the current user and another user, oldest first."""
    messages = get_conversation(db, current_user.id, user_id)
    return schemas.MessageList(messages=[schemas.Message.model_validate(m) for m in messages])


@router.websocket("/ws")
async def messages_websocket(
    websocket: WebSocket,
    token: str | None = None,
    db: Session = Depends(get_db),
):
    """
    WebSocket endpoint for real-time messages.

    Clients connect via: ws://host/api/messages/ws?token=<jwt_token>, or
    without a token when the session cookie is present.
    """
    user_id = decode_access_token(token) if token else None
    if user_id is None:
        user_id = get_session_user_id(websocket.cookies.get(settings.SESSION_COOKIE_NAME))

    if user_id is None or get_user_by_id(db, user_id) is None:
        await websocket.close(code=1008, reason="Authentication failed")
        return
    # Release the DB connection; the socket may stay open for hours
    db.close()

    connected = await connection_manager.connect(websocket, user_id)
    if not connected:
        await websocket.close(code=1008, reason="Connection limit reached")
        return

    try:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for user {user_id}")
    finally:
        await connection_manager.disconnect(websocket, user_id)

"""Direct messages and their real-time fan-out."""

from __future__ import annotations

import json
import logging

import redis
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from .. import models, schemas
from ..cache import get_redis_client
from .social_graph import is_blocked_either_way

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "messages:user:"


class MessagingBlockedError(Exception):
    """Raised when either party has blocked the other."""


def user_channel(user_id: int) -> str:
    return f"{CHANNEL_PREFIX}{user_id}"


def send_message(
    db: Session, sender: models.User, receiver: models.User, content: str
) -> models.Message:
    """
    Persist a message and publish it to both parties.

    Raises:
        MessagingBlockedError: If a block exists in either direction
    """
    if is_blocked_either_way(db, sender.id, receiver.id):
        raise MessagingBlockedError("You cannot message this user.")

    message = models.Message(sender_id=sender.id, receiver_id=receiver.id, content=content)
    db.add(message)
    db.commit()
    db.refresh(message)

    logger.info(f"Message {message.id} sent from user {sender.id} to user {receiver.id}")
    publish_message(message)
    return message


def publish_message(message: models.Message) -> None:
    """Publish a committed message on the sender's and receiver's channels."""
    client = get_redis_client()
    if not client:
        logger.warning(f"Redis unavailable, message {message.id} not published")
        return

    payload = json.dumps(
        {
            "event": "newMessage",
            "message": schemas.Message.model_validate(message).model_dump(mode="json"),
        }
    )
    recipients = {uid for uid in (message.sender_id, message.receiver_id) if uid is not None}
    for user_id in recipients:
        try:
            client.publish(user_channel(user_id), payload)
        except redis.RedisError as e:
            logger.error(f"Failed to publish message {message.id} to user {user_id}: {e}")


def get_conversation(db: Session, user_id: int, other_user_id: int) -> list[models.Message]:
    """Messages exchanged between two users, oldest first."""
    return (
        db.query(models.Message)
        .filter(
            or_(
                and_(
                    models.Message.sender_id == user_id,
                    models.Message.receiver_id == other_user_id,
                ),
                and_(
                    models.Message.sender_id == other_user_id,
                    models.Message.receiver_id == user_id,
                ),
            )
        )
        .order_by(models.Message.created_at.asc(), models.Message.id.asc())
        .all()
    )


def get_inbox(db: Session, user_id: int) -> list[models.Message]:
    """Every message the user sent or received, oldest first."""
    return (
        db.query(models.Message)
        .filter(or_(models.Message.sender_id == user_id, models.Message.receiver_id == user_id))
        .order_by(models.Message.created_at.asc(), models.Message.id.asc())
        .all()
    )

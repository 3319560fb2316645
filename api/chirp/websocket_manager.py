"""WebSocket connection manager for real-time messages."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Dict, Set

import redis
from fastapi import WebSocket

from .cache import get_redis_client
from .services.messaging import CHANNEL_PREFIX

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Keeps one room of sockets per user and forwards Pub/Sub traffic into it."""

    def __init__(self, max_connections: int = 15000):
        # Map of user_id -> set of WebSocket connections
        self.active_connections: Dict[int, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()
        self._pubsub_task: asyncio.Task | None = None
        self._running = False
        self._max_connections = max_connections

    async def connect(self, websocket: WebSocket, user_id: int) -> bool:
        """Accept and register a new WebSocket connection. Returns False if limit reached."""
        if self.get_connection_count() >= self._max_connections:
            logger.warning(f"Connection limit reached ({self._max_connections}), rejecting connection")
            return False

        await websocket.accept()
        async with self._lock:
            self.active_connections.setdefault(user_id, set()).add(websocket)
        logger.info(f"User {user_id} connected. Total connections: {self.get_connection_count()}")
        return True

    async def disconnect(self, websocket: WebSocket, user_id: int):
        async with self._lock:
            if user_id in self.active_connections:
                self.active_connections[user_id].discard(websocket)
                if not self.active_connections[user_id]:
                    del self.active_connections[user_id]
        logger.info(f"User {user_id} disconnected. Total connections: {self.get_connection_count()}")

    async def send_to_user(self, payload: dict, user_id: int):
        """Send a payload to every socket in a user's room."""
        connections = list(self.active_connections.get(user_id, ()))
        disconnected = []

        for websocket in connections:
            try:
                await websocket.send_json(payload)
            except Exception as e:
                logger.error(f"Error sending message to user {user_id}: {e}")
                disconnected.append(websocket)

        if disconnected:
            async with self._lock:
                room = self.active_connections.get(user_id)
                if room is not None:
                    room.difference_update(disconnected)
                    if not room:
                        del self.active_connections[user_id]

    def get_connection_count(self) -> int:
        return sum(len(conns) for conns in self.active_connections.values())

    async def start_redis_listener(self):
        """Start the Redis Pub/Sub listener for message broadcasts."""
        if self._running:
            return

        self._running = True
        self._pubsub_task = asyncio.create_task(self._redis_listener())
        logger.info("Redis Pub/Sub listener started")

    async def stop_redis_listener(self):
        self._running = False
        if self._pubsub_task:
            self._pubsub_task.cancel()
            try:
                await self._pubsub_task
            except asyncio.CancelledError:
                pass
            self._pubsub_task = None
        logger.info("Redis Pub/Sub listener stopped")

    async def dispatch(self, pubsub_message: dict):
        """Route one pmessage from ``messages:user:<id>`` to that user's room."""
        channel = pubsub_message["channel"]
        if isinstance(channel, bytes):
            channel = channel.decode("utf-8")
        user_id = int(channel[len(CHANNEL_PREFIX):])

        data = pubsub_message["data"]
        if isinstance(data, bytes):
            data = data.decode("utf-8")

        await self.send_to_user(json.loads(data), user_id)

    async def _redis_listener(self):
        client = get_redis_client()
        if not client:
            logger.error("Redis not available, cannot start Pub/Sub listener")
            self._running = False
            return

        pattern = f"{CHANNEL_PREFIX}*"
        pubsub = client.pubsub()
        pubsub.psubscribe(pattern)

        try:
            while self._running:
                message = await asyncio.to_thread(pubsub.get_message, timeout=1.0)
                if message and message["type"] == "pmessage":
                    try:
                        await self.dispatch(message)
                    except (ValueError, KeyError) as e:
                        logger.error(f"Error processing Redis message: {e}")

                # Small sleep to prevent busy-waiting
                await asyncio.sleep(0.01)
        except redis.RedisError as e:
            logger.error(f"Redis listener error: {e}")
        finally:
            try:
                pubsub.punsubscribe(pattern)
                pubsub.close()
            except redis.RedisError as e:
                logger.error(f"Error closing Redis Pub/Sub: {e}")


# Global connection manager instance
connection_manager = ConnectionManager()

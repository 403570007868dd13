"""Connection manager for real-time WebSocket updates (walk requests, matches, reports)."""
import asyncio
import json
import logging
from typing import Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class UpdatesConnectionManager:
    """Maps user_id -> set of WebSockets. Notify users when their requests or matches change."""

    def __init__(self) -> None:
        self._connections: dict[int, Set[WebSocket]] = {}

    def connect(self, user_id: int, websocket: WebSocket) -> None:
        self._connections.setdefault(user_id, set()).add(websocket)

    def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        if user_id in self._connections:
            self._connections[user_id].discard(websocket)
            if not self._connections[user_id]:
                del self._connections[user_id]

    def connected_users(self) -> list[int]:
        return list(self._connections)

    async def notify_user(self, user_id: int, message: dict) -> None:
        if user_id not in self._connections:
            return
        text = json.dumps(message)
        dead = set()
        for ws in list(self._connections[user_id]):
            try:
                await ws.send_text(text)
            except Exception:
                logger.info("Dropping dead websocket for user %s", user_id, exc_info=True)
                dead.add(ws)
        for ws in dead:
            self.disconnect(user_id, ws)

    async def notify_users(self, user_ids: list[int], message: dict) -> None:
        await asyncio.gather(*[self.notify_user(uid, message) for uid in set(user_ids) if uid is not None])


updates_manager = UpdatesConnectionManager()

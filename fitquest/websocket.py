import logging
from typing import Any, Dict, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks at most one live socket per user."""

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}

    async def register(self, websocket: WebSocket, user_id: Any) -> None:
        user_id = str(user_id)
        previous = self.active_connections.get(user_id)
        self.active_connections[user_id] = websocket
        if previous is not None and previous is not websocket:
            logger.info(f"[WS] Replacing existing connection for user {user_id}")
            try:
                await previous.close(code=4000)
            except Exception as e:
                # The old socket is usually already half-closed
                logger.debug(f"[WS] Closing replaced socket failed: {e!r}")
        logger.info(f"[WS] User {user_id} registered")

    def disconnect(self, websocket: WebSocket, user_id: Optional[Any]) -> None:
        if user_id is None:
            return
        user_id = str(user_id)
        # A replaced socket closing late must not unregister its successor
        if self.active_connections.get(user_id) is websocket:
            del self.active_connections[user_id]
            logger.info(f"[WS] User {user_id} disconnected")

    async def send_to_user(self, user_id: Any, message: Any) -> bool:
        websocket = self.active_connections.get(str(user_id))
        if websocket is None:
            return False
        try:
            await websocket.send_json(message)
        except Exception:
            self.disconnect(websocket, user_id)
            raise
        return True


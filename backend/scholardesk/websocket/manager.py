"""
WebSocket connection registry for real-time notification delivery.
"""
import asyncio
import logging
from typing import Dict, Set, Optional
from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Process-scoped registry of open sockets, keyed by user id.

    Sockets are registered on connect and deregistered on disconnect or on the
    first failed send. Callers address users by id only.
    """

    def __init__(self):
        # Active connections: {user_id: {websocket1, websocket2, ...}}
        self.active_connections: Dict[str, Set[WebSocket]] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def connect(self, websocket: WebSocket, user_id: str):
        """Connect a user's WebSocket."""
        await websocket.accept()
        self._loop = asyncio.get_running_loop()
        self.active_connections.setdefault(user_id, set()).add(websocket)
        logger.info("WebSocket connected", extra={"user_id": user_id})

    def disconnect(self, websocket: WebSocket, user_id: str):
        """Disconnect a user's WebSocket."""
        sockets = self.active_connections.get(user_id)
        if sockets is not None:
            sockets.discard(websocket)
            if not sockets:
                del self.active_connections[user_id]
        logger.info("WebSocket disconnected", extra={"user_id": user_id})

    async def send_personal_message(self, message: dict, user_id: str):
        """Send message to a specific user (all their connections)."""
        disconnected = set()
        for websocket in list(self.active_connections.get(user_id, ())):
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.error(f"Error sending message to user {user_id}: {e}")
                disconnected.add(websocket)

        for ws in disconnected:
            self.disconnect(ws, user_id)

    def push(self, user_id: str, message: dict) -> bool:
        """
        Schedule delivery from synchronous code (request handlers run in a worker
        thread). Returns False when the user has no open socket. Does not wait.
        """
        if not self.is_user_connected(user_id) or self._loop is None or self._loop.is_closed():
            return False
        asyncio.run_coroutine_threadsafe(self.send_personal_message(message, user_id), self._loop)
        return True

    def get_connection_count(self) -> int:
        return sum(len(connections) for connections in self.active_connections.values())

    def get_user_count(self) -> int:
        return len(self.active_connections)

    def is_user_connected(self, user_id: str) -> bool:
        return len(self.active_connections.get(user_id, ())) > 0


# Global connection manager instance
manager = ConnectionManager()

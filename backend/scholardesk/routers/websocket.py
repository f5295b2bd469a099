"""
WebSocket router for real-time notifications.
The token may come from the query string, the access_token cookie or a Bearer header.
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Query, WebSocket, WebSocketDisconnect

from scholardesk.deps import Actor, actor_from_token, require_admin
from scholardesk.websocket.events import EventType, WebSocketEvent
from scholardesk.websocket.manager import manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["websocket"])


@router.websocket("/notifications")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    access_token: Optional[str] = Cookie(None),
):
    final_token = token or access_token
    if not final_token:
        auth_header = websocket.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            final_token = auth_header.split(" ", 1)[1]

    actor = actor_from_token(final_token)
    if actor is None:
        logger.warning("WS connection rejected: missing or invalid token")
        await websocket.close(code=1008, reason="Invalid authentication token")
        return

    user_id = str(actor.id)
    await manager.connect(websocket, user_id)
    try:
        await websocket.send_json(WebSocketEvent.connected(user_id))
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning("Invalid JSON received on websocket", extra={"user_id": user_id})
                continue
            if message.get("type") == "ping":
                await websocket.send_json({"type": EventType.PONG.value, "timestamp": message.get("timestamp")})
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket, user_id)


@router.get("/stats")
async def get_websocket_stats(actor: Actor = Depends(require_admin)):
    """Connection statistics (admin only)."""
    return {
        "total_connections": manager.get_connection_count(),
        "connected_users": manager.get_user_count(),
    }

"""
WebSocket event types and builders.
"""
from enum import Enum
from typing import Dict, Any, Optional
from datetime import datetime


class EventType(str, Enum):
    NOTIFICATION = "notification"
    CONNECTED = "connected"
    PONG = "pong"


class WebSocketEvent:
    """WebSocket event builder."""

    @staticmethod
    def create_event(event_type: EventType, data: Dict[str, Any], user_id: Optional[str] = None) -> Dict[str, Any]:
        event = {
            "type": event_type.value,
            "data": data,
            "timestamp": datetime.utcnow().isoformat()
        }
        if user_id:
            event["user_id"] = user_id
        return event

    @staticmethod
    def notification(notification) -> Dict[str, Any]:
        """Wrap a persisted Notification row."""
        return WebSocketEvent.create_event(
            EventType.NOTIFICATION,
            {
                "id": str(notification.id),
                "type": notification.type,
                "title": notification.title,
                "message": notification.message,
                "subject_id": str(notification.subject_id) if notification.subject_id else None,
                "subject_kind": notification.subject_kind,
                "link": notification.link,
                "metadata": notification.meta or {},
                "actions": notification.actions or [],
                "priority": notification.priority,
                "created_at": notification.created_at.isoformat() if notification.created_at else None,
            },
            user_id=str(notification.user_id),
        )

    @staticmethod
    def connected(user_id: str) -> Dict[str, Any]:
        return WebSocketEvent.create_event(EventType.CONNECTED, {"message": "Connected to real-time updates"}, user_id=user_id)

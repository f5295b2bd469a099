from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from scholardesk.db import get_db
from scholardesk.deps import Actor, get_current_actor
from scholardesk.schemas import NotificationResponse
from scholardesk.services import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationResponse])
def get_notifications(
    unread_only: bool = False,
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Get notifications for current user, newest first"""
    return notification_service.list_notifications(db, actor.id, unread_only, skip, limit)


@router.put("/read-all")
def mark_all_read(db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    count = notification_service.mark_all_read(db, actor.id)
    return {"success": True, "updated": count}


@router.put("/{notification_id}/read")
def mark_notification_read(notification_id: UUID, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    """Mark a notification as read"""
    notification = notification_service.mark_read(db, actor.id, notification_id)
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}

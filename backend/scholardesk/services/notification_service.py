"""
Notification fan-out.

Operations collect their notifications and emails in an Outbox while they run;
the Outbox is dispatched only after the operation has committed. Each recipient
is delivered independently and at most once: a failure is logged and skipped,
never retried, and never undoes the state change that produced it.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from scholardesk.models import Notification, User, UserRole
from scholardesk.services.email_service import EmailService
from scholardesk.websocket.events import WebSocketEvent
from scholardesk.websocket.manager import manager

logger = logging.getLogger(__name__)

HIGH_PRIORITY_TYPES = {"payment_due", "task_urgent", "system_alert"}
MEDIUM_PRIORITY_TYPES = {
    "task_assigned",
    "quote_ready",
    "assignment_delivered",
    "assignment_rejected",
    "review_requested",
    "all_released",
    "release_required",
    "team_member_added",
    "team_member_removed",
    "team_lead_changed",
    "module_assigned",
    "team_request",
    "team_request_response",
    "deliverables_uploaded",
}


def priority_for(notification_type: str) -> str:
    if notification_type in HIGH_PRIORITY_TYPES:
        return "high"
    if notification_type in MEDIUM_PRIORITY_TYPES:
        return "medium"
    return "low"


def action(action_id: str, label: str, kind: str = "navigate", target: Optional[str] = None) -> Dict[str, Any]:
    """UI hint attached to a notification; opaque to the backend."""
    return {"id": action_id, "label": label, "kind": kind, "target": target}


def assignment_link(assignment_id) -> str:
    return f"/assignments/{assignment_id}"


@dataclass
class OutgoingNotification:
    # None means every active admin, resolved at dispatch time
    recipient_id: Optional[UUID]
    type: str
    title: str
    message: str
    subject_id: Optional[UUID] = None
    subject_kind: Optional[str] = "assignment"
    link: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    actions: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class OutgoingEmail:
    address: str
    template_key: str
    data: Dict[str, Any] = field(default_factory=dict)


class Outbox:
    """Side effects gathered during a unit of work, sent after commit."""

    def __init__(self):
        self.notifications: List[OutgoingNotification] = []
        self.emails: List[OutgoingEmail] = []

    def notify(self, recipient_id, type: str, title: str, message: str, **kwargs) -> None:
        self.notifications.append(OutgoingNotification(recipient_id, type, title, message, **kwargs))

    def notify_admins(self, type: str, title: str, message: str, **kwargs) -> None:
        self.notify(None, type, title, message, **kwargs)

    def email(self, address: Optional[str], template_key: str, data: Dict[str, Any]) -> None:
        if address:
            self.emails.append(OutgoingEmail(address, template_key, data))


def active_admin_ids(db: Session) -> List[UUID]:
    rows = db.query(User.id).filter(
        User.role == UserRole.ADMIN,
        User.is_active.is_(True),
    ).order_by(User.created_at).all()
    return [row[0] for row in rows]


def create_notification(
    db: Session,
    recipient_id,
    type: str,
    title: str,
    message: str,
    subject_id=None,
    subject_kind: Optional[str] = None,
    link: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    actions: Optional[List[Dict[str, Any]]] = None,
) -> Notification:
    """Persist one notification and push it to any open socket of the recipient."""
    notification = Notification(
        user_id=recipient_id,
        type=type,
        title=title,
        message=message,
        subject_id=subject_id,
        subject_kind=subject_kind,
        link=link,
        meta=metadata or {},
        actions=actions or [],
        priority=priority_for(type),
        is_read=False,
        created_at=datetime.utcnow(),
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)

    manager.push(str(recipient_id), WebSocketEvent.notification(notification))
    return notification


def dispatch(db: Session, outbox: Outbox) -> int:
    """Deliver everything in the outbox. Returns the number of notifications persisted."""
    delivered = 0
    for item in outbox.notifications:
        if item.recipient_id is not None:
            recipients = [item.recipient_id]
        else:
            try:
                recipients = active_admin_ids(db)
            except Exception:
                logger.exception(f"Admin lookup failed for notification: {item.type}")
                db.rollback()
                continue

        for recipient_id in recipients:
            try:
                create_notification(
                    db,
                    recipient_id,
                    item.type,
                    item.title,
                    item.message,
                    subject_id=item.subject_id,
                    subject_kind=item.subject_kind,
                    link=item.link,
                    metadata=item.metadata,
                    actions=item.actions,
                )
                delivered += 1
            except Exception:
                logger.exception(
                    f"Notification delivery failed: {item.type}",
                    extra={"user_id": str(recipient_id)},
                )
                db.rollback()

    for mail in outbox.emails:
        try:
            EmailService.send_template(mail.address, mail.template_key, mail.data)
        except Exception:
            logger.exception(f"Email delivery failed: {mail.template_key}")

    return delivered


def list_notifications(db: Session, user_id, unread_only: bool = False, skip: int = 0, limit: int = 50) -> List[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc()).offset(skip).limit(limit).all()


def mark_read(db: Session, user_id, notification_id) -> Optional[Notification]:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()
    if notification is None:
        return None
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
        db.commit()
    return notification


def mark_all_read(db: Session, user_id) -> int:
    count = db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    ).update({Notification.is_read: True, Notification.read_at: datetime.utcnow()}, synchronize_session=False)
    db.commit()
    return count

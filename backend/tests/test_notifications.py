"""
Tests for notification fan-out, priorities, read state and post-commit delivery.
"""
import pytest

from scholardesk.models import Assignment, AssignmentStatus, Notification
from scholardesk.services import lifecycle_service, notification_service
from scholardesk.services.email_service import EmailService
from scholardesk.services.notification_service import Outbox


@pytest.mark.parametrize("kind,priority", [
    ("payment_due", "high"),
    ("task_assigned", "medium"),
    ("quote_ready", "medium"),
    ("assignment_completed", "low"),
])
def test_priority_for(kind, priority):
    assert notification_service.priority_for(kind) == priority


def test_create_notification_persists_and_pushes(db_session, dev_a, pushed):
    notification = notification_service.create_notification(
        db_session, dev_a.id, "task_assigned", "New assignment", "You have work",
        metadata={"assignment_id": "abc"},
        actions=[notification_service.action("open_task", "Open Task", target="/assignments/abc")],
    )
    assert notification.priority == "medium"
    assert notification.is_read is False
    assert notification.meta == {"assignment_id": "abc"}
    assert pushed[0][0] == str(dev_a.id)
    assert pushed[0][1]["type"] == "notification"
    assert pushed[0][1]["data"]["actions"][0]["id"] == "open_task"


def test_admin_fanout_skips_inactive_admins(db_session, admin_user, customer, pushed):
    from scholardesk.auth import get_password_hash
    from scholardesk.models import User, UserRole

    retired = User(
        name="Retired Admin", email="old.admin@test.com", password_hash=get_password_hash("x"),
        role=UserRole.ADMIN, is_active=False,
    )
    db_session.add(retired)
    db_session.commit()

    lifecycle_service.create_assignment(db_session, customer, "Case study")
    assert [user_id for user_id, _ in pushed] == [str(admin_user.id)]


def test_failed_delivery_keeps_transition(db_session, make_assignment, admin, monkeypatch):
    assignment = make_assignment()

    def broken(*args, **kwargs):
        raise RuntimeError("push backend down")

    monkeypatch.setattr(notification_service, "create_notification", broken)
    quoted = lifecycle_service.send_quote(db_session, admin, assignment.id, 80)

    assert quoted.status == AssignmentStatus.QUOTED
    db_session.expire_all()
    assert db_session.get(Assignment, assignment.id).status == AssignmentStatus.QUOTED


def test_dispatch_continues_after_one_failure(db_session, dev_a, dev_b, monkeypatch, pushed):
    outbox = Outbox()
    outbox.notify(dev_a.id, "task_assigned", "One", "first")
    outbox.notify(dev_b.id, "task_assigned", "Two", "second")
    outbox.email("someone@test.com", "quote_ready", {"title": "x", "amount": 1})

    original = notification_service.create_notification
    calls = []

    def flaky(db, recipient_id, *args, **kwargs):
        calls.append(recipient_id)
        if recipient_id == dev_a.id:
            raise RuntimeError("boom")
        return original(db, recipient_id, *args, **kwargs)

    def broken_email(*args, **kwargs):
        raise RuntimeError("smtp down")

    monkeypatch.setattr(notification_service, "create_notification", flaky)
    monkeypatch.setattr(EmailService, "send_template", broken_email)

    assert notification_service.dispatch(db_session, outbox) == 1
    assert calls == [dev_a.id, dev_b.id]
    assert db_session.query(Notification).filter(Notification.user_id == dev_b.id).count() == 1


def test_email_without_address_is_dropped():
    outbox = Outbox()
    outbox.email(None, "quote_ready", {})
    assert outbox.emails == []


def test_email_templates_render():
    for key in ("quote_ready", "assignment_delivered", "assignment_rejected"):
        assert EmailService.send_template("client@test.com", key, {"client_name": "Sam", "title": "Essay", "amount": 90.0}) is True


def test_read_state(db_session, dev_a, dev_b, pushed):
    first = notification_service.create_notification(db_session, dev_a.id, "info", "A", "a")
    notification_service.create_notification(db_session, dev_a.id, "info", "B", "b")
    notification_service.create_notification(db_session, dev_b.id, "info", "C", "c")

    assert notification_service.mark_read(db_session, dev_b.id, first.id) is None
    assert notification_service.mark_read(db_session, dev_a.id, first.id).is_read is True
    assert len(notification_service.list_notifications(db_session, dev_a.id, unread_only=True)) == 1
    assert notification_service.mark_all_read(db_session, dev_a.id) == 1
    assert notification_service.list_notifications(db_session, dev_a.id, unread_only=True) == []
    assert len(notification_service.list_notifications(db_session, dev_b.id, unread_only=True)) == 1


def test_admin_recipients_resolved_at_dispatch(db_session, admin_user, dev_a, pushed):
    outbox = Outbox()
    outbox.notify_admins("review_requested", "Ready for review", "Essay is ready")
    assert [n.recipient_id for n in outbox.notifications] == [None]

    assert notification_service.dispatch(db_session, outbox) == 1
    stored = db_session.query(Notification).filter(Notification.user_id == admin_user.id).one()
    assert stored.type == "review_requested"


def test_admin_lookup_failure_does_not_fail_the_operation(db_session, admin_user, customer, dev_a, monkeypatch, pushed):
    def broken_lookup(db):
        raise RuntimeError("replica down")

    monkeypatch.setattr(notification_service, "active_admin_ids", broken_lookup)
    assignment = lifecycle_service.create_assignment(db_session, customer, "Lab report", subject="Biology")

    db_session.expire_all()
    assert db_session.get(Assignment, assignment.id).status == AssignmentStatus.PENDING
    assert db_session.query(Notification).filter(Notification.user_id == admin_user.id).count() == 0

    outbox = Outbox()
    outbox.notify_admins("team_request", "Team request", "Need help")
    outbox.notify(dev_a.id, "task_assigned", "New assignment", "You have work")
    assert notification_service.dispatch(db_session, outbox) == 1

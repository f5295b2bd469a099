"""
Admin and client lifecycle operations: quote, accept/decline, reject, assign,
review, deliver, complete, cancel.

Each operation validates everything before its first write, commits, and only
then hands its notifications and emails to notification_service.dispatch.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from scholardesk.exceptions import AuthorizationError, ValidationError
from scholardesk.lifecycle.records import append_note, load_assignment
from scholardesk.lifecycle.state_machine import apply_transition, ensure_transition, touch
from scholardesk.models import (
    Assignment,
    AssignmentStatus,
    Deliverable,
    PaymentStatus,
    TeamRole,
    UserRole,
)
from scholardesk.rbac import can_view_assignment, is_admin
from scholardesk.services import notification_service, team_service, workspace_service
from scholardesk.services.worker_service import assignments_for_worker_query
from scholardesk.services.notification_service import Outbox, action, assignment_link
from scholardesk.utils.retry import retry_on_version_conflict

logger = logging.getLogger(__name__)


def _payload(assignment: Assignment, **extra) -> Dict[str, Any]:
    return {"assignment_id": str(assignment.id), "title": assignment.title, "status": assignment.status.value, **extra}


def _client_email_data(assignment: Assignment, **extra) -> Dict[str, Any]:
    client = assignment.client
    return {
        "client_name": client.name if client else "",
        "title": assignment.title,
        "assignment_id": str(assignment.id),
        **extra,
    }


# --- Client side ---


def create_assignment(
    db: Session,
    actor,
    title: str,
    subject: Optional[str] = None,
    description: Optional[str] = None,
    deadline: Optional[datetime] = None,
) -> Assignment:
    if not (title or "").strip():
        raise ValidationError("Title is required", reason="TITLE_REQUIRED")
    now = datetime.utcnow()
    assignment = Assignment(
        title=title.strip(),
        subject=subject,
        description=description,
        deadline=deadline,
        client_id=actor.id,
        status=AssignmentStatus.PENDING,
        progress=0,
        payment_status=PaymentStatus.UNPAID,
        status_history=[{"from": None, "to": AssignmentStatus.PENDING.value, "at": now.isoformat(), "actor_id": str(actor.id), "reason": None}],
        created_at=now,
        updated_at=now,
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)

    outbox = Outbox()
    outbox.notify_admins(
        "assignment_requested", "New assignment request",
        f"{actor.name} requested '{assignment.title}'",
        subject_id=assignment.id, link=assignment_link(assignment.id), metadata=_payload(assignment),
        actions=[action("send_quote", "Send Quote", "api", f"{assignment_link(assignment.id)}/quote")],
    )
    notification_service.dispatch(db, outbox)
    logger.info("Assignment created", extra={"assignment_id": str(assignment.id), "user_id": str(actor.id)})
    return assignment


def list_assignments(db: Session, actor, status: Optional[AssignmentStatus] = None) -> List[Assignment]:
    """Admin sees everything, a client their own, a worker what they are actively on."""
    query = db.query(Assignment)
    if actor.role == UserRole.CLIENT:
        query = query.filter(Assignment.client_id == actor.id)
    elif not is_admin(actor):
        query = assignments_for_worker_query(db, actor.id)
    if status is not None:
        query = query.filter(Assignment.status == status)
    return query.order_by(Assignment.created_at.desc()).all()


def get_assignment(db: Session, actor, assignment_id) -> Assignment:
    assignment = load_assignment(db, assignment_id, for_update=False)
    if not can_view_assignment(actor, assignment):
        raise AuthorizationError("You do not have access to this assignment", reason="NOT_VISIBLE")
    return assignment


def _require_owner(actor, assignment: Assignment) -> None:
    if assignment.client_id != actor.id:
        raise AuthorizationError("Only the requesting client can do this", reason="NOT_OWNER")


@retry_on_version_conflict
def _accept_quote(db, actor, assignment_id):
    assignment = load_assignment(db, assignment_id)
    _require_owner(actor, assignment)
    apply_transition(db, assignment, AssignmentStatus.ACCEPTED, actor_id=actor.id)
    db.commit()
    db.refresh(assignment)

    outbox = Outbox()
    outbox.notify_admins(
        "quote_accepted", "Quote accepted",
        f"{actor.name} accepted the quote for '{assignment.title}'",
        subject_id=assignment.id, link=assignment_link(assignment.id), metadata=_payload(assignment),
        actions=[action("assign_workers", "Assign Workers", "api", f"{assignment_link(assignment.id)}/assign")],
    )
    return assignment, outbox


def accept_quote(db: Session, actor, assignment_id) -> Assignment:
    assignment, outbox = _accept_quote(db, actor, assignment_id)
    notification_service.dispatch(db, outbox)
    return assignment


@retry_on_version_conflict
def _decline_quote(db, actor, assignment_id, reason):
    assignment = load_assignment(db, assignment_id)
    _require_owner(actor, assignment)
    apply_transition(db, assignment, AssignmentStatus.DECLINED, actor_id=actor.id, reason=reason)
    db.commit()
    db.refresh(assignment)

    outbox = Outbox()
    outbox.notify_admins(
        "quote_declined", "Quote declined",
        f"{actor.name} declined the quote for '{assignment.title}'",
        subject_id=assignment.id, link=assignment_link(assignment.id), metadata=_payload(assignment, reason=reason),
    )
    return assignment, outbox


def decline_quote(db: Session, actor, assignment_id, reason: Optional[str] = None) -> Assignment:
    assignment, outbox = _decline_quote(db, actor, assignment_id, reason)
    notification_service.dispatch(db, outbox)
    return assignment


# --- Admin side ---


@retry_on_version_conflict
def _send_quote(db, actor, assignment_id, amount, deadline, note):
    if amount is None or amount <= 0:
        raise ValidationError("Quote amount must be greater than zero", reason="INVALID_AMOUNT")
    assignment = load_assignment(db, assignment_id)
    ensure_transition(assignment, AssignmentStatus.QUOTED)

    assignment.quoted_amount = float(amount)
    if deadline is not None:
        assignment.deadline = deadline
    if note:
        append_note(assignment, note, actor)
    apply_transition(db, assignment, AssignmentStatus.QUOTED, actor_id=actor.id, metadata={"amount": float(amount)})
    db.commit()
    db.refresh(assignment)

    outbox = Outbox()
    link = assignment_link(assignment.id)
    outbox.notify(
        assignment.client_id, "quote_ready", "Your quote is ready",
        f"Quote for '{assignment.title}': {assignment.quoted_amount:.2f}",
        subject_id=assignment.id, link=link, metadata=_payload(assignment, amount=assignment.quoted_amount),
        actions=[
            action("view_quote", "View Quote", target=link),
            action("accept_quote", "Accept Quote", "api", f"{link}/accept"),
        ],
    )
    outbox.email(
        assignment.client.email if assignment.client else None,
        "quote_ready",
        _client_email_data(
            assignment,
            amount=assignment.quoted_amount,
            deadline=assignment.deadline.strftime("%Y-%m-%d") if assignment.deadline else None,
        ),
    )
    return assignment, outbox


def send_quote(db: Session, actor, assignment_id, amount: float, deadline: Optional[datetime] = None,
               note: Optional[str] = None) -> Assignment:
    assignment, outbox = _send_quote(db, actor, assignment_id, amount, deadline, note)
    notification_service.dispatch(db, outbox)
    return assignment


@retry_on_version_conflict
def _reject(db, actor, assignment_id, reason):
    assignment = load_assignment(db, assignment_id)
    ensure_transition(assignment, AssignmentStatus.REJECTED)
    assignment.rejection_reason = reason
    apply_transition(db, assignment, AssignmentStatus.REJECTED, actor_id=actor.id, reason=reason)
    db.commit()
    db.refresh(assignment)

    outbox = Outbox()
    message = f"Your request '{assignment.title}' was not accepted"
    if reason:
        message += f": {reason}"
    outbox.notify(
        assignment.client_id, "assignment_rejected", "Request rejected", message,
        subject_id=assignment.id, link=assignment_link(assignment.id), metadata=_payload(assignment, reason=reason),
    )
    outbox.email(
        assignment.client.email if assignment.client else None,
        "assignment_rejected",
        _client_email_data(assignment, reason=reason),
    )
    return assignment, outbox


def reject(db: Session, actor, assignment_id, reason: Optional[str] = None) -> Assignment:
    assignment, outbox = _reject(db, actor, assignment_id, reason)
    notification_service.dispatch(db, outbox)
    return assignment


@retry_on_version_conflict
def _assign_workers(db, actor, assignment_id, worker_ids):
    assignment = load_assignment(db, assignment_id)
    ensure_transition(assignment, AssignmentStatus.WORKING)

    if not worker_ids:
        raise ValidationError("At least one worker is required", reason="NO_WORKERS")
    if len(set(worker_ids)) != len(worker_ids):
        raise ValidationError("Worker ids must be unique", reason="DUPLICATE_WORKERS")
    workers = [team_service.validate_worker(db, worker_id) for worker_id in worker_ids]

    # Roster becomes exactly worker_ids, first one leads
    wanted = set(worker_ids)
    for member in assignment.active_members:
        if member.worker_id not in wanted:
            team_service.soft_remove_member(member, "Replaced by worker assignment")
    for index, worker in enumerate(workers):
        role = TeamRole.LEAD if index == 0 else TeamRole.DEVELOPER
        member = assignment.member_for(worker.id)
        if member is None:
            team_service.append_member(assignment, worker.id, role)
        elif index == 0 or member.role == TeamRole.LEAD:
            member.role = role

    workspace_service.ensure_workspace(db, assignment, created_by=actor.id)
    apply_transition(
        db, assignment, AssignmentStatus.WORKING,
        actor_id=actor.id,
        metadata={"worker_ids": [str(w) for w in worker_ids]},
    )
    db.commit()
    db.refresh(assignment)

    outbox = Outbox()
    link = assignment_link(assignment.id)
    for member in assignment.active_members:
        outbox.notify(
            member.worker_id, "task_assigned", "New assignment",
            f"You have been assigned to '{assignment.title}' as {member.role.value}",
            subject_id=assignment.id, link=link, metadata=_payload(assignment, role=member.role.value),
            actions=[action("open_task", "Open Task", target=link)],
        )
    return assignment, outbox


def assign_workers(db: Session, actor, assignment_id, worker_ids: List[Any]) -> Assignment:
    assignment, outbox = _assign_workers(db, actor, assignment_id, list(worker_ids or []))
    notification_service.dispatch(db, outbox)
    return assignment


@retry_on_version_conflict
def _move_to_review(db, actor, assignment_id):
    assignment = load_assignment(db, assignment_id)
    apply_transition(db, assignment, AssignmentStatus.REVIEW, actor_id=actor.id)
    assignment.progress = 100
    db.commit()
    db.refresh(assignment)
    return assignment


def move_to_review(db: Session, actor, assignment_id) -> Assignment:
    return _move_to_review(db, actor, assignment_id)


@retry_on_version_conflict
def _deliver(db, actor, assignment_id, files, notes):
    assignment = load_assignment(db, assignment_id)
    ensure_transition(assignment, AssignmentStatus.DELIVERED)
    if not files and not assignment.deliverables:
        raise ValidationError("Nothing to deliver: upload deliverables first", reason="NO_DELIVERABLES")

    now = datetime.utcnow()
    if files:
        version = max((d.version for d in assignment.deliverables), default=0) + 1
        for item in files:
            assignment.deliverables.append(Deliverable(
                file_name=item["file_name"],
                file_url=item["file_url"],
                uploaded_by=actor.id,
                uploaded_at=now,
                version=version,
                is_final=True,
                notes=notes,
            ))
    else:
        latest = max(d.version for d in assignment.deliverables)
        for deliverable in assignment.deliverables:
            if deliverable.version == latest:
                deliverable.is_final = True
    if notes:
        append_note(assignment, notes, actor)

    apply_transition(db, assignment, AssignmentStatus.DELIVERED, actor_id=actor.id)
    db.commit()
    db.refresh(assignment)

    final_files = [d.file_name for d in assignment.deliverables if d.is_final]
    outbox = Outbox()
    link = assignment_link(assignment.id)
    outbox.notify(
        assignment.client_id, "assignment_delivered", "Your assignment is ready",
        f"'{assignment.title}' has been delivered",
        subject_id=assignment.id, link=link, metadata=_payload(assignment, files=final_files),
        actions=[action("download", "Download Files", target=link)],
    )
    outbox.email(
        assignment.client.email if assignment.client else None,
        "assignment_delivered",
        _client_email_data(assignment, files=final_files),
    )
    return assignment, outbox


def deliver(db: Session, actor, assignment_id, files: Optional[List[Dict[str, Any]]] = None,
            notes: Optional[str] = None) -> Assignment:
    assignment, outbox = _deliver(db, actor, assignment_id, files, notes)
    notification_service.dispatch(db, outbox)
    return assignment


release_to_client = deliver


@retry_on_version_conflict
def _complete(db, actor, assignment_id):
    assignment = load_assignment(db, assignment_id)
    apply_transition(db, assignment, AssignmentStatus.COMPLETED, actor_id=actor.id)
    db.commit()
    db.refresh(assignment)

    outbox = Outbox()
    outbox.notify(
        assignment.client_id, "assignment_completed", "Assignment completed",
        f"'{assignment.title}' is now complete",
        subject_id=assignment.id, link=assignment_link(assignment.id), metadata=_payload(assignment),
    )
    return assignment, outbox


def complete(db: Session, actor, assignment_id) -> Assignment:
    assignment, outbox = _complete(db, actor, assignment_id)
    notification_service.dispatch(db, outbox)
    return assignment


@retry_on_version_conflict
def _cancel(db, actor, assignment_id, reason):
    assignment = load_assignment(db, assignment_id)
    ensure_transition(assignment, AssignmentStatus.CANCELLED)
    assignment.cancellation_reason = reason
    apply_transition(db, assignment, AssignmentStatus.CANCELLED, actor_id=actor.id, reason=reason)
    db.commit()
    db.refresh(assignment)

    outbox = Outbox()
    message = f"'{assignment.title}' has been cancelled"
    if reason:
        message += f": {reason}"
    for recipient in [assignment.client_id] + assignment.assigned_worker_list:
        outbox.notify(
            recipient, "assignment_cancelled", "Assignment cancelled", message,
            subject_id=assignment.id, link=assignment_link(assignment.id), metadata=_payload(assignment, reason=reason),
        )
    return assignment, outbox


def cancel(db: Session, actor, assignment_id, reason: Optional[str] = None) -> Assignment:
    assignment, outbox = _cancel(db, actor, assignment_id, reason)
    notification_service.dispatch(db, outbox)
    return assignment


@retry_on_version_conflict
def update_payment_status(db: Session, actor, assignment_id, payment_status: PaymentStatus) -> Assignment:
    assignment = load_assignment(db, assignment_id)
    assignment.payment_status = PaymentStatus(payment_status)
    touch(assignment)
    db.commit()
    db.refresh(assignment)
    logger.info(
        f"Payment status set to {assignment.payment_status.value}",
        extra={"assignment_id": str(assignment.id), "user_id": str(actor.id)},
    )
    return assignment

"""
Worker-facing operations: task list, dashboard stats, submit for review and
deliverable uploads.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Query, Session

from scholardesk.exceptions import AuthorizationError, ValidationError
from scholardesk.lifecycle.records import append_note, load_assignment, round_half_up
from scholardesk.lifecycle.state_machine import EXECUTION_STATUSES, apply_transition, ensure_status, touch
from scholardesk.models import Assignment, AssignmentStatus, Deliverable, MemberStatus, TeamMember
from scholardesk.services import notification_service
from scholardesk.services.notification_service import Outbox, action, assignment_link
from scholardesk.utils.retry import retry_on_version_conflict

logger = logging.getLogger(__name__)

ACTIVE_WORK_STATUSES = (AssignmentStatus.ACCEPTED, AssignmentStatus.WORKING)


def assignments_for_worker_query(db: Session, worker_id) -> Query:
    """Assignments where worker_id has an active roster entry."""
    member_subquery = db.query(TeamMember.assignment_id).filter(
        TeamMember.worker_id == worker_id,
        TeamMember.status == MemberStatus.ACTIVE,
    )
    return db.query(Assignment).filter(Assignment.id.in_(member_subquery))


def list_worker_tasks(db: Session, actor, status: Optional[AssignmentStatus] = None) -> List[Assignment]:
    query = assignments_for_worker_query(db, actor.id)
    if status is not None:
        query = query.filter(Assignment.status == status)
    return query.order_by(Assignment.deadline.is_(None), Assignment.deadline, Assignment.created_at.desc()).all()


def get_worker_stats(db: Session, actor) -> Dict[str, Any]:
    tasks = assignments_for_worker_query(db, actor.id).all()
    by_status: Dict[str, int] = {}
    for task in tasks:
        by_status[task.status.value] = by_status.get(task.status.value, 0) + 1
    return {
        "total_tasks": len(tasks),
        "active_tasks": sum(1 for t in tasks if t.status in ACTIVE_WORK_STATUSES),
        "in_review": sum(1 for t in tasks if t.status in (AssignmentStatus.REVIEW, AssignmentStatus.RELEASED_TO_ADMIN)),
        "delivered": by_status.get(AssignmentStatus.DELIVERED.value, 0),
        "completed": by_status.get(AssignmentStatus.COMPLETED.value, 0),
        "average_progress": round_half_up(sum(t.progress for t in tasks) / len(tasks)) if tasks else 0,
        "by_status": by_status,
    }


@retry_on_version_conflict
def _submit_for_review(db, actor, assignment_id, target_status, notes):
    if target_status != AssignmentStatus.REVIEW.value:
        raise ValidationError("Workers can only move an assignment to review", reason="INVALID_TARGET_STATUS")
    assignment = load_assignment(db, assignment_id)
    if not assignment.is_assigned(actor.id):
        raise AuthorizationError("You are not assigned to this assignment", reason="NOT_ASSIGNED")
    ensure_status(assignment, AssignmentStatus.WORKING)

    apply_transition(db, assignment, AssignmentStatus.REVIEW, actor_id=actor.id, reason=notes)
    assignment.progress = 100
    append_note(assignment, f"Submitted for review: {notes}" if notes else "Submitted for review", actor)
    db.commit()
    db.refresh(assignment)

    outbox = Outbox()
    link = assignment_link(assignment.id)
    outbox.notify_admins(
        "review_requested", "Ready for review",
        f"{actor.name} submitted '{assignment.title}' for review",
        subject_id=assignment.id, link=link,
        metadata={"assignment_id": str(assignment.id), "title": assignment.title, "notes": notes},
        actions=[action("review_deliver", "Review & Deliver", "navigate", link)],
    )
    return assignment, outbox


def submit_for_review(db: Session, actor, assignment_id, target_status: str, notes: Optional[str] = None) -> Assignment:
    """
    Worker-initiated status change. Only `review` is accepted, and only from
    `working`; anything else is rejected without touching the assignment.
    """
    assignment, outbox = _submit_for_review(db, actor, assignment_id, getattr(target_status, "value", target_status), notes)
    notification_service.dispatch(db, outbox)
    return assignment


@retry_on_version_conflict
def _upload_deliverables(db, actor, assignment_id, files, notes):
    if not files:
        raise ValidationError("At least one file is required", reason="NO_FILES")
    assignment = load_assignment(db, assignment_id)
    if not assignment.is_assigned(actor.id):
        raise AuthorizationError("You are not assigned to this assignment", reason="NOT_ASSIGNED")
    ensure_status(assignment, *EXECUTION_STATUSES)

    now = datetime.utcnow()
    version = max((d.version for d in assignment.deliverables), default=0) + 1
    created = []
    for item in files:
        deliverable = Deliverable(
            file_name=item["file_name"],
            file_url=item["file_url"],
            uploaded_by=actor.id,
            uploaded_at=now,
            version=version,
            is_final=False,
            notes=notes,
        )
        assignment.deliverables.append(deliverable)
        created.append(deliverable)
    touch(assignment)
    db.commit()
    for deliverable in created:
        db.refresh(deliverable)

    outbox = Outbox()
    outbox.notify_admins(
        "deliverables_uploaded", "Deliverables uploaded",
        f"{actor.name} uploaded {len(created)} file(s) (v{version}) for '{assignment.title}'",
        subject_id=assignment.id, link=assignment_link(assignment.id),
        metadata={"assignment_id": str(assignment.id), "version": version, "files": [d.file_name for d in created]},
    )
    logger.info(f"Deliverables v{version} uploaded", extra={"assignment_id": str(assignment.id), "user_id": str(actor.id)})
    return created, outbox


def upload_deliverables(db: Session, actor, assignment_id, files: List[Dict[str, Any]], notes: Optional[str] = None) -> List[Deliverable]:
    created, outbox = _upload_deliverables(db, actor, assignment_id, files, notes)
    notification_service.dispatch(db, outbox)
    return created

"""
Release barrier.

Every active team member signals "my portion is done" once. The release that
brings the released count up to the team size moves the assignment to
released-to-admin. The count is always recomputed from the stored ledger; the
assignment's version column makes the barrier check and the transition a single
compare-and-set, so concurrent releases cannot both (or neither) fire it.
"""
import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from scholardesk.exceptions import AuthorizationError, ConflictError, ValidationError
from scholardesk.lifecycle.records import load_assignment
from scholardesk.lifecycle.state_machine import EXECUTION_STATUSES, apply_transition, ensure_status, touch
from scholardesk.models import Assignment, AssignmentStatus, DeveloperRelease
from scholardesk.rbac import is_admin
from scholardesk.services import notification_service
from scholardesk.services.notification_service import Outbox, action, assignment_link
from scholardesk.utils.retry import retry_on_version_conflict

logger = logging.getLogger(__name__)


def release_status(assignment: Assignment) -> Dict[str, Any]:
    """Barrier state computed from the stored roster and ledger."""
    releases = {r.worker_id: r for r in assignment.releases}
    active = assignment.active_members
    workers: List[Dict[str, Any]] = []
    for member in active:
        release = releases.get(member.worker_id)
        workers.append({
            "worker_id": member.worker_id,
            "name": member.worker.name if member.worker else None,
            "role": member.role,
            "released": release is not None,
            "released_at": release.released_at if release else None,
            "deliverables": list(release.deliverables or []) if release else [],
            "notes": release.notes if release else None,
        })
    released_count = sum(1 for w in workers if w["released"])
    required_count = max(1, len(active))
    return {
        "assignment_id": assignment.id,
        "status": assignment.status,
        "released_count": released_count,
        "required_count": required_count,
        "all_released": released_count >= required_count,
        "workers": workers,
    }


def fire_barrier_if_complete(db: Session, assignment: Assignment, actor_id=None, reason: str = "All team members released") -> bool:
    """
    Move the assignment to released-to-admin when every active member has
    released. Needs at least one stored release. Does not commit.
    """
    if assignment.status not in EXECUTION_STATUSES or not assignment.releases:
        return False
    status = release_status(assignment)
    if not status["all_released"]:
        return False
    apply_transition(
        db, assignment, AssignmentStatus.RELEASED_TO_ADMIN,
        actor_id=actor_id,
        reason=reason,
        metadata={"released_count": status["released_count"]},
    )
    return True


def queue_ready_for_delivery(outbox: Outbox, assignment: Assignment, status: Dict[str, Any]) -> None:
    link = assignment_link(assignment.id)
    outbox.notify_admins(
        "all_released", "Ready for delivery",
        f"All {status['required_count']} team member(s) released '{assignment.title}'",
        subject_id=assignment.id, link=link,
        metadata={
            "assignment_id": str(assignment.id),
            "title": assignment.title,
            "released_count": status["released_count"],
            "required_count": status["required_count"],
        },
        actions=[action("release_to_client", "Release to Client", "api", f"{link}/release-to-client")],
    )


def _normalize_files(deliverables) -> List[Dict[str, Any]]:
    files = []
    for item in deliverables or []:
        if isinstance(item, str) and item.strip():
            files.append({"file_name": item})
        elif isinstance(item, Mapping) and isinstance(item.get("file_name"), str) and item["file_name"].strip():
            files.append(dict(item))
        else:
            raise ValidationError(
                "Each deliverable must be a file name or an object with a file_name",
                reason="INVALID_DELIVERABLES",
                details={"item": repr(item)},
            )
    return files


@retry_on_version_conflict
def _release(db: Session, actor, assignment_id, deliverables, notes):
    files = _normalize_files(deliverables)
    assignment = load_assignment(db, assignment_id)
    member = assignment.member_for(actor.id)
    if member is None:
        raise AuthorizationError("You are not assigned to this assignment", reason="NOT_ASSIGNED")
    if any(r.worker_id == actor.id for r in assignment.releases):
        raise ConflictError("You have already released this assignment", reason="ALREADY_RELEASED")
    ensure_status(assignment, *EXECUTION_STATUSES)

    now = datetime.utcnow()
    assignment.releases.append(DeveloperRelease(
        worker_id=actor.id,
        released_at=now,
        deliverables=files,
        notes=notes,
    ))
    member.is_complete = True
    member.completed_at = now
    touch(assignment)
    fire_barrier_if_complete(db, assignment, actor_id=actor.id)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("You have already released this assignment", reason="ALREADY_RELEASED")
    db.refresh(assignment)
    status = release_status(assignment)

    outbox = Outbox()
    link = assignment_link(assignment.id)
    payload = {
        "assignment_id": str(assignment.id),
        "title": assignment.title,
        "released_count": status["released_count"],
        "required_count": status["required_count"],
    }
    if status["all_released"]:
        queue_ready_for_delivery(outbox, assignment, status)
    else:
        for worker in status["workers"]:
            if worker["released"] or worker["worker_id"] == actor.id:
                continue
            outbox.notify(
                worker["worker_id"], "release_required", "Release pending",
                f"{actor.name} released '{assignment.title}'. "
                f"{status['released_count']}/{status['required_count']} released, waiting on you.",
                subject_id=assignment.id, link=link, metadata=payload,
                actions=[action("release_task", "Release Task", "api", f"{link}/release")],
            )

    logger.info(
        f"Release {status['released_count']}/{status['required_count']}",
        extra={"assignment_id": str(assignment.id), "user_id": str(actor.id), "status": assignment.status.value},
    )
    return status, outbox


def release(db: Session, actor, assignment_id, deliverables: Optional[List[Any]] = None, notes: Optional[str] = None) -> Dict[str, Any]:
    status, outbox = _release(db, actor, assignment_id, deliverables, notes)
    notification_service.dispatch(db, outbox)
    return status


def get_release_status(db: Session, actor, assignment_id) -> Dict[str, Any]:
    assignment = load_assignment(db, assignment_id, for_update=False)
    if not (is_admin(actor) or assignment.is_assigned(actor.id)):
        raise AuthorizationError("You are not assigned to this assignment", reason="NOT_ASSIGNED")
    return release_status(assignment)

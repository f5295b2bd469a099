"""
Single source of truth for assignment status order and valid transitions.
All status changes must go through apply_transition().
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from scholardesk.exceptions import IllegalTransitionError
from scholardesk.models import Assignment, AssignmentStatus, AuditLog

logger = logging.getLogger(__name__)

# Happy path, in order
STATUS_ORDER: List[AssignmentStatus] = [
    AssignmentStatus.PENDING,
    AssignmentStatus.QUOTED,
    AssignmentStatus.ACCEPTED,
    AssignmentStatus.WORKING,
    AssignmentStatus.REVIEW,
    AssignmentStatus.RELEASED_TO_ADMIN,
    AssignmentStatus.DELIVERED,
    AssignmentStatus.COMPLETED,
]

VALID_NEXT: Dict[AssignmentStatus, List[AssignmentStatus]] = {
    AssignmentStatus.PENDING: [AssignmentStatus.QUOTED, AssignmentStatus.REJECTED, AssignmentStatus.CANCELLED],
    AssignmentStatus.QUOTED: [AssignmentStatus.ACCEPTED, AssignmentStatus.DECLINED, AssignmentStatus.CANCELLED],
    AssignmentStatus.ACCEPTED: [AssignmentStatus.WORKING, AssignmentStatus.CANCELLED],
    AssignmentStatus.WORKING: [AssignmentStatus.REVIEW, AssignmentStatus.RELEASED_TO_ADMIN, AssignmentStatus.CANCELLED],
    AssignmentStatus.REVIEW: [AssignmentStatus.RELEASED_TO_ADMIN, AssignmentStatus.DELIVERED, AssignmentStatus.CANCELLED],
    AssignmentStatus.RELEASED_TO_ADMIN: [AssignmentStatus.DELIVERED, AssignmentStatus.CANCELLED],
    AssignmentStatus.DELIVERED: [AssignmentStatus.COMPLETED],
    AssignmentStatus.COMPLETED: [],
    AssignmentStatus.REJECTED: [],
    AssignmentStatus.DECLINED: [],
    AssignmentStatus.CANCELLED: [],
}

TERMINAL_STATUSES = frozenset(status for status, nxt in VALID_NEXT.items() if not nxt)

# Statuses in which workers are executing and may report progress, release or upload
EXECUTION_STATUSES = frozenset({AssignmentStatus.WORKING, AssignmentStatus.REVIEW})

STATUS_TIMESTAMPS: Dict[AssignmentStatus, str] = {
    AssignmentStatus.QUOTED: "quoted_at",
    AssignmentStatus.ACCEPTED: "accepted_at",
    AssignmentStatus.WORKING: "started_at",
    AssignmentStatus.REVIEW: "review_at",
    AssignmentStatus.RELEASED_TO_ADMIN: "released_at",
    AssignmentStatus.DELIVERED: "delivered_at",
    AssignmentStatus.COMPLETED: "completed_at",
    AssignmentStatus.CANCELLED: "cancelled_at",
}


def can_transition(from_status: Optional[AssignmentStatus], to_status: AssignmentStatus) -> bool:
    """Check if transition from_status -> to_status is allowed."""
    if from_status is None:
        return to_status == AssignmentStatus.PENDING
    return to_status in VALID_NEXT.get(from_status, [])


def is_terminal(status: AssignmentStatus) -> bool:
    return status in TERMINAL_STATUSES


def ensure_transition(assignment: Assignment, to_status: AssignmentStatus) -> None:
    """Raise IllegalTransitionError unless the assignment may move to to_status now."""
    if not can_transition(assignment.status, to_status):
        raise IllegalTransitionError(assignment.status, to_status)


def ensure_status(assignment: Assignment, *allowed: AssignmentStatus) -> None:
    """Raise IllegalTransitionError unless the assignment is in one of `allowed`."""
    if assignment.status not in allowed:
        raise IllegalTransitionError(
            assignment.status,
            message=(
                f"Operation requires status {' or '.join(s.value for s in allowed)}, "
                f"assignment is '{assignment.status.value}'"
            ),
        )


def touch(assignment: Assignment) -> None:
    """Mark the assignment row dirty so the flush runs the version check."""
    assignment.updated_at = datetime.utcnow()


def apply_transition(
    db: Session,
    assignment: Assignment,
    to_status: AssignmentStatus,
    actor_id=None,
    reason: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AssignmentStatus:
    """
    Move the assignment to to_status in the current unit of work.

    Appends status_history, stamps the matching timestamp column and writes an
    audit row. Does not commit. Returns the previous status.
    """
    ensure_transition(assignment, to_status)

    previous = assignment.status
    now = datetime.utcnow()
    assignment.status = to_status
    assignment.updated_at = now

    # JSON column: assign a new list so the change is tracked
    assignment.status_history = list(assignment.status_history or []) + [{
        "from": previous.value if previous else None,
        "to": to_status.value,
        "at": now.isoformat(),
        "actor_id": str(actor_id) if actor_id else None,
        "reason": reason,
    }]

    timestamp_attr = STATUS_TIMESTAMPS.get(to_status)
    if timestamp_attr:
        setattr(assignment, timestamp_attr, now)

    db.add(AuditLog(
        assignment_id=assignment.id,
        actor_user_id=actor_id,
        action="STATUS_TRANSITION",
        payload_json={
            "from": previous.value if previous else None,
            "to": to_status.value,
            "reason": reason,
            **(metadata or {}),
        },
        created_at=now,
    ))

    logger.info(
        f"Assignment transition {previous.value if previous else None} -> {to_status.value}",
        extra={"assignment_id": str(assignment.id), "status": to_status.value},
    )
    return previous

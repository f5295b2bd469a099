"""
Progress aggregation.

Three paths write Assignment.progress: the team average (on every individual
progress update), the collaboration-board sync and an admin direct set.
PROGRESS_POLICY decides how they interact:

- last_write_wins: every path writes, the latest one is what you see.
- team_authoritative: while the assignment has active team members only the
  team average writes; board sync and admin set still leave their audit note
  but report applied=False.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from scholardesk.config import settings
from scholardesk.exceptions import ValidationError
from scholardesk.lifecycle.records import append_note, clamp_progress, load_assignment, round_half_up
from scholardesk.lifecycle.state_machine import touch
from scholardesk.models import Assignment
from scholardesk.utils.retry import retry_on_version_conflict

logger = logging.getLogger(__name__)


@dataclass
class ProgressUpdate:
    assignment: Assignment
    progress: int
    applied: bool
    source: str


def team_average(assignment: Assignment) -> Optional[int]:
    """Rounded mean of individual progress over active members; None with no active members."""
    active = assignment.active_members
    if not active:
        return None
    return round_half_up(sum(m.individual_progress or 0 for m in active) / len(active))


def recompute_from_team(assignment: Assignment) -> int:
    """Write the team average to the assignment. Leaves progress untouched with no active members."""
    average = team_average(assignment)
    if average is not None:
        assignment.progress = clamp_progress(average)
    return assignment.progress


def board_percentage(total_items: int, completed_items: int) -> int:
    if total_items <= 0:
        return 0
    return clamp_progress(100 * completed_items / total_items)


def external_write_allowed(assignment: Assignment) -> bool:
    if settings.team_progress_is_authoritative and assignment.active_members:
        return False
    return True


def apply_board_counts(assignment: Assignment, total_items: int, completed_items: int, actor=None) -> ProgressUpdate:
    """Board-sync path. Mutates the assignment in the current unit of work; does not commit."""
    if total_items < 0 or completed_items < 0:
        raise ValidationError("Item counts cannot be negative", reason="INVALID_COUNTS")
    if completed_items > total_items:
        raise ValidationError("Completed items cannot exceed total items", reason="INVALID_COUNTS")

    percentage = board_percentage(total_items, completed_items)
    applied = external_write_allowed(assignment)
    if applied:
        assignment.progress = percentage
    append_note(
        assignment,
        f"Progress synced from workspace: {completed_items}/{total_items} tasks ({percentage}%)",
        actor,
    )
    touch(assignment)

    logger.info(
        f"Board sync {completed_items}/{total_items} -> {percentage}% (applied={applied})",
        extra={"assignment_id": str(assignment.id)},
    )
    return ProgressUpdate(assignment, assignment.progress, applied, "board")


@retry_on_version_conflict
def set_progress(db: Session, actor, assignment_id, progress: int, note: Optional[str] = None) -> ProgressUpdate:
    """Admin direct set (clamped)."""
    assignment = load_assignment(db, assignment_id)

    value = clamp_progress(progress)
    applied = external_write_allowed(assignment)
    if applied:
        assignment.progress = value
    if note:
        append_note(assignment, note, actor)
    elif not applied:
        append_note(assignment, f"Manual progress {value}% not applied: team progress is authoritative", actor)
    touch(assignment)
    db.commit()
    db.refresh(assignment)

    logger.info(
        f"Admin progress set to {value}% (applied={applied})",
        extra={"assignment_id": str(assignment.id), "user_id": str(actor.id)},
    )
    return ProgressUpdate(assignment, assignment.progress, applied, "admin")

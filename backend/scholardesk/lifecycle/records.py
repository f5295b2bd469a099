"""
Loading and small mutations shared by the lifecycle services.
"""
import math
from datetime import datetime

from sqlalchemy.orm import Session

from scholardesk.exceptions import NotFoundError
from scholardesk.models import Assignment, ProgressNote, User


def load_assignment(db: Session, assignment_id, for_update: bool = True) -> Assignment:
    query = db.query(Assignment).filter(Assignment.id == assignment_id)
    if for_update:
        query = query.with_for_update()
    assignment = query.first()
    if assignment is None:
        raise NotFoundError("Assignment", str(assignment_id))
    return assignment


def load_user(db: Session, user_id) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError("User", str(user_id))
    return user


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_progress(value) -> int:
    return max(0, min(100, round_half_up(float(value))))


def append_note(assignment: Assignment, text: str, author=None) -> ProgressNote:
    """Add a task-level progress note. `author` is an Actor/User or None for system notes."""
    note = ProgressNote(
        author_id=getattr(author, "id", None),
        author_name=getattr(author, "name", None) or "System",
        note=text,
        created_at=datetime.utcnow(),
    )
    assignment.notes.append(note)
    return note


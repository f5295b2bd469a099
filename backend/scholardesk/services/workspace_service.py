import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from scholardesk.exceptions import AuthorizationError, NotFoundError
from scholardesk.lifecycle.records import load_assignment
from scholardesk.models import Assignment, Workspace
from scholardesk.rbac import is_admin
from scholardesk.services import progress_service
from scholardesk.utils.retry import retry_on_version_conflict

logger = logging.getLogger(__name__)

DONE_COLUMN_KEYWORDS = ("done", "complete", "completed", "finished")


def default_board() -> Dict[str, Any]:
    return {
        "columns": [
            {"title": "To Do", "cards": []},
            {"title": "In Progress", "cards": []},
            {"title": "Done", "cards": []},
        ]
    }


def summarize_board(board: Optional[Dict[str, Any]]) -> Tuple[int, int]:
    """
    Count (total, completed) cards. A card is completed when flagged
    is_completed or when it sits in a column whose title reads as done.
    """
    total = 0
    completed = 0
    for column in (board or {}).get("columns", []) or []:
        title = (column.get("title") or "").lower()
        done_column = any(keyword in title for keyword in DONE_COLUMN_KEYWORDS)
        for card in column.get("cards", []) or []:
            total += 1
            if done_column or card.get("is_completed"):
                completed += 1
    return total, completed


def ensure_workspace(db: Session, assignment: Assignment, created_by=None) -> Workspace:
    """Create the assignment's workspace if it has none. Does not commit."""
    if assignment.workspace is not None:
        return assignment.workspace
    workspace = Workspace(
        name=f"{assignment.title} Workspace",
        board=default_board(),
        created_by=created_by,
        created_at=datetime.utcnow(),
    )
    assignment.workspace = workspace
    logger.info("Workspace created", extra={"assignment_id": str(assignment.id)})
    return workspace


def _ensure_collaborator(actor, assignment: Assignment) -> None:
    if is_admin(actor) or assignment.is_assigned(actor.id):
        return
    raise AuthorizationError("Not assigned to this assignment", reason="NOT_ASSIGNED")


def get_workspace(db: Session, actor, assignment_id) -> Workspace:
    assignment = load_assignment(db, assignment_id, for_update=False)
    _ensure_collaborator(actor, assignment)
    if assignment.workspace is None:
        raise NotFoundError("Workspace", str(assignment_id))
    return assignment.workspace


def update_board(db: Session, actor, assignment_id, board: Dict[str, Any]) -> Workspace:
    workspace = get_workspace(db, actor, assignment_id)
    workspace.board = board
    db.commit()
    db.refresh(workspace)
    return workspace


@retry_on_version_conflict
def sync_progress(
    db: Session,
    actor,
    assignment_id,
    total_items: Optional[int] = None,
    completed_items: Optional[int] = None,
) -> progress_service.ProgressUpdate:
    """Feed board completion into assignment progress. Counts default to the stored board."""
    assignment = load_assignment(db, assignment_id)
    _ensure_collaborator(actor, assignment)

    if total_items is None or completed_items is None:
        if assignment.workspace is None:
            raise NotFoundError("Workspace", str(assignment_id))
        total_items, completed_items = summarize_board(assignment.workspace.board)

    result = progress_service.apply_board_counts(assignment, total_items, completed_items, actor)
    if assignment.workspace is not None:
        assignment.workspace.last_synced_at = datetime.utcnow()
    db.commit()
    db.refresh(assignment)
    return result

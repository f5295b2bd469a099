from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from scholardesk.db import get_db
from scholardesk.deps import Actor, get_current_actor, require_permission
from scholardesk.schemas import Board, ProgressUpdateResponse, SyncProgressRequest, WorkspaceResponse
from scholardesk.services import workspace_service

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


@router.get("/{assignment_id}", response_model=WorkspaceResponse)
def get_workspace(assignment_id: UUID, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    return workspace_service.get_workspace(db, actor, assignment_id)


@router.put("/{assignment_id}/board", response_model=WorkspaceResponse)
def update_board(assignment_id: UUID, data: Board, db: Session = Depends(get_db), actor: Actor = Depends(require_permission("sync_workspace"))):
    return workspace_service.update_board(db, actor, assignment_id, data.model_dump())


@router.post("/{assignment_id}/sync", response_model=ProgressUpdateResponse)
def sync_progress(
    assignment_id: UUID,
    data: SyncProgressRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("sync_workspace")),
):
    """Push board completion into assignment progress. Omit counts to use the stored board."""
    result = workspace_service.sync_progress(db, actor, assignment_id, data.total_items, data.completed_items)
    return ProgressUpdateResponse(assignment_id=assignment_id, progress=result.progress, applied=result.applied, source=result.source)

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from scholardesk.db import get_db
from scholardesk.deps import Actor, get_current_actor, require_worker
from scholardesk.models import AssignmentStatus
from scholardesk.schemas import (
    AssignmentResponse,
    AssignmentSummary,
    DeliverableResponse,
    ReleaseRequest,
    ReleaseStatusResponse,
    UploadDeliverablesRequest,
    WorkerStats,
    WorkerStatusRequest,
)
from scholardesk.services import release_service, worker_service

router = APIRouter(tags=["worker"])


@router.get("/worker/tasks", response_model=List[AssignmentSummary])
def list_my_tasks(
    status_filter: Optional[AssignmentStatus] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_worker),
):
    return worker_service.list_worker_tasks(db, actor, status_filter)


@router.get("/worker/stats", response_model=WorkerStats)
def my_stats(db: Session = Depends(get_db), actor: Actor = Depends(require_worker)):
    return worker_service.get_worker_stats(db, actor)


@router.put("/assignments/{assignment_id}/status", response_model=AssignmentResponse)
def update_task_status(
    assignment_id: UUID,
    data: WorkerStatusRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_worker),
):
    """Workers may only move working -> review"""
    return worker_service.submit_for_review(db, actor, assignment_id, data.status, data.notes)


@router.put("/assignments/{assignment_id}/release", response_model=ReleaseStatusResponse)
def release_task(
    assignment_id: UUID,
    data: ReleaseRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_worker),
):
    """Signal that the caller's portion is done"""
    deliverables = [d if isinstance(d, str) else d.model_dump(exclude_none=True) for d in data.deliverables]
    return release_service.release(db, actor, assignment_id, deliverables, data.notes)


@router.get("/assignments/{assignment_id}/release-status", response_model=ReleaseStatusResponse)
def release_status(assignment_id: UUID, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    return release_service.get_release_status(db, actor, assignment_id)


@router.post("/assignments/{assignment_id}/deliverables", response_model=List[DeliverableResponse], status_code=status.HTTP_201_CREATED)
def upload_deliverables(
    assignment_id: UUID,
    data: UploadDeliverablesRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_worker),
):
    files = [f.model_dump() for f in data.files]
    return worker_service.upload_deliverables(db, actor, assignment_id, files, data.notes)

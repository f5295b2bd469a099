from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from scholardesk.db import get_db
from scholardesk.deps import Actor, get_current_actor, require_client, require_permission
from scholardesk.models import AssignmentStatus
from scholardesk.schemas import (
    AssignmentCreate,
    AssignmentResponse,
    AssignmentSummary,
    AssignWorkersRequest,
    DeliverRequest,
    PaymentStatusRequest,
    ProgressSetRequest,
    ProgressUpdateResponse,
    QuoteRequest,
    ReasonRequest,
)
from scholardesk.services import lifecycle_service, progress_service

router = APIRouter(prefix="/assignments", tags=["assignments"])

require_lifecycle_manager = require_permission("manage_lifecycle")


@router.post("", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
def create_assignment(data: AssignmentCreate, db: Session = Depends(get_db), actor: Actor = Depends(require_client)):
    """Submit a new assignment request (client)"""
    return lifecycle_service.create_assignment(db, actor, data.title, data.subject, data.description, data.deadline)


@router.get("", response_model=List[AssignmentSummary])
def list_assignments(
    status_filter: Optional[AssignmentStatus] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """List assignments visible to the caller"""
    return lifecycle_service.list_assignments(db, actor, status_filter)


@router.get("/{assignment_id}", response_model=AssignmentResponse)
def get_assignment(assignment_id: UUID, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    return lifecycle_service.get_assignment(db, actor, assignment_id)


# ---- Client ----


@router.put("/{assignment_id}/accept", response_model=AssignmentResponse)
def accept_quote(assignment_id: UUID, db: Session = Depends(get_db), actor: Actor = Depends(require_client)):
    return lifecycle_service.accept_quote(db, actor, assignment_id)


@router.put("/{assignment_id}/decline", response_model=AssignmentResponse)
def decline_quote(assignment_id: UUID, data: ReasonRequest, db: Session = Depends(get_db), actor: Actor = Depends(require_client)):
    return lifecycle_service.decline_quote(db, actor, assignment_id, data.reason)


# ---- Admin ----


@router.put("/{assignment_id}/quote", response_model=AssignmentResponse)
def send_quote(assignment_id: UUID, data: QuoteRequest, db: Session = Depends(get_db), actor: Actor = Depends(require_lifecycle_manager)):
    """pending -> quoted"""
    return lifecycle_service.send_quote(db, actor, assignment_id, data.amount, data.deadline, data.note)


@router.put("/{assignment_id}/reject", response_model=AssignmentResponse)
def reject(assignment_id: UUID, data: ReasonRequest, db: Session = Depends(get_db), actor: Actor = Depends(require_lifecycle_manager)):
    """pending -> rejected"""
    return lifecycle_service.reject(db, actor, assignment_id, data.reason)


@router.put("/{assignment_id}/assign", response_model=AssignmentResponse)
def assign_workers(assignment_id: UUID, data: AssignWorkersRequest, db: Session = Depends(get_db), actor: Actor = Depends(require_lifecycle_manager)):
    """accepted -> working. First worker becomes the lead."""
    return lifecycle_service.assign_workers(db, actor, assignment_id, data.worker_ids)


@router.put("/{assignment_id}/review", response_model=AssignmentResponse)
def move_to_review(assignment_id: UUID, db: Session = Depends(get_db), actor: Actor = Depends(require_lifecycle_manager)):
    """working -> review"""
    return lifecycle_service.move_to_review(db, actor, assignment_id)


@router.put("/{assignment_id}/deliver", response_model=AssignmentResponse)
def deliver(assignment_id: UUID, data: DeliverRequest, db: Session = Depends(get_db), actor: Actor = Depends(require_lifecycle_manager)):
    """review / released-to-admin -> delivered"""
    files = [f.model_dump() for f in data.files]
    return lifecycle_service.deliver(db, actor, assignment_id, files, data.notes)


@router.put("/{assignment_id}/release-to-client", response_model=AssignmentResponse)
def release_to_client(assignment_id: UUID, data: DeliverRequest, db: Session = Depends(get_db), actor: Actor = Depends(require_lifecycle_manager)):
    files = [f.model_dump() for f in data.files]
    return lifecycle_service.release_to_client(db, actor, assignment_id, files, data.notes)


@router.put("/{assignment_id}/complete", response_model=AssignmentResponse)
def complete(assignment_id: UUID, db: Session = Depends(get_db), actor: Actor = Depends(require_lifecycle_manager)):
    """delivered -> completed"""
    return lifecycle_service.complete(db, actor, assignment_id)


@router.put("/{assignment_id}/cancel", response_model=AssignmentResponse)
def cancel(assignment_id: UUID, data: ReasonRequest, db: Session = Depends(get_db), actor: Actor = Depends(require_lifecycle_manager)):
    return lifecycle_service.cancel(db, actor, assignment_id, data.reason)


@router.put("/{assignment_id}/progress", response_model=ProgressUpdateResponse)
def set_progress(assignment_id: UUID, data: ProgressSetRequest, db: Session = Depends(get_db), actor: Actor = Depends(require_permission("set_progress"))):
    """Manual progress override (clamped to 0-100)"""
    result = progress_service.set_progress(db, actor, assignment_id, data.progress, data.note)
    return ProgressUpdateResponse(assignment_id=assignment_id, progress=result.progress, applied=result.applied, source=result.source)


@router.put("/{assignment_id}/payment", response_model=AssignmentResponse)
def update_payment_status(assignment_id: UUID, data: PaymentStatusRequest, db: Session = Depends(get_db), actor: Actor = Depends(require_lifecycle_manager)):
    return lifecycle_service.update_payment_status(db, actor, assignment_id, data.payment_status)

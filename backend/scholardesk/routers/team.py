from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from scholardesk.db import get_db
from scholardesk.deps import Actor, get_current_actor, require_permission, require_roles, require_worker
from scholardesk.models import UserRole
from scholardesk.schemas import (
    AddMemberRequest,
    AssignModuleRequest,
    ChangeLeadRequest,
    IndividualProgressRequest,
    IndividualProgressResponse,
    ModuleResponse,
    TeamMemberResponse,
    TeamOverview,
    TeamRequestCreate,
    TeamRequestRespond,
    TeamRequestResponse,
    UpdateMemberRequest,
)
from scholardesk.services import team_service

router = APIRouter(prefix="/assignments/{assignment_id}/team", tags=["team"])

require_lead_or_admin = require_roles(UserRole.ADMIN, UserRole.DEVELOPER, UserRole.WORKER)
require_team_manager = require_permission("manage_team")


@router.get("", response_model=TeamOverview)
def get_team(assignment_id: UUID, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    """Roster with per-role statistics"""
    return team_service.get_team(db, actor, assignment_id)


@router.post("/members", response_model=TeamMemberResponse, status_code=status.HTTP_201_CREATED)
def add_member(assignment_id: UUID, data: AddMemberRequest, db: Session = Depends(get_db), actor: Actor = Depends(require_team_manager)):
    return team_service.add_member(db, actor, assignment_id, data.worker_id, data.role, data.responsibilities)


@router.delete("/members/{worker_id}", response_model=TeamMemberResponse)
def remove_member(
    assignment_id: UUID,
    worker_id: UUID,
    reason: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_team_manager),
):
    """Soft-remove a member. The lead must be replaced first."""
    return team_service.remove_member(db, actor, assignment_id, worker_id, reason)


@router.put("/members/{worker_id}", response_model=TeamMemberResponse)
def update_member(
    assignment_id: UUID,
    worker_id: UUID,
    data: UpdateMemberRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_lead_or_admin),
):
    """Lead or admin. Demoting the lead is admin-only."""
    modules = [m.model_dump() for m in data.modules] if data.modules is not None else None
    return team_service.update_member(db, actor, assignment_id, worker_id, data.role, data.responsibilities, modules)


@router.put("/lead", response_model=TeamMemberResponse)
def change_lead(assignment_id: UUID, data: ChangeLeadRequest, db: Session = Depends(get_db), actor: Actor = Depends(require_team_manager)):
    return team_service.change_lead(db, actor, assignment_id, data.new_lead_id)


@router.put("/my-progress", response_model=IndividualProgressResponse)
def update_my_progress(
    assignment_id: UUID,
    data: IndividualProgressRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_worker),
):
    module_updates = [u.model_dump(exclude_none=True) for u in data.module_updates]
    for update in module_updates:
        if "status" in update:
            update["status"] = update["status"].value
    report = team_service.record_individual_progress(db, actor, assignment_id, data.progress, data.note, module_updates)
    return IndividualProgressResponse(
        worker_id=actor.id,
        individual_progress=report.individual_progress,
        task_progress=report.task_progress,
        milestone_reached=report.milestone_reached,
    )


@router.post("/modules", response_model=ModuleResponse, status_code=status.HTTP_201_CREATED)
def assign_module(assignment_id: UUID, data: AssignModuleRequest, db: Session = Depends(get_db), actor: Actor = Depends(require_worker)):
    """Lead assigns a module to a team member"""
    spec = data.model_dump(exclude={"worker_id"})
    return team_service.assign_module(db, actor, assignment_id, data.worker_id, spec)


@router.post("/requests", response_model=TeamRequestResponse, status_code=status.HTTP_201_CREATED)
def submit_team_request(assignment_id: UUID, data: TeamRequestCreate, db: Session = Depends(get_db), actor: Actor = Depends(require_worker)):
    return team_service.submit_team_request(db, actor, assignment_id, data.type, data.description)


@router.put("/requests/{request_id}", response_model=TeamRequestResponse)
def respond_team_request(
    assignment_id: UUID,
    request_id: UUID,
    data: TeamRequestRespond,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("respond_team_requests")),
):
    return team_service.respond_team_request(db, actor, assignment_id, request_id, data.status, data.response)

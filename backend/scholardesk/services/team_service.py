"""
Team membership ledger: the per-assignment roster of workers, their roles,
individual progress and module assignments.

Roster entries are never deleted. Removal flips status to `removed`, and the
entry keeps its history. While the roster has active members exactly one of
them is the lead.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from scholardesk.exceptions import (
    AuthorizationError,
    ConflictError,
    IllegalTransitionError,
    NotFoundError,
    ValidationError,
)
from scholardesk.lifecycle.records import clamp_progress, load_assignment, load_user
from scholardesk.lifecycle.state_machine import EXECUTION_STATUSES, ensure_status, is_terminal, touch
from scholardesk.models import (
    Assignment,
    AssignmentStatus,
    MemberModule,
    MemberProgressNote,
    MemberStatus,
    ModuleStatus,
    TeamMember,
    TeamRequest,
    TeamRequestStatus,
    TeamRole,
    WORKER_ROLES,
)
from scholardesk.rbac import can_view_assignment, is_admin
from scholardesk.services import notification_service, progress_service, release_service
from scholardesk.services.notification_service import Outbox, action, assignment_link
from scholardesk.utils.retry import retry_on_version_conflict

logger = logging.getLogger(__name__)

MILESTONES = (25, 50, 75, 100)
RELEASED_STATUSES = frozenset({AssignmentStatus.RELEASED_TO_ADMIN, AssignmentStatus.DELIVERED})


@dataclass
class ProgressReport:
    member: TeamMember
    individual_progress: int
    task_progress: int
    milestone_reached: Optional[int]


# --- Roster primitives (no commit) ---


def validate_worker(db: Session, worker_id):
    """Load a user and check they can be put on a team."""
    user = load_user(db, worker_id)
    if user.role not in WORKER_ROLES:
        raise ValidationError(
            f"User {user.name} is not a worker account",
            reason="INVALID_WORKER_ROLE",
            details={"worker_id": str(worker_id)},
        )
    if user.is_banned or not user.is_active:
        raise ValidationError(
            f"User {user.name} cannot be assigned",
            reason="WORKER_UNAVAILABLE",
            details={"worker_id": str(worker_id)},
        )
    return user


def append_member(
    assignment: Assignment,
    worker_id,
    role: TeamRole = TeamRole.DEVELOPER,
    responsibilities: Optional[List[str]] = None,
) -> TeamMember:
    member = TeamMember(
        worker_id=worker_id,
        role=role,
        status=MemberStatus.ACTIVE,
        responsibilities=list(responsibilities or []),
        individual_progress=0,
        position=len(assignment.members),
        is_complete=False,
        joined_at=datetime.utcnow(),
    )
    assignment.members.append(member)
    return member


def soft_remove_member(member: TeamMember, reason: Optional[str] = None) -> None:
    member.status = MemberStatus.REMOVED
    member.removed_at = datetime.utcnow()
    member.removal_reason = reason


def _require_member(assignment: Assignment, worker_id) -> TeamMember:
    member = assignment.member_for(worker_id)
    if member is None:
        raise NotFoundError("Team member", str(worker_id))
    return member


def _require_lead(actor, assignment: Assignment) -> None:
    if assignment.assigned_lead_worker != actor.id:
        raise AuthorizationError("Only the team lead can do this", reason="NOT_LEAD")


def _require_lead_or_admin(actor, assignment: Assignment) -> None:
    if is_admin(actor):
        return
    _require_lead(actor, assignment)


def _ensure_roster_open(assignment: Assignment) -> None:
    # Once the release barrier has fired the roster is frozen
    if is_terminal(assignment.status) or assignment.status in RELEASED_STATUSES:
        raise IllegalTransitionError(assignment.status, message=f"Team is closed: assignment is '{assignment.status.value}'")


def _team_payload(assignment: Assignment) -> Dict[str, Any]:
    return {"assignment_id": str(assignment.id), "title": assignment.title}


# --- Read ---


def team_statistics(assignment: Assignment) -> Dict[str, Any]:
    active = assignment.active_members
    by_role = {role.value: 0 for role in TeamRole}
    for member in active:
        by_role[member.role.value] += 1
    modules = [module for member in active for module in member.modules]
    return {
        "total_members": len(active),
        "removed_members": len(assignment.members) - len(active),
        "by_role": by_role,
        "average_progress": progress_service.team_average(assignment) or 0,
        "total_modules": len(modules),
        "completed_modules": sum(1 for m in modules if m.status == ModuleStatus.COMPLETED),
        "pending_requests": sum(1 for r in assignment.team_requests if r.status == TeamRequestStatus.PENDING),
    }


def get_team(db: Session, actor, assignment_id) -> Dict[str, Any]:
    assignment = load_assignment(db, assignment_id, for_update=False)
    if not can_view_assignment(actor, assignment):
        raise AuthorizationError("You do not have access to this team", reason="NOT_ASSIGNED")
    return {
        "assignment_id": assignment.id,
        "status": assignment.status,
        "progress": assignment.progress,
        "lead_id": assignment.assigned_lead_worker,
        "members": assignment.team,
        "requests": list(assignment.team_requests),
        "statistics": team_statistics(assignment),
    }


# --- Membership ---


@retry_on_version_conflict
def _add_member(db, actor, assignment_id, worker_id, role, responsibilities):
    assignment = load_assignment(db, assignment_id)
    _ensure_roster_open(assignment)
    worker = validate_worker(db, worker_id)
    if assignment.is_assigned(worker_id):
        raise ConflictError(f"{worker.name} is already on this team", reason="ALREADY_MEMBER")

    lead = assignment.lead_member
    if role == TeamRole.LEAD and lead is not None:
        raise ValidationError("Team already has a lead; use change lead instead", reason="LEAD_EXISTS")
    if lead is None:
        role = TeamRole.LEAD

    member = append_member(assignment, worker_id, role, responsibilities)
    touch(assignment)
    db.commit()
    db.refresh(member)

    outbox = Outbox()
    link = assignment_link(assignment.id)
    outbox.notify(
        worker_id, "team_member_added", "Added to team",
        f"You have been added to '{assignment.title}' as {member.role.value}",
        subject_id=assignment.id, link=link, metadata=_team_payload(assignment),
        actions=[action("open_task", "Open Task", target=link)],
    )
    if lead is not None and lead.worker_id != worker_id:
        outbox.notify(
            lead.worker_id, "team_member_added", "New team member",
            f"{worker.name} joined '{assignment.title}' as {member.role.value}",
            subject_id=assignment.id, link=link, metadata=_team_payload(assignment),
        )
    logger.info(f"Team member added: {worker_id} ({member.role.value})", extra={"assignment_id": str(assignment.id)})
    return member, outbox


def add_member(db: Session, actor, assignment_id, worker_id, role: TeamRole = TeamRole.DEVELOPER, responsibilities=None) -> TeamMember:
    member, outbox = _add_member(db, actor, assignment_id, worker_id, role, responsibilities)
    notification_service.dispatch(db, outbox)
    return member


@retry_on_version_conflict
def _remove_member(db, actor, assignment_id, worker_id, reason):
    assignment = load_assignment(db, assignment_id)
    member = _require_member(assignment, worker_id)
    if member.role == TeamRole.LEAD:
        raise ValidationError(
            "The team lead cannot be removed; assign a new lead first",
            reason="LEAD_REASSIGNMENT_REQUIRED",
        )

    soft_remove_member(member, reason)
    touch(assignment)
    # The removed member may have been the last one the barrier was waiting on
    barrier_fired = release_service.fire_barrier_if_complete(
        db, assignment, actor_id=actor.id, reason="All remaining team members released",
    )
    db.commit()
    db.refresh(assignment)

    outbox = Outbox()
    message = f"You have been removed from '{assignment.title}'"
    if reason:
        message += f". Reason: {reason}"
    outbox.notify(
        worker_id, "team_member_removed", "Removed from team", message,
        subject_id=assignment.id, link=assignment_link(assignment.id),
        metadata={**_team_payload(assignment), "reason": reason},
    )
    if barrier_fired:
        release_service.queue_ready_for_delivery(outbox, assignment, release_service.release_status(assignment))
    logger.info(f"Team member removed: {worker_id}", extra={"assignment_id": str(assignment.id)})
    return member, outbox


def remove_member(db: Session, actor, assignment_id, worker_id, reason: Optional[str] = None) -> TeamMember:
    member, outbox = _remove_member(db, actor, assignment_id, worker_id, reason)
    notification_service.dispatch(db, outbox)
    return member


@retry_on_version_conflict
def _update_member(db, actor, assignment_id, worker_id, role, responsibilities, modules):
    assignment = load_assignment(db, assignment_id)
    _require_lead_or_admin(actor, assignment)
    member = _require_member(assignment, worker_id)

    successor = None
    if role is not None and role != member.role:
        if role == TeamRole.LEAD:
            raise ValidationError("Use change lead to promote a member", reason="USE_CHANGE_LEAD")
        if member.role == TeamRole.LEAD:
            if not is_admin(actor):
                raise AuthorizationError("Only an admin can change the lead's role", reason="ADMIN_REQUIRED")
            successor = next((m for m in assignment.active_members if m.id != member.id), None)
            if successor is None:
                raise ValidationError(
                    "The lead is the only active member; add a member before demoting",
                    reason="LEAD_REASSIGNMENT_REQUIRED",
                )
    for spec in modules or []:
        if not (spec.get("title") or "").strip():
            raise ValidationError("Module title is required", reason="TITLE_REQUIRED")

    if role is not None:
        member.role = role
    if successor is not None:
        successor.role = TeamRole.LEAD
    if responsibilities is not None:
        member.responsibilities = list(responsibilities)
    for spec in modules or []:
        member.modules.append(_new_module(spec, actor))
    touch(assignment)
    db.commit()
    db.refresh(member)

    outbox = Outbox()
    link = assignment_link(assignment.id)
    outbox.notify(
        worker_id, "team_member_updated", "Team role updated",
        f"Your role on '{assignment.title}' is now {member.role.value}",
        subject_id=assignment.id, link=link, metadata=_team_payload(assignment),
    )
    if successor is not None:
        outbox.notify(
            successor.worker_id, "team_lead_changed", "You are now the team lead",
            f"You have been made lead of '{assignment.title}'",
            subject_id=assignment.id, link=link, metadata=_team_payload(assignment),
        )
    return member, outbox


def update_member(db: Session, actor, assignment_id, worker_id, role: Optional[TeamRole] = None,
                  responsibilities: Optional[List[str]] = None, modules: Optional[List[Dict[str, Any]]] = None) -> TeamMember:
    member, outbox = _update_member(db, actor, assignment_id, worker_id, role, responsibilities, modules)
    notification_service.dispatch(db, outbox)
    return member


@retry_on_version_conflict
def _change_lead(db, actor, assignment_id, new_lead_id):
    assignment = load_assignment(db, assignment_id)
    incoming = assignment.member_for(new_lead_id)
    if incoming is None:
        raise ValidationError("New lead must be an active team member", reason="NOT_ACTIVE_MEMBER")
    if incoming.role == TeamRole.LEAD:
        raise ConflictError("Member is already the team lead", reason="ALREADY_LEAD")

    outgoing = assignment.lead_member
    if outgoing is not None:
        outgoing.role = TeamRole.SENIOR
    incoming.role = TeamRole.LEAD
    touch(assignment)
    db.commit()

    outbox = Outbox()
    link = assignment_link(assignment.id)
    outbox.notify(
        new_lead_id, "team_lead_changed", "You are now the team lead",
        f"You have been made lead of '{assignment.title}'",
        subject_id=assignment.id, link=link, metadata=_team_payload(assignment),
    )
    if outgoing is not None:
        outbox.notify(
            outgoing.worker_id, "team_lead_changed", "Team lead changed",
            f"You are now a senior member of '{assignment.title}'",
            subject_id=assignment.id, link=link, metadata=_team_payload(assignment),
        )
    logger.info(f"Team lead changed to {new_lead_id}", extra={"assignment_id": str(assignment.id)})
    return incoming, outbox


def change_lead(db: Session, actor, assignment_id, new_lead_id) -> TeamMember:
    member, outbox = _change_lead(db, actor, assignment_id, new_lead_id)
    notification_service.dispatch(db, outbox)
    return member


# --- Progress and modules ---


def _find_module(member: TeamMember, module_id) -> MemberModule:
    module = next((m for m in member.modules if str(m.id) == str(module_id)), None)
    if module is None:
        raise NotFoundError("Module", str(module_id))
    return module


def _apply_module_update(module: MemberModule, update: Dict[str, Any]) -> None:
    if update.get("progress") is not None:
        module.progress = clamp_progress(update["progress"])
    if update.get("status") is not None:
        module.status = ModuleStatus(update["status"])
        if module.status == ModuleStatus.COMPLETED:
            module.progress = 100
            module.completed_at = datetime.utcnow()
        else:
            module.completed_at = None
    module.updated_at = datetime.utcnow()


@retry_on_version_conflict
def _record_individual_progress(db, actor, assignment_id, progress, note, module_updates):
    assignment = load_assignment(db, assignment_id)
    member = assignment.member_for(actor.id)
    if member is None:
        raise AuthorizationError("You are not an active member of this team", reason="NOT_ASSIGNED")
    ensure_status(assignment, *EXECUTION_STATUSES)

    # Resolve every module before writing anything
    resolved = [(_find_module(member, u["module_id"]), u) for u in (module_updates or [])]
    for _, update in resolved:
        if update.get("status") is not None and update["status"] not in {s.value for s in ModuleStatus}:
            raise ValidationError(f"Invalid module status: {update['status']}", reason="INVALID_MODULE_STATUS")

    value = clamp_progress(progress)
    member.individual_progress = value
    if note:
        member.progress_notes.append(MemberProgressNote(note=note, progress=value, created_at=datetime.utcnow()))
    for module, update in resolved:
        _apply_module_update(module, update)

    task_progress = progress_service.recompute_from_team(assignment)
    touch(assignment)
    db.commit()
    db.refresh(member)

    outbox = Outbox()
    milestone = value if value in MILESTONES else None
    lead = assignment.lead_member
    if milestone is not None and member.role != TeamRole.LEAD and lead is not None:
        outbox.notify(
            lead.worker_id, "progress_milestone", "Team progress milestone",
            f"{actor.name} reached {milestone}% on '{assignment.title}'",
            subject_id=assignment.id, link=assignment_link(assignment.id),
            metadata={**_team_payload(assignment), "worker_id": str(actor.id), "milestone": milestone},
        )

    logger.info(
        f"Individual progress {value}% -> task {task_progress}%",
        extra={"assignment_id": str(assignment.id), "user_id": str(actor.id)},
    )
    return ProgressReport(member, value, task_progress, milestone), outbox


def record_individual_progress(db: Session, actor, assignment_id, progress: int, note: Optional[str] = None,
                               module_updates: Optional[List[Dict[str, Any]]] = None) -> ProgressReport:
    report, outbox = _record_individual_progress(db, actor, assignment_id, progress, note, module_updates)
    notification_service.dispatch(db, outbox)
    return report


def _new_module(spec: Dict[str, Any], actor) -> MemberModule:
    now = datetime.utcnow()
    return MemberModule(
        title=spec["title"].strip(),
        description=spec.get("description"),
        due_date=spec.get("due_date"),
        status=ModuleStatus.PENDING,
        progress=0,
        assigned_by=actor.id,
        created_at=now,
        updated_at=now,
    )


@retry_on_version_conflict
def _assign_module(db, actor, assignment_id, target_worker_id, module_spec):
    assignment = load_assignment(db, assignment_id)
    _require_lead(actor, assignment)
    target = _require_member(assignment, target_worker_id)
    if not (module_spec.get("title") or "").strip():
        raise ValidationError("Module title is required", reason="TITLE_REQUIRED")

    module = _new_module(module_spec, actor)
    target.modules.append(module)
    touch(assignment)
    db.commit()
    db.refresh(module)

    outbox = Outbox()
    outbox.notify(
        target_worker_id, "module_assigned", "New module assigned",
        f"You have been assigned '{module.title}' on '{assignment.title}'",
        subject_id=assignment.id, link=assignment_link(assignment.id),
        metadata={**_team_payload(assignment), "module_id": str(module.id)},
    )
    return module, outbox


def assign_module(db: Session, actor, assignment_id, target_worker_id, module_spec: Dict[str, Any]) -> MemberModule:
    module, outbox = _assign_module(db, actor, assignment_id, target_worker_id, module_spec)
    notification_service.dispatch(db, outbox)
    return module


# --- Team requests ---


@retry_on_version_conflict
def _submit_team_request(db, actor, assignment_id, request_type, description):
    assignment = load_assignment(db, assignment_id)
    _require_lead(actor, assignment)
    request_type = (request_type or "").strip()
    description = (description or "").strip()
    if not request_type or not description:
        raise ValidationError("Request type and description are required", reason="REQUEST_INCOMPLETE")
    if any(r.type == request_type and r.status == TeamRequestStatus.PENDING for r in assignment.team_requests):
        raise ConflictError("A request of this type is already pending", reason="REQUEST_PENDING")

    request = TeamRequest(
        requester_id=actor.id,
        type=request_type,
        description=description,
        status=TeamRequestStatus.PENDING,
        created_at=datetime.utcnow(),
    )
    assignment.team_requests.append(request)
    touch(assignment)
    db.commit()
    db.refresh(request)

    outbox = Outbox()
    link = assignment_link(assignment.id)
    outbox.notify_admins(
        "team_request", "Team request",
        f"{actor.name} requested '{request_type}' on '{assignment.title}'",
        subject_id=assignment.id, link=link,
        metadata={**_team_payload(assignment), "request_id": str(request.id)},
        actions=[
            action("approve_request", "Approve", "api", f"{link}/team/requests/{request.id}"),
            action("reject_request", "Reject", "api", f"{link}/team/requests/{request.id}"),
        ],
    )
    return request, outbox


def submit_team_request(db: Session, actor, assignment_id, request_type: str, description: str) -> TeamRequest:
    request, outbox = _submit_team_request(db, actor, assignment_id, request_type, description)
    notification_service.dispatch(db, outbox)
    return request


@retry_on_version_conflict
def _respond_team_request(db, actor, assignment_id, request_id, status, response):
    if status not in (TeamRequestStatus.APPROVED.value, TeamRequestStatus.REJECTED.value):
        raise ValidationError("Status must be approved or rejected", reason="INVALID_REQUEST_STATUS")
    status = TeamRequestStatus(status)
    assignment = load_assignment(db, assignment_id)
    request = next((r for r in assignment.team_requests if str(r.id) == str(request_id)), None)
    if request is None:
        raise NotFoundError("Team request", str(request_id))
    if request.status != TeamRequestStatus.PENDING:
        raise ConflictError("Request has already been answered", reason="ALREADY_RESPONDED")

    request.status = status
    request.admin_response = response
    request.responded_by = actor.id
    request.responded_at = datetime.utcnow()
    touch(assignment)
    db.commit()
    db.refresh(request)

    outbox = Outbox()
    message = f"Your '{request.type}' request on '{assignment.title}' was {status.value}"
    if response:
        message += f": {response}"
    outbox.notify(
        request.requester_id, "team_request_response", "Team request answered", message,
        subject_id=assignment.id, link=assignment_link(assignment.id),
        metadata={**_team_payload(assignment), "request_id": str(request.id), "status": status.value},
    )
    return request, outbox


def respond_team_request(db: Session, actor, assignment_id, request_id, status: TeamRequestStatus,
                         response: Optional[str] = None) -> TeamRequest:
    request, outbox = _respond_team_request(db, actor, assignment_id, request_id, status, response)
    notification_service.dispatch(db, outbox)
    return request

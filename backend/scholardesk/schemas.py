from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional, List, Dict, Any, Union
from datetime import datetime
from uuid import UUID
from scholardesk.models import (
    UserRole, AssignmentStatus, PaymentStatus, TeamRole, MemberStatus, ModuleStatus, TeamRequestStatus,
)


# ============= Auth Schemas =============
class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: EmailStr
    role: UserRole
    is_active: bool


# ============= Assignment Schemas =============
class AssignmentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    subject: Optional[str] = None
    description: Optional[str] = None
    deadline: Optional[datetime] = None


class QuoteRequest(BaseModel):
    amount: float
    deadline: Optional[datetime] = None
    note: Optional[str] = None


class ReasonRequest(BaseModel):
    reason: Optional[str] = None


class AssignWorkersRequest(BaseModel):
    worker_ids: List[UUID]


class FileRef(BaseModel):
    file_name: str = Field(..., min_length=1)
    file_url: str = Field(..., min_length=1)


class DeliverRequest(BaseModel):
    files: List[FileRef] = []
    notes: Optional[str] = None


class ProgressSetRequest(BaseModel):
    progress: int
    note: Optional[str] = None


class PaymentStatusRequest(BaseModel):
    payment_status: PaymentStatus


class ProgressNoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    author_id: Optional[UUID] = None
    author_name: Optional[str] = None
    note: str
    created_at: datetime


class DeliverableResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    file_name: str
    file_url: str
    uploaded_by: Optional[UUID] = None
    uploaded_at: datetime
    version: int
    is_final: bool
    notes: Optional[str] = None


class ModuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: Optional[str] = None
    status: ModuleStatus
    progress: int
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class MemberProgressNoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    note: str
    progress: int
    created_at: datetime


class TeamMemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    worker_id: UUID
    role: TeamRole
    status: MemberStatus
    responsibilities: List[str] = []
    individual_progress: int
    is_complete: bool
    joined_at: datetime
    completed_at: Optional[datetime] = None
    removed_at: Optional[datetime] = None
    removal_reason: Optional[str] = None
    modules: List[ModuleResponse] = []
    progress_notes: List[MemberProgressNoteResponse] = []


class AssignedWorkerShift(BaseModel):
    worker_id: UUID
    assigned_at: datetime
    progress: int
    is_complete: bool


class AssignmentSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    subject: Optional[str] = None
    client_id: UUID
    status: AssignmentStatus
    progress: int
    deadline: Optional[datetime] = None
    quoted_amount: Optional[float] = None
    payment_status: PaymentStatus
    assigned_lead_worker: Optional[UUID] = None
    assigned_worker_list: List[UUID] = []
    created_at: datetime
    updated_at: datetime


class AssignmentResponse(AssignmentSummary):
    description: Optional[str] = None
    version: int
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    status_history: List[Dict[str, Any]] = []
    assigned_developers: List[UUID] = []
    assigned_workers: List[AssignedWorkerShift] = []
    team: List[TeamMemberResponse] = []
    deliverables: List[DeliverableResponse] = []
    notes: List[ProgressNoteResponse] = []
    quoted_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    review_at: Optional[datetime] = None
    released_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class ProgressUpdateResponse(BaseModel):
    assignment_id: UUID
    progress: int
    applied: bool
    source: str


# ============= Team Schemas =============
class AddMemberRequest(BaseModel):
    worker_id: UUID
    role: TeamRole = TeamRole.DEVELOPER
    responsibilities: List[str] = []


class ModuleSpec(BaseModel):
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None


class UpdateMemberRequest(BaseModel):
    role: Optional[TeamRole] = None
    responsibilities: Optional[List[str]] = None
    modules: Optional[List[ModuleSpec]] = None


class ChangeLeadRequest(BaseModel):
    new_lead_id: UUID


class ModuleUpdate(BaseModel):
    module_id: UUID
    status: Optional[ModuleStatus] = None
    progress: Optional[int] = None


class IndividualProgressRequest(BaseModel):
    progress: int
    note: Optional[str] = None
    module_updates: List[ModuleUpdate] = []


class AssignModuleRequest(BaseModel):
    worker_id: UUID
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None


class TeamRequestCreate(BaseModel):
    type: str
    description: str


class TeamRequestRespond(BaseModel):
    status: str
    response: Optional[str] = None


class TeamRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    requester_id: UUID
    type: str
    description: str
    status: TeamRequestStatus
    admin_response: Optional[str] = None
    responded_by: Optional[UUID] = None
    created_at: datetime
    responded_at: Optional[datetime] = None


class TeamStatistics(BaseModel):
    total_members: int
    removed_members: int
    by_role: Dict[str, int]
    average_progress: int
    total_modules: int
    completed_modules: int
    pending_requests: int


class TeamOverview(BaseModel):
    assignment_id: UUID
    status: AssignmentStatus
    progress: int
    lead_id: Optional[UUID] = None
    members: List[TeamMemberResponse]
    requests: List[TeamRequestResponse]
    statistics: TeamStatistics


class IndividualProgressResponse(BaseModel):
    worker_id: UUID
    individual_progress: int
    task_progress: int
    milestone_reached: Optional[int] = None


# ============= Release / Worker Schemas =============
class ReleaseFile(BaseModel):
    file_name: str = Field(..., min_length=1)
    file_url: Optional[str] = None


class ReleaseRequest(BaseModel):
    # Bare file names or file references
    deliverables: List[Union[ReleaseFile, str]] = []
    notes: Optional[str] = None


class WorkerReleaseState(BaseModel):
    worker_id: UUID
    name: Optional[str] = None
    role: TeamRole
    released: bool
    released_at: Optional[datetime] = None
    deliverables: List[Any] = []
    notes: Optional[str] = None


class ReleaseStatusResponse(BaseModel):
    assignment_id: UUID
    status: AssignmentStatus
    released_count: int
    required_count: int
    all_released: bool
    workers: List[WorkerReleaseState]


class WorkerStatusRequest(BaseModel):
    status: str
    notes: Optional[str] = None


class UploadDeliverablesRequest(BaseModel):
    files: List[FileRef]
    notes: Optional[str] = None


class WorkerStats(BaseModel):
    total_tasks: int
    active_tasks: int
    in_review: int
    delivered: int
    completed: int
    average_progress: int
    by_status: Dict[str, int]


# ============= Workspace Schemas =============
class BoardCard(BaseModel):
    title: str
    is_completed: bool = False


class BoardColumn(BaseModel):
    title: str
    cards: List[BoardCard] = []


class Board(BaseModel):
    columns: List[BoardColumn] = []


class WorkspaceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    assignment_id: UUID
    name: str
    board: Dict[str, Any] = {}
    created_at: datetime
    last_synced_at: Optional[datetime] = None


class SyncProgressRequest(BaseModel):
    total_items: Optional[int] = None
    completed_items: Optional[int] = None


# ============= Notification Schemas =============
class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    title: str
    message: str
    subject_id: Optional[UUID] = None
    subject_kind: Optional[str] = None
    link: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="meta")
    actions: List[Dict[str, Any]] = []
    priority: str
    is_read: bool
    created_at: datetime

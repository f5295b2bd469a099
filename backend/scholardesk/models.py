import enum
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, Enum, Text, Integer, Float, JSON, Uuid,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from scholardesk.db import Base


def _values_enum(enum_cls, name):
    """Store the lowercase wire value (e.g. "released-to-admin"), not the member name."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    CLIENT = "client"
    DEVELOPER = "developer"
    WORKER = "worker"


WORKER_ROLES = (UserRole.DEVELOPER, UserRole.WORKER)


class AssignmentStatus(str, enum.Enum):
    PENDING = "pending"
    QUOTED = "quoted"
    ACCEPTED = "accepted"
    WORKING = "working"
    REVIEW = "review"
    RELEASED_TO_ADMIN = "released-to-admin"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    REJECTED = "rejected"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class TeamRole(str, enum.Enum):
    LEAD = "lead"
    SENIOR = "senior"
    DEVELOPER = "developer"
    QA = "qa"
    SUPPORT = "support"


class MemberStatus(str, enum.Enum):
    ACTIVE = "active"
    REMOVED = "removed"


class ModuleStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class TeamRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(_values_enum(UserRole, "user_role"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_banned = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    client_assignments = relationship("Assignment", back_populates="client", foreign_keys="Assignment.client_id")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")


class Assignment(Base):
    """
    One academic-assignment work item.

    The team roster (`members`) is the only stored record of who is assigned;
    the legacy assignee shapes are read-only projections over it.
    """
    __tablename__ = "assignments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    client_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(_values_enum(AssignmentStatus, "assignment_status"), default=AssignmentStatus.PENDING, nullable=False, index=True)
    progress = Column(Integer, default=0, nullable=False)
    deadline = Column(DateTime, nullable=True)
    quoted_amount = Column(Float, nullable=True)
    payment_status = Column(_values_enum(PaymentStatus, "payment_status"), default=PaymentStatus.UNPAID, nullable=False)
    rejection_reason = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    status_history = Column(JSON, default=list)

    # Compare-and-set token; every flush of this row checks and bumps it
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    quoted_at = Column(DateTime, nullable=True)
    accepted_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    review_at = Column(DateTime, nullable=True)
    released_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    # Relationships
    client = relationship("User", back_populates="client_assignments", foreign_keys=[client_id])
    members = relationship("TeamMember", back_populates="assignment", order_by="TeamMember.position", cascade="all, delete-orphan")
    releases = relationship("DeveloperRelease", back_populates="assignment", order_by="DeveloperRelease.released_at", cascade="all, delete-orphan")
    deliverables = relationship("Deliverable", back_populates="assignment", order_by="Deliverable.version", cascade="all, delete-orphan")
    notes = relationship("ProgressNote", back_populates="assignment", order_by="ProgressNote.created_at", cascade="all, delete-orphan")
    team_requests = relationship("TeamRequest", back_populates="assignment", order_by="TeamRequest.created_at", cascade="all, delete-orphan")
    workspace = relationship("Workspace", back_populates="assignment", uselist=False, cascade="all, delete-orphan")
    audit_logs = relationship("AuditLog", back_populates="assignment", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}

    # --- Roster projections ---

    @property
    def active_members(self):
        return [m for m in self.members if m.status == MemberStatus.ACTIVE]

    @property
    def lead_member(self):
        return next((m for m in self.active_members if m.role == TeamRole.LEAD), None)

    def member_for(self, worker_id):
        """Active roster entry for worker_id, or None."""
        return next((m for m in self.active_members if m.worker_id == worker_id), None)

    def is_assigned(self, worker_id) -> bool:
        return self.member_for(worker_id) is not None

    @property
    def assigned_lead_worker(self):
        lead = self.lead_member
        return lead.worker_id if lead else None

    @property
    def assigned_worker_list(self):
        return [m.worker_id for m in self.active_members]

    @property
    def assigned_developers(self):
        return self.assigned_worker_list

    @property
    def assigned_workers(self):
        return [
            {
                "worker_id": m.worker_id,
                "assigned_at": m.joined_at,
                "progress": m.individual_progress,
                "is_complete": m.is_complete,
            }
            for m in self.active_members
        ]

    @property
    def team(self):
        return list(self.members)


class TeamMember(Base):
    __tablename__ = "team_members"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    assignment_id = Column(Uuid, ForeignKey("assignments.id"), nullable=False, index=True)
    worker_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(_values_enum(TeamRole, "team_role"), default=TeamRole.DEVELOPER, nullable=False)
    status = Column(_values_enum(MemberStatus, "member_status"), default=MemberStatus.ACTIVE, nullable=False)
    responsibilities = Column(JSON, default=list)
    individual_progress = Column(Integer, default=0, nullable=False)
    position = Column(Integer, default=0, nullable=False)
    is_complete = Column(Boolean, default=False, nullable=False)
    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    removed_at = Column(DateTime, nullable=True)
    removal_reason = Column(Text, nullable=True)

    # Relationships
    assignment = relationship("Assignment", back_populates="members")
    worker = relationship("User")
    modules = relationship("MemberModule", back_populates="member", order_by="MemberModule.created_at", cascade="all, delete-orphan")
    progress_notes = relationship("MemberProgressNote", back_populates="member", order_by="MemberProgressNote.created_at", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_team_members_assignment_status", "assignment_id", "status"),
    )


class MemberModule(Base):
    __tablename__ = "member_modules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id = Column(Uuid, ForeignKey("team_members.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(_values_enum(ModuleStatus, "module_status"), default=ModuleStatus.PENDING, nullable=False)
    progress = Column(Integer, default=0, nullable=False)
    due_date = Column(DateTime, nullable=True)
    assigned_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    member = relationship("TeamMember", back_populates="modules")


class MemberProgressNote(Base):
    __tablename__ = "member_progress_notes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id = Column(Uuid, ForeignKey("team_members.id"), nullable=False, index=True)
    note = Column(Text, nullable=False)
    progress = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    member = relationship("TeamMember", back_populates="progress_notes")


class ProgressNote(Base):
    """Task-level audit trail of textual updates."""
    __tablename__ = "progress_notes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    assignment_id = Column(Uuid, ForeignKey("assignments.id"), nullable=False, index=True)
    author_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    author_name = Column(String(255), nullable=True)
    note = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    assignment = relationship("Assignment", back_populates="notes")


class TeamRequest(Base):
    __tablename__ = "team_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    assignment_id = Column(Uuid, ForeignKey("assignments.id"), nullable=False, index=True)
    requester_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    type = Column(String(64), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(_values_enum(TeamRequestStatus, "team_request_status"), default=TeamRequestStatus.PENDING, nullable=False)
    admin_response = Column(Text, nullable=True)
    responded_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    responded_at = Column(DateTime, nullable=True)

    assignment = relationship("Assignment", back_populates="team_requests")


class DeveloperRelease(Base):
    """One worker's "my portion is done" signal. At most one per worker per assignment."""
    __tablename__ = "developer_releases"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    assignment_id = Column(Uuid, ForeignKey("assignments.id"), nullable=False, index=True)
    worker_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    released_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    deliverables = Column(JSON, default=list)
    notes = Column(Text, nullable=True)

    assignment = relationship("Assignment", back_populates="releases")

    __table_args__ = (
        UniqueConstraint("assignment_id", "worker_id", name="uq_developer_release_worker"),
    )


class Deliverable(Base):
    __tablename__ = "deliverables"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    assignment_id = Column(Uuid, ForeignKey("assignments.id"), nullable=False, index=True)
    file_name = Column(String(500), nullable=False)
    file_url = Column(Text, nullable=False)
    uploaded_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    uploaded_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    version = Column(Integer, default=1, nullable=False)
    is_final = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)

    assignment = relationship("Assignment", back_populates="deliverables")


class Workspace(Base):
    """Collaboration board companion, 1:1 with an assignment. The board itself is opaque JSON."""
    __tablename__ = "workspaces"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    assignment_id = Column(Uuid, ForeignKey("assignments.id"), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    board = Column(JSON, default=dict)
    created_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_synced_at = Column(DateTime, nullable=True)

    assignment = relationship("Assignment", back_populates="workspace")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(64), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    subject_id = Column(Uuid, nullable=True)
    subject_kind = Column(String(64), nullable=True)
    link = Column(String(500), nullable=True)
    meta = Column("metadata", JSON, default=dict)
    actions = Column(JSON, default=list)
    priority = Column(String(16), default="low", nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="notifications")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    assignment_id = Column(Uuid, ForeignKey("assignments.id"), nullable=True, index=True)
    actor_user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    action = Column(String(255), nullable=False)
    payload_json = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    assignment = relationship("Assignment", back_populates="audit_logs")

"""
Unit tests for the assignment state machine: status order, transitions and apply_transition.
"""
import pytest
from types import SimpleNamespace

from scholardesk.exceptions import IllegalTransitionError
from scholardesk.lifecycle.state_machine import (
    EXECUTION_STATUSES,
    STATUS_ORDER,
    TERMINAL_STATUSES,
    VALID_NEXT,
    apply_transition,
    can_transition,
    ensure_status,
    is_terminal,
)
from scholardesk.models import AssignmentStatus, AuditLog

pytestmark = pytest.mark.unit


# --- Pure logic (no DB) ---


def test_status_order_is_the_happy_path():
    assert STATUS_ORDER[0] == AssignmentStatus.PENDING
    assert STATUS_ORDER[-1] == AssignmentStatus.COMPLETED
    for current, nxt in zip(STATUS_ORDER, STATUS_ORDER[1:]):
        assert can_transition(current, nxt), f"{current} -> {nxt}"


def test_every_status_has_an_entry():
    assert set(VALID_NEXT) == set(AssignmentStatus)


def test_terminal_statuses():
    assert TERMINAL_STATUSES == {
        AssignmentStatus.COMPLETED,
        AssignmentStatus.REJECTED,
        AssignmentStatus.DECLINED,
        AssignmentStatus.CANCELLED,
    }
    for status in TERMINAL_STATUSES:
        assert is_terminal(status)
        assert not any(can_transition(status, target) for target in AssignmentStatus)


def test_execution_statuses():
    assert EXECUTION_STATUSES == {AssignmentStatus.WORKING, AssignmentStatus.REVIEW}


@pytest.mark.parametrize("current,target", [
    (AssignmentStatus.PENDING, AssignmentStatus.WORKING),
    (AssignmentStatus.QUOTED, AssignmentStatus.REJECTED),
    (AssignmentStatus.ACCEPTED, AssignmentStatus.DELIVERED),
    (AssignmentStatus.DELIVERED, AssignmentStatus.CANCELLED),
    (AssignmentStatus.WORKING, AssignmentStatus.PENDING),
])
def test_invalid_transitions(current, target):
    assert not can_transition(current, target)


def test_only_pending_is_a_valid_start():
    assert can_transition(None, AssignmentStatus.PENDING)
    assert not can_transition(None, AssignmentStatus.QUOTED)


def test_cancel_allowed_until_delivery():
    for status in (
        AssignmentStatus.PENDING,
        AssignmentStatus.QUOTED,
        AssignmentStatus.ACCEPTED,
        AssignmentStatus.WORKING,
        AssignmentStatus.REVIEW,
        AssignmentStatus.RELEASED_TO_ADMIN,
    ):
        assert can_transition(status, AssignmentStatus.CANCELLED)
    assert not can_transition(AssignmentStatus.DELIVERED, AssignmentStatus.CANCELLED)


def test_ensure_status_reports_current_status():
    assignment = SimpleNamespace(status=AssignmentStatus.ACCEPTED)
    with pytest.raises(IllegalTransitionError) as exc_info:
        ensure_status(assignment, AssignmentStatus.WORKING, AssignmentStatus.REVIEW)
    assert exc_info.value.status_code == 422
    assert exc_info.value.details["current_status"] == "accepted"


# --- apply_transition (DB) ---


def test_apply_transition_records_history_and_audit(db_session, make_assignment, admin):
    assignment = make_assignment()
    previous = apply_transition(db_session, assignment, AssignmentStatus.QUOTED, actor_id=admin.id, reason="priced")
    db_session.commit()
    db_session.refresh(assignment)

    assert previous == AssignmentStatus.PENDING
    assert assignment.status == AssignmentStatus.QUOTED
    assert assignment.quoted_at is not None
    last = assignment.status_history[-1]
    assert last["from"] == "pending"
    assert last["to"] == "quoted"
    assert last["reason"] == "priced"

    audit = db_session.query(AuditLog).filter(AuditLog.assignment_id == assignment.id).all()
    assert [a.action for a in audit] == ["STATUS_TRANSITION"]
    assert audit[0].payload_json["to"] == "quoted"


def test_apply_transition_rejects_illegal_move(db_session, make_assignment, admin):
    assignment = make_assignment()
    with pytest.raises(IllegalTransitionError):
        apply_transition(db_session, assignment, AssignmentStatus.DELIVERED, actor_id=admin.id)
    assert assignment.status == AssignmentStatus.PENDING
    assert len(assignment.status_history) == 1

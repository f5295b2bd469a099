"""
Tests for progress aggregation under both progress policies.
"""
import pytest

from scholardesk.config import settings
from scholardesk.exceptions import AuthorizationError, IllegalTransitionError
from scholardesk.lifecycle.records import clamp_progress, round_half_up
from scholardesk.models import AssignmentStatus
from scholardesk.services import progress_service, team_service, workspace_service


@pytest.fixture
def team_authoritative(monkeypatch):
    monkeypatch.setattr(settings, "PROGRESS_POLICY", "team_authoritative")


@pytest.mark.parametrize("value,expected", [(0.5, 1), (1.49, 1), (32.5, 33), (66.666, 67)])
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


@pytest.mark.parametrize("value,expected", [(-5, 0), (150, 100), (42.4, 42)])
def test_clamp_progress(value, expected):
    assert clamp_progress(value) == expected


def test_board_percentage():
    assert progress_service.board_percentage(0, 0) == 0
    assert progress_service.board_percentage(3, 1) == 33
    assert progress_service.board_percentage(8, 8) == 100


def test_individual_progress_averages_team(db_session, make_assignment, as_actor, dev_a, dev_b, dev_c):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a, dev_b, dev_c])
    team_service.record_individual_progress(db_session, as_actor(dev_a), assignment.id, 100)
    report = team_service.record_individual_progress(db_session, as_actor(dev_b), assignment.id, 50)

    assert report.task_progress == 50
    db_session.refresh(assignment)
    assert assignment.progress == 50
    assert assignment.assigned_workers[1]["progress"] == 50


def test_individual_progress_is_clamped(db_session, make_assignment, as_actor, dev_a):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a])
    report = team_service.record_individual_progress(db_session, as_actor(dev_a), assignment.id, 140)
    assert report.individual_progress == 100
    assert report.task_progress == 100


def test_individual_progress_requires_execution(db_session, make_assignment, admin, as_actor, dev_a):
    assignment = make_assignment(AssignmentStatus.ACCEPTED)
    team_service.add_member(db_session, admin, assignment.id, dev_a.id)
    with pytest.raises(IllegalTransitionError):
        team_service.record_individual_progress(db_session, as_actor(dev_a), assignment.id, 20)


def test_individual_progress_requires_membership(db_session, make_assignment, as_actor, dev_a, dev_b):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a])
    with pytest.raises(AuthorizationError):
        team_service.record_individual_progress(db_session, as_actor(dev_b), assignment.id, 20)


def test_milestone_notifies_lead(db_session, make_assignment, as_actor, dev_a, dev_b, pushed):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a, dev_b])
    pushed.clear()

    report = team_service.record_individual_progress(db_session, as_actor(dev_b), assignment.id, 25)
    assert report.milestone_reached == 25
    assert [user_id for user_id, _ in pushed] == [str(dev_a.id)]

    pushed.clear()
    report = team_service.record_individual_progress(db_session, as_actor(dev_b), assignment.id, 30)
    assert report.milestone_reached is None
    assert pushed == []


def test_last_write_wins(db_session, make_assignment, admin, as_actor, dev_a):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a])
    team_service.record_individual_progress(db_session, as_actor(dev_a), assignment.id, 20)

    update = progress_service.set_progress(db_session, admin, assignment.id, 70)
    assert update.applied is True
    assert update.progress == 70

    update = workspace_service.sync_progress(db_session, as_actor(dev_a), assignment.id, total_items=4, completed_items=1)
    assert update.applied is True
    assert update.progress == 25

    team_service.record_individual_progress(db_session, as_actor(dev_a), assignment.id, 40)
    db_session.refresh(assignment)
    assert assignment.progress == 40


def test_team_authoritative_ignores_external_writes(db_session, make_assignment, admin, as_actor, dev_a, team_authoritative):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a])
    team_service.record_individual_progress(db_session, as_actor(dev_a), assignment.id, 20)

    update = progress_service.set_progress(db_session, admin, assignment.id, 90)
    assert update.applied is False
    assert update.progress == 20

    update = workspace_service.sync_progress(db_session, as_actor(dev_a), assignment.id, total_items=2, completed_items=2)
    assert update.applied is False
    db_session.refresh(assignment)
    assert assignment.progress == 20
    assert assignment.notes[-1].note == "Progress synced from workspace: 2/2 tasks (100%)"


def test_team_authoritative_without_team(db_session, make_assignment, admin, team_authoritative):
    assignment = make_assignment(AssignmentStatus.ACCEPTED)
    update = progress_service.set_progress(db_session, admin, assignment.id, 15)
    assert update.applied is True
    assert update.progress == 15


def test_admin_set_is_clamped(db_session, make_assignment, admin):
    assignment = make_assignment()
    assert progress_service.set_progress(db_session, admin, assignment.id, 250).progress == 100
    assert progress_service.set_progress(db_session, admin, assignment.id, -10).progress == 0


def test_recompute_without_active_members_keeps_progress(db_session, make_assignment, admin):
    assignment = make_assignment()
    progress_service.set_progress(db_session, admin, assignment.id, 35)
    db_session.refresh(assignment)
    assert progress_service.team_average(assignment) is None
    assert progress_service.recompute_from_team(assignment) == 35

"""
Tests for the release barrier: every active member releases once, the last one
moves the assignment to released-to-admin.
"""
import pytest

from scholardesk.exceptions import AuthorizationError, ConflictError, IllegalTransitionError, ValidationError
from scholardesk.models import AssignmentStatus
from scholardesk.services import lifecycle_service, release_service, team_service


def test_partial_release_keeps_working(db_session, make_assignment, as_actor, dev_a, dev_b, dev_c, pushed):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a, dev_b, dev_c])
    pushed.clear()

    status = release_service.release(db_session, as_actor(dev_a), assignment.id, ["chapter1.docx"], "Done with intro")

    assert status["released_count"] == 1
    assert status["required_count"] == 3
    assert status["all_released"] is False
    assert status["status"] == AssignmentStatus.WORKING
    released = {w["worker_id"]: w for w in status["workers"]}
    assert released[dev_a.id]["released"] is True
    assert released[dev_a.id]["deliverables"] == [{"file_name": "chapter1.docx"}]
    # Everyone still pending hears about it, the caller does not
    assert {user_id for user_id, _ in pushed} == {str(dev_b.id), str(dev_c.id)}
    assert all(msg["data"]["type"] == "release_required" for _, msg in pushed)


def test_last_release_moves_to_admin(db_session, make_assignment, admin, as_actor, dev_a, dev_b, pushed):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a, dev_b])
    release_service.release(db_session, as_actor(dev_a), assignment.id)
    pushed.clear()

    status = release_service.release(db_session, as_actor(dev_b), assignment.id)

    assert status["all_released"] is True
    assert status["status"] == AssignmentStatus.RELEASED_TO_ADMIN
    db_session.refresh(assignment)
    assert assignment.released_at is not None
    assert all(m.is_complete for m in assignment.active_members)
    assert [user_id for user_id, _ in pushed] == [str(admin.id)]
    notification = pushed[0][1]["data"]
    assert notification["type"] == "all_released"
    assert notification["actions"][0]["label"] == "Release to Client"


def test_release_twice_is_rejected(db_session, make_assignment, as_actor, dev_a, dev_b):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a, dev_b])
    release_service.release(db_session, as_actor(dev_a), assignment.id)
    with pytest.raises(ConflictError) as exc_info:
        release_service.release(db_session, as_actor(dev_a), assignment.id)
    assert exc_info.value.reason == "ALREADY_RELEASED"
    assert len(release_service.get_release_status(db_session, as_actor(dev_a), assignment.id)["workers"]) == 2


def test_release_requires_membership(db_session, make_assignment, as_actor, dev_a, dev_c):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a])
    with pytest.raises(AuthorizationError) as exc_info:
        release_service.release(db_session, as_actor(dev_c), assignment.id)
    assert exc_info.value.reason == "NOT_ASSIGNED"


def test_release_requires_execution_status(db_session, make_assignment, admin, as_actor, dev_a, dev_b):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a, dev_b])
    lifecycle_service.cancel(db_session, admin, assignment.id)
    with pytest.raises(IllegalTransitionError):
        release_service.release(db_session, as_actor(dev_a), assignment.id)


def test_release_from_review(db_session, make_assignment, as_actor, dev_a):
    assignment = make_assignment(AssignmentStatus.REVIEW, workers=[dev_a])
    status = release_service.release(db_session, as_actor(dev_a), assignment.id)
    assert status["status"] == AssignmentStatus.RELEASED_TO_ADMIN


def test_removed_member_does_not_block(db_session, make_assignment, admin, as_actor, dev_a, dev_b):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a, dev_b])
    team_service.remove_member(db_session, admin, assignment.id, dev_b.id)

    status = release_service.release(db_session, as_actor(dev_a), assignment.id)
    assert status["required_count"] == 1
    assert status["all_released"] is True


def test_release_to_client_after_barrier(db_session, make_assignment, admin, as_actor, dev_a):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a])
    release_service.release(db_session, as_actor(dev_a), assignment.id, [{"file_name": "essay.pdf"}])

    delivered = lifecycle_service.release_to_client(
        db_session, admin, assignment.id,
        files=[{"file_name": "essay.pdf", "file_url": "https://files.example.com/essay.pdf"}],
    )
    assert delivered.status == AssignmentStatus.DELIVERED


def test_release_status_visibility(db_session, make_assignment, admin, as_actor, dev_a, dev_c):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a])
    assert release_service.get_release_status(db_session, admin, assignment.id)["released_count"] == 0
    with pytest.raises(AuthorizationError):
        release_service.get_release_status(db_session, as_actor(dev_c), assignment.id)


def test_removing_last_holdout_fires_barrier(db_session, make_assignment, admin, as_actor, dev_a, dev_b, dev_c, pushed):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a, dev_b, dev_c])
    release_service.release(db_session, as_actor(dev_a), assignment.id)
    release_service.release(db_session, as_actor(dev_b), assignment.id)
    pushed.clear()

    team_service.remove_member(db_session, admin, assignment.id, dev_c.id, "Left the project")

    status = release_service.get_release_status(db_session, admin, assignment.id)
    assert status["released_count"] == status["required_count"] == 2
    assert status["all_released"] is True
    assert status["status"] == AssignmentStatus.RELEASED_TO_ADMIN
    db_session.refresh(assignment)
    assert assignment.released_at is not None
    assert assignment.status_history[-1]["to"] == AssignmentStatus.RELEASED_TO_ADMIN.value
    admin_types = [msg["data"]["type"] for user_id, msg in pushed if user_id == str(admin.id)]
    assert admin_types == ["all_released"]


def test_removal_without_releases_keeps_working(db_session, make_assignment, admin, as_actor, dev_a, dev_b):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a, dev_b])
    team_service.remove_member(db_session, admin, assignment.id, dev_b.id)

    status = release_service.get_release_status(db_session, admin, assignment.id)
    assert status["released_count"] == 0
    assert status["status"] == AssignmentStatus.WORKING


@pytest.mark.parametrize("deliverables", [[42], [{"file_url": "https://files/x.pdf"}], [""], [None]])
def test_malformed_deliverables_rejected(db_session, make_assignment, as_actor, dev_a, dev_b, deliverables):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a, dev_b])
    with pytest.raises(ValidationError) as exc_info:
        release_service.release(db_session, as_actor(dev_a), assignment.id, deliverables)
    assert exc_info.value.reason == "INVALID_DELIVERABLES"
    assert release_service.get_release_status(db_session, as_actor(dev_a), assignment.id)["released_count"] == 0


def test_release_accepts_file_objects(db_session, make_assignment, as_actor, dev_a):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a])
    status = release_service.release(
        db_session, as_actor(dev_a), assignment.id,
        ["notes.txt", {"file_name": "final.pdf", "file_url": "https://files/final.pdf"}],
    )
    assert status["workers"][0]["deliverables"] == [
        {"file_name": "notes.txt"},
        {"file_name": "final.pdf", "file_url": "https://files/final.pdf"},
    ]

"""
Tests for worker-facing operations: task list, stats, submit for review and uploads.
"""
import pytest

from scholardesk.exceptions import AuthorizationError, IllegalTransitionError, ValidationError
from scholardesk.models import AssignmentStatus
from scholardesk.services import lifecycle_service, worker_service

FILES = [{"file_name": "draft.docx", "file_url": "https://files.example.com/draft.docx"}]


def test_submit_for_review(db_session, make_assignment, admin, as_actor, dev_a, pushed):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a])
    pushed.clear()

    reviewed = worker_service.submit_for_review(db_session, as_actor(dev_a), assignment.id, "review", "Ready to go")

    assert reviewed.status == AssignmentStatus.REVIEW
    assert reviewed.progress == 100
    assert reviewed.notes[-1].note == "Submitted for review: Ready to go"
    assert [user_id for user_id, _ in pushed] == [str(admin.id)]
    assert pushed[0][1]["data"]["actions"][0]["label"] == "Review & Deliver"


def test_submit_for_review_rejects_other_targets(db_session, make_assignment, as_actor, dev_a):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a])
    with pytest.raises(ValidationError) as exc_info:
        worker_service.submit_for_review(db_session, as_actor(dev_a), assignment.id, "delivered")
    assert exc_info.value.reason == "INVALID_TARGET_STATUS"


def test_submit_for_review_requires_working(db_session, make_assignment, as_actor, dev_a):
    assignment = make_assignment(AssignmentStatus.REVIEW, workers=[dev_a])
    with pytest.raises(IllegalTransitionError):
        worker_service.submit_for_review(db_session, as_actor(dev_a), assignment.id, "review")


def test_upload_deliverables_versions(db_session, make_assignment, as_actor, dev_a, dev_b):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a, dev_b])

    first = worker_service.upload_deliverables(db_session, as_actor(dev_a), assignment.id, FILES)
    second = worker_service.upload_deliverables(db_session, as_actor(dev_b), assignment.id, FILES + FILES)

    assert [d.version for d in first] == [1]
    assert [d.version for d in second] == [2, 2]
    assert not any(d.is_final for d in first + second)

    with pytest.raises(ValidationError) as exc_info:
        worker_service.upload_deliverables(db_session, as_actor(dev_a), assignment.id, [])
    assert exc_info.value.reason == "NO_FILES"


def test_deliver_finalizes_latest_upload(db_session, make_assignment, admin, as_actor, dev_a):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a])
    worker_service.upload_deliverables(db_session, as_actor(dev_a), assignment.id, FILES)
    worker_service.upload_deliverables(db_session, as_actor(dev_a), assignment.id, FILES)
    worker_service.submit_for_review(db_session, as_actor(dev_a), assignment.id, "review")

    delivered = lifecycle_service.deliver(db_session, admin, assignment.id)
    assert [(d.version, d.is_final) for d in delivered.deliverables] == [(1, False), (2, True)]


def test_upload_requires_membership(db_session, make_assignment, as_actor, dev_a, dev_b):
    assignment = make_assignment(AssignmentStatus.WORKING, workers=[dev_a])
    with pytest.raises(AuthorizationError):
        worker_service.upload_deliverables(db_session, as_actor(dev_b), assignment.id, FILES)


def test_worker_tasks_and_stats(db_session, make_assignment, as_actor, dev_a, dev_b):
    working = make_assignment(AssignmentStatus.WORKING, workers=[dev_a, dev_b], title="Essay")
    review = make_assignment(AssignmentStatus.REVIEW, workers=[dev_a], title="Report")
    make_assignment(AssignmentStatus.WORKING, workers=[dev_b], title="Other")

    tasks = worker_service.list_worker_tasks(db_session, as_actor(dev_a))
    assert {t.id for t in tasks} == {working.id, review.id}
    only_review = worker_service.list_worker_tasks(db_session, as_actor(dev_a), AssignmentStatus.REVIEW)
    assert [t.id for t in only_review] == [review.id]

    stats = worker_service.get_worker_stats(db_session, as_actor(dev_a))
    assert stats["total_tasks"] == 2
    assert stats["active_tasks"] == 1
    assert stats["in_review"] == 1
    assert stats["average_progress"] == 50
    assert stats["by_status"] == {"working": 1, "review": 1}

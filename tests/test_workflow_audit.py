"""
Workflow audit log tests.

Tests cover:
  - Chronological history with reviewer identity
  - Comments never change status
  - Submit and claim are not recorded
  - Reviewer name snapshot survives user changes
"""
from datetime import datetime, timedelta, timezone

import pytest

from cms.models import db
from cms.models.auth import User
from cms.models.workflow import Approval, Workflow
from cms.services import workflow_audit, workflow_service as svc


@pytest.fixture()
def reviewed(creator, reviewer, review_required):
    wf = svc.create_workflow(
        {"entity_type": "content", "operation": "update", "entity_id": "7", "payload": {"title": "A"}},
        creator.id,
    )
    svc.submit_workflow(wf["id"], creator.id)
    svc.claim_workflow(wf["id"], reviewer.id)
    return wf


def test_submit_and_claim_not_recorded(reviewed):
    assert workflow_audit.list_by_workflow(reviewed["id"]) == []


def test_history_is_chronological(reviewed, creator, reviewer):
    svc.add_comment(reviewed["id"], creator.id, "first")
    svc.add_comment(reviewed["id"], reviewer.id, "second")
    svc.request_changes(reviewed["id"], reviewer.id, "third")

    # Pin timestamps so ordering does not depend on clock resolution
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    rows = Approval.query.filter_by(workflow_id=reviewed["id"]).all()
    by_comment = {r.comment: r for r in rows}
    for offset, text in enumerate(["first", "second", "third"]):
        by_comment[text].created_at = base + timedelta(minutes=offset)
    db.session.commit()

    history = workflow_audit.list_by_workflow(reviewed["id"])
    assert [h["comment"] for h in history] == ["first", "second", "third"]
    assert [h["action"] for h in history] == ["comment", "comment", "request_changes"]
    assert history[0]["reviewer"]["id"] == creator.id
    assert history[1]["reviewer"]["full_name"] == "Robin Reviewer"
    assert history[2]["from_status"] == "in_review"
    assert history[2]["to_status"] == "changes_requested"


def test_comment_forces_same_status(reviewed, reviewer):
    wf = db.session.get(Workflow, reviewed["id"])
    entry = workflow_audit.record(wf, reviewer.id, "comment", "note", "in_review", "approved")
    db.session.commit()
    assert entry.from_status == entry.to_status == "in_review"


def test_unknown_action_rejected(reviewed, reviewer):
    wf = db.session.get(Workflow, reviewed["id"])
    with pytest.raises(ValueError):
        workflow_audit.record(wf, reviewer.id, "claim", None, "pending_review", "in_review")


def test_reviewer_snapshot(reviewed, reviewer):
    svc.approve_workflow(reviewed["id"], reviewer.id, "ship it")
    entry = Approval.query.filter_by(workflow_id=reviewed["id"]).one()
    assert entry.reviewer_name_snapshot == "Robin Reviewer"

    user = db.session.get(User, reviewer.id)
    user.full_name = "Robin R. Renamed"
    db.session.commit()

    history = workflow_audit.list_by_workflow(reviewed["id"])
    # Live identity is preferred; the snapshot stays as recorded
    assert history[0]["reviewer"]["full_name"] == "Robin R. Renamed"
    assert Approval.query.filter_by(workflow_id=reviewed["id"]).one().reviewer_name_snapshot == "Robin Reviewer"


def test_same_timestamp_keeps_insert_order(reviewed, reviewer):
    texts = [f"c{i}" for i in range(12)]
    for text in texts:
        svc.add_comment(reviewed["id"], reviewer.id, text)

    same = datetime(2026, 1, 1, tzinfo=timezone.utc)
    Approval.query.filter_by(workflow_id=reviewed["id"]).update(
        {"created_at": same}, synchronize_session=False,
    )
    db.session.commit()

    history = workflow_audit.list_by_workflow(reviewed["id"])
    assert [h["comment"] for h in history] == texts

"""
Workflow state machine tests (service layer).

Tests cover:
  - Transition table helpers
  - Happy path: create → submit → claim → approve
  - Request changes → edit → resubmit (policy re-evaluated)
  - Auto-approval at submit
  - Claim race (stale read + compare-and-set)
  - Terminal states, assignee invariant, timestamps set once
  - Error taxonomy and check order
  - Cancel (state rules + dependent rows removed)
  - Approved-change handler injection
"""
from types import SimpleNamespace

import pytest

from cms.core.exceptions import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from cms.models import db
from cms.models.workflow import Approval, Workflow, WorkflowAssignment
from cms.services import workflow_service as svc
from cms.services import workflow_policy
from cms.services.permission_service import assign_role
from cms.services.workflow_effects import EXTENSION_KEY


# ── Helpers ─────────────────────────────────────────────────────────────

def _create(user, payload=None, **extra):
    data = {"entity_type": "content", "operation": "create", "payload": payload or {"title": "A"}}
    data.update(extra)
    return svc.create_workflow(data, user.id)


def _pending(user):
    wf = _create(user)
    svc.submit_workflow(wf["id"], user.id)
    return wf


def _in_review(user, reviewer):
    wf = _pending(user)
    svc.claim_workflow(wf["id"], reviewer.id)
    return wf


def _row(workflow_id):
    db.session.expire_all()
    return db.session.get(Workflow, workflow_id)


def _approval_count(workflow_id):
    return Approval.query.filter_by(workflow_id=workflow_id).count()


# ═════════════════════════════════════════════════════════════════════════
# TRANSITION TABLE
# ═════════════════════════════════════════════════════════════════════════

class TestTransitionTable:
    def test_validate_transition(self):
        assert svc.validate_transition("draft", "submit") is True
        assert svc.validate_transition("changes_requested", "submit") is True
        assert svc.validate_transition("pending_review", "submit") is False
        assert svc.validate_transition("pending_review", "claim") is True
        assert svc.validate_transition("in_review", "claim") is False
        assert svc.validate_transition("approved", "comment") is True
        assert svc.validate_transition("draft", "no_such_action") is False

    def test_available_transitions(self):
        assert svc.get_available_transitions("draft") == ["cancel", "comment", "submit", "update_payload"]
        assert svc.get_available_transitions("pending_review") == ["cancel", "claim", "comment"]
        assert svc.get_available_transitions("in_review") == [
            "approve", "comment", "reject", "request_changes",
        ]

    @pytest.mark.parametrize("status", ["approved", "rejected"])
    def test_terminal_offers_only_comment(self, status):
        assert svc.get_available_transitions(status) == ["comment"]


# ═════════════════════════════════════════════════════════════════════════
# CREATE
# ═════════════════════════════════════════════════════════════════════════

class TestCreate:
    def test_create_draft(self, creator):
        wf = _create(creator, entity_id="42", priority=3, due_date="2026-12-01")
        assert wf["current_status"] == "draft"
        assert wf["previous_status"] is None
        assert wf["created_by"] == creator.id
        assert wf["assigned_to"] is None
        assert wf["payload"] == {"title": "A"}
        assert wf["entity_id"] == "42"
        assert wf["priority"] == 3
        assert wf["due_date"].startswith("2026-12-01")
        assert wf["submitted_at"] is None

    @pytest.mark.parametrize("override, field", [
        ({"entity_type": "blog"}, "entity_type"),
        ({"operation": "publish"}, "operation"),
        ({"payload": ["not", "an", "object"]}, "payload"),
        ({"priority": -1}, "priority"),
        ({"priority": "high"}, "priority"),
        ({"due_date": "next tuesday"}, "due_date"),
    ])
    def test_create_validation(self, creator, override, field):
        data = {"entity_type": "content", "operation": "update", "payload": {}}
        data.update(override)
        with pytest.raises(ValidationError) as exc:
            svc.create_workflow(data, creator.id)
        assert field in exc.value.details

    def test_create_unknown_user(self):
        with pytest.raises(NotFoundError):
            svc.create_workflow(
                {"entity_type": "content", "operation": "create", "payload": {}}, 9999,
            )


# ═════════════════════════════════════════════════════════════════════════
# SCENARIOS
# ═════════════════════════════════════════════════════════════════════════

class TestScenarios:
    def test_submit_claim_approve(self, creator, reviewer, review_required):
        wf = _create(creator)

        submitted = svc.submit_workflow(wf["id"], creator.id)
        assert submitted["current_status"] == "pending_review"
        assert submitted["previous_status"] == "draft"
        assert submitted["auto_approved"] is False
        assert submitted["submitted_at"] is not None

        claimed = svc.claim_workflow(wf["id"], reviewer.id)
        assert claimed["current_status"] == "in_review"
        assert claimed["assigned_to"] == reviewer.id
        assert claimed["started_at"] is not None

        result = svc.approve_workflow(wf["id"], reviewer.id, comment="ok")
        assert result["workflow"]["current_status"] == "approved"
        assert result["workflow"]["previous_status"] == "in_review"
        assert result["workflow"]["completed_at"] is not None
        assert result["entity"] is None

        approvals = Approval.query.filter_by(workflow_id=wf["id"]).all()
        assert len(approvals) == 1
        assert approvals[0].action == "approve"
        assert approvals[0].reviewer_id == reviewer.id
        assert approvals[0].from_status == "in_review"
        assert approvals[0].to_status == "approved"
        assert approvals[0].comment == "ok"

    def test_request_changes_then_resubmit(self, creator, reviewer, other_reviewer, review_required):
        wf = _in_review(creator, reviewer)

        sent_back = svc.request_changes(wf["id"], reviewer.id, "fix X")
        assert sent_back["current_status"] == "changes_requested"
        assert sent_back["assigned_to"] is None

        edited = svc.update_payload(wf["id"], creator.id, {"title": "B"})
        assert edited["payload"] == {"title": "B"}
        assert edited["current_status"] == "changes_requested"

        resubmitted = svc.submit_workflow(wf["id"], creator.id)
        assert resubmitted["current_status"] == "pending_review"
        assert resubmitted["previous_status"] == "changes_requested"

        # A different reviewer can take it this time
        reclaimed = svc.claim_workflow(wf["id"], other_reviewer.id)
        assert reclaimed["assigned_to"] == other_reviewer.id

    def test_reject_with_comment(self, creator, reviewer, review_required):
        wf = _in_review(creator, reviewer)
        rejected = svc.reject_workflow(wf["id"], reviewer.id, "  off-brand  ")
        assert rejected["current_status"] == "rejected"
        assert rejected["assigned_to"] is None
        assert rejected["completed_at"] is not None
        entry = Approval.query.filter_by(workflow_id=wf["id"]).one()
        assert entry.action == "reject"
        assert entry.comment == "off-brand"

    def test_approve_without_comment(self, creator, reviewer, review_required):
        wf = _in_review(creator, reviewer)
        result = svc.approve_workflow(wf["id"], reviewer.id)
        assert result["workflow"]["current_status"] == "approved"
        assert Approval.query.filter_by(workflow_id=wf["id"]).one().comment is None


# ═════════════════════════════════════════════════════════════════════════
# AUTO-APPROVAL
# ═════════════════════════════════════════════════════════════════════════

class TestAutoApproval:
    def test_no_config_auto_approves(self, creator):
        wf = _create(creator)
        result = svc.submit_workflow(wf["id"], creator.id)
        assert result["auto_approved"] is True
        assert result["current_status"] == "approved"

    def test_requires_approval_false(self, creator):
        workflow_policy.upsert_config("content", {"requires_approval": False})
        wf = _create(creator)
        result = svc.submit_workflow(wf["id"], creator.id)

        assert result["current_status"] == "approved"
        assert result["previous_status"] == "draft"
        assert result["submitted_at"] is not None
        assert result["completed_at"] is not None
        assert result["started_at"] is None
        assert result["assigned_to"] is None
        assert _approval_count(wf["id"]) == 0

    def test_bypass_role(self, make_user):
        workflow_policy.upsert_config(
            "content", {"requires_approval": True, "auto_approve_for_roles": ["chief_editor"]},
        )
        chief = make_user("Chief", roles=["chief_editor"])
        wf = _create(chief)
        assert svc.submit_workflow(wf["id"], chief.id)["current_status"] == "approved"

    def test_resubmission_reevaluates_policy(self, creator, reviewer):
        workflow_policy.upsert_config(
            "content", {"requires_approval": True, "auto_approve_for_roles": ["chief_editor"]},
        )
        wf = _in_review(creator, reviewer)
        assert _row(wf["id"]).current_status == "in_review"
        svc.request_changes(wf["id"], reviewer.id, "needs work")

        # Promoted between submissions
        assign_role(creator.id, "chief_editor")
        db.session.commit()

        result = svc.submit_workflow(wf["id"], creator.id)
        assert result["auto_approved"] is True
        assert result["current_status"] == "approved"

    def test_resubmission_keeps_first_submitted_at(self, creator, reviewer, review_required):
        wf = _create(creator)
        first = svc.submit_workflow(wf["id"], creator.id)
        svc.claim_workflow(wf["id"], reviewer.id)
        svc.request_changes(wf["id"], reviewer.id, "again")
        second = svc.submit_workflow(wf["id"], creator.id)
        assert second["submitted_at"] == first["submitted_at"]


# ═════════════════════════════════════════════════════════════════════════
# CLAIM
# ═════════════════════════════════════════════════════════════════════════

class TestClaim:
    def test_claim_already_claimed(self, creator, reviewer, other_reviewer, review_required):
        wf = _in_review(creator, reviewer)
        with pytest.raises(StateConflictError):
            svc.claim_workflow(wf["id"], other_reviewer.id)
        assert _row(wf["id"]).assigned_to_id == reviewer.id

    def test_concurrent_claim_one_winner(
        self, monkeypatch, creator, reviewer, other_reviewer, review_required,
    ):
        """Both claimers read pending_review/unassigned; only one write lands."""
        wf = _pending(creator)
        loser_id = other_reviewer.id
        stale = SimpleNamespace(
            id=wf["id"], current_status="pending_review", assigned_to_id=None, started_at=None,
        )

        winner = svc.claim_workflow(wf["id"], reviewer.id)
        assert winner["assigned_to"] == reviewer.id

        monkeypatch.setattr(svc, "_load_workflow", lambda _wid: stale)
        with pytest.raises(StateConflictError) as exc:
            svc.claim_workflow(wf["id"], loser_id)
        assert exc.value.action == "claim"
        monkeypatch.undo()

        row = _row(wf["id"])
        assert row.current_status == "in_review"
        assert row.assigned_to_id == reviewer.id

    def test_claim_from_draft(self, creator, reviewer):
        wf = _create(creator)
        with pytest.raises(StateConflictError):
            svc.claim_workflow(wf["id"], reviewer.id)

    def test_started_at_kept_on_reclaim(self, creator, reviewer, review_required):
        wf = _create(creator)
        svc.submit_workflow(wf["id"], creator.id)
        first = svc.claim_workflow(wf["id"], reviewer.id)
        svc.request_changes(wf["id"], reviewer.id, "again")
        svc.submit_workflow(wf["id"], creator.id)
        second = svc.claim_workflow(wf["id"], reviewer.id)
        assert second["started_at"] == first["started_at"]


# ═════════════════════════════════════════════════════════════════════════
# INVARIANTS
# ═════════════════════════════════════════════════════════════════════════

class TestInvariants:
    def _assert_assignee_invariant(self, workflow_id):
        row = _row(workflow_id)
        assert (row.assigned_to_id is not None) == (row.current_status == "in_review")

    def test_assignee_only_while_in_review(self, creator, reviewer, review_required):
        wf = _create(creator)
        self._assert_assignee_invariant(wf["id"])
        svc.submit_workflow(wf["id"], creator.id)
        self._assert_assignee_invariant(wf["id"])
        svc.claim_workflow(wf["id"], reviewer.id)
        self._assert_assignee_invariant(wf["id"])
        svc.request_changes(wf["id"], reviewer.id, "x")
        self._assert_assignee_invariant(wf["id"])
        svc.submit_workflow(wf["id"], creator.id)
        svc.claim_workflow(wf["id"], reviewer.id)
        svc.approve_workflow(wf["id"], reviewer.id)
        self._assert_assignee_invariant(wf["id"])

    @pytest.mark.parametrize("decision", ["approve", "reject"])
    def test_terminal_accepts_no_transition(self, creator, reviewer, review_required, decision):
        wf = _in_review(creator, reviewer)
        if decision == "approve":
            svc.approve_workflow(wf["id"], reviewer.id)
        else:
            svc.reject_workflow(wf["id"], reviewer.id, "no")
        final = _row(wf["id"]).current_status

        attempts = [
            lambda: svc.submit_workflow(wf["id"], creator.id),
            lambda: svc.claim_workflow(wf["id"], reviewer.id),
            lambda: svc.approve_workflow(wf["id"], reviewer.id),
            lambda: svc.reject_workflow(wf["id"], reviewer.id, "x"),
            lambda: svc.request_changes(wf["id"], reviewer.id, "x"),
            lambda: svc.update_payload(wf["id"], creator.id, {"title": "Z"}),
            lambda: svc.cancel_workflow(wf["id"], creator.id),
        ]
        for attempt in attempts:
            with pytest.raises(StateConflictError):
                attempt()
        assert _row(wf["id"]).current_status == final

    def test_comment_allowed_after_decision(self, creator, reviewer, review_required):
        wf = _in_review(creator, reviewer)
        svc.approve_workflow(wf["id"], reviewer.id)
        entry = svc.add_comment(wf["id"], creator.id, "thanks")
        assert entry["from_status"] == entry["to_status"] == "approved"
        assert _row(wf["id"]).current_status == "approved"


# ═════════════════════════════════════════════════════════════════════════
# ERRORS & CHECK ORDER
# ═════════════════════════════════════════════════════════════════════════

class TestErrors:
    def test_unknown_workflow(self, creator):
        for call in (
            lambda: svc.submit_workflow("missing", creator.id),
            lambda: svc.claim_workflow("missing", creator.id),
            lambda: svc.approve_workflow("missing", creator.id),
            lambda: svc.add_comment("missing", creator.id, "x"),
            lambda: svc.cancel_workflow("missing", creator.id),
        ):
            with pytest.raises(NotFoundError):
                call()

    def test_unknown_actor(self, creator, review_required):
        wf = _pending(creator)
        with pytest.raises(NotFoundError):
            svc.claim_workflow(wf["id"], 9999)

    def test_submit_by_non_creator(self, creator, reviewer):
        wf = _create(creator)
        with pytest.raises(AuthorizationError):
            svc.submit_workflow(wf["id"], reviewer.id)

    def test_creator_actions_check_actor_before_state(self, creator, reviewer, review_required):
        wf = _in_review(creator, reviewer)
        with pytest.raises(AuthorizationError):
            svc.update_payload(wf["id"], reviewer.id, {"title": "Z"})
        with pytest.raises(AuthorizationError):
            svc.cancel_workflow(wf["id"], reviewer.id)

    def test_decision_checks_state_before_assignee(self, creator, other_reviewer, review_required):
        wf = _pending(creator)
        with pytest.raises(StateConflictError):
            svc.approve_workflow(wf["id"], other_reviewer.id)

    def test_decision_by_non_assignee(self, creator, reviewer, other_reviewer, review_required):
        wf = _in_review(creator, reviewer)
        with pytest.raises(AuthorizationError):
            svc.approve_workflow(wf["id"], other_reviewer.id)
        # Assignee is checked before the comment
        with pytest.raises(AuthorizationError):
            svc.reject_workflow(wf["id"], other_reviewer.id, "")

    @pytest.mark.parametrize("comment", [None, "", "   \n\t"])
    def test_comment_required(self, creator, reviewer, review_required, comment):
        wf = _in_review(creator, reviewer)
        with pytest.raises(ValidationError):
            svc.reject_workflow(wf["id"], reviewer.id, comment)
        with pytest.raises(ValidationError):
            svc.request_changes(wf["id"], reviewer.id, comment)
        with pytest.raises(ValidationError):
            svc.add_comment(wf["id"], reviewer.id, comment)
        assert _row(wf["id"]).current_status == "in_review"
        assert _approval_count(wf["id"]) == 0

    def test_update_payload_requires_object(self, creator):
        wf = _create(creator)
        with pytest.raises(ValidationError):
            svc.update_payload(wf["id"], creator.id, "plain text")


# ═════════════════════════════════════════════════════════════════════════
# CANCEL
# ═════════════════════════════════════════════════════════════════════════

class TestCancel:
    def test_cancel_draft(self, creator):
        wf = _create(creator)
        svc.cancel_workflow(wf["id"], creator.id)
        assert _row(wf["id"]) is None

    def test_cancel_pending_removes_dependents(self, creator, reviewer, review_required):
        wf = _pending(creator)
        svc.add_comment(wf["id"], reviewer.id, "looking soon")
        db.session.add(WorkflowAssignment(workflow_id=wf["id"], user_id=reviewer.id, role="reviewer"))
        db.session.commit()

        svc.cancel_workflow(wf["id"], creator.id)

        assert _row(wf["id"]) is None
        assert _approval_count(wf["id"]) == 0
        assert WorkflowAssignment.query.filter_by(workflow_id=wf["id"]).count() == 0

    def test_cancel_in_review_conflicts(self, creator, reviewer, review_required):
        wf = _in_review(creator, reviewer)
        with pytest.raises(StateConflictError):
            svc.cancel_workflow(wf["id"], creator.id)
        assert _row(wf["id"]).current_status == "in_review"

    def test_cancel_loses_to_concurrent_claim(
        self, monkeypatch, creator, reviewer, review_required,
    ):
        wf = _pending(creator)
        stale = SimpleNamespace(id=wf["id"], current_status="pending_review", created_by_id=creator.id)
        creator_id = creator.id
        svc.claim_workflow(wf["id"], reviewer.id)

        monkeypatch.setattr(svc, "_load_workflow", lambda _wid: stale)
        with pytest.raises(StateConflictError):
            svc.cancel_workflow(wf["id"], creator_id)
        monkeypatch.undo()

        assert _row(wf["id"]).current_status == "in_review"


# ═════════════════════════════════════════════════════════════════════════
# APPROVED-CHANGE HANDLER
# ═════════════════════════════════════════════════════════════════════════

class TestApprovedChangeHandler:
    def test_handler_receives_change_on_approve(
        self, app, monkeypatch, creator, reviewer, review_required,
    ):
        received = []

        def materialize(change):
            received.append(change)
            return {"id": "content-1", "title": change.payload["title"]}

        monkeypatch.setitem(app.extensions, EXTENSION_KEY, materialize)
        wf = _in_review(creator, reviewer)
        result = svc.approve_workflow(wf["id"], reviewer.id)

        assert result["entity"] == {"id": "content-1", "title": "A"}
        assert len(received) == 1
        assert received[0].workflow_id == wf["id"]
        assert received[0].entity_type == "content"
        assert received[0].operation == "create"

    def test_handler_runs_on_auto_approval(self, app, monkeypatch, creator):
        monkeypatch.setitem(app.extensions, EXTENSION_KEY, lambda change: {"op": change.operation})
        wf = _create(creator)
        result = svc.submit_workflow(wf["id"], creator.id)
        assert result["entity"] == {"op": "create"}

    def test_handler_not_called_on_reject(self, app, monkeypatch, creator, reviewer, review_required):
        calls = []
        monkeypatch.setitem(app.extensions, EXTENSION_KEY, calls.append)
        wf = _in_review(creator, reviewer)
        svc.reject_workflow(wf["id"], reviewer.id, "no")
        assert calls == []

    def test_handler_failure_rolls_back_approval(
        self, app, monkeypatch, creator, reviewer, review_required,
    ):
        def broken(change):
            raise RuntimeError("content store unavailable")

        monkeypatch.setitem(app.extensions, EXTENSION_KEY, broken)
        wf = _in_review(creator, reviewer)
        reviewer_id = reviewer.id
        with pytest.raises(RuntimeError):
            svc.approve_workflow(wf["id"], reviewer_id)

        row = _row(wf["id"])
        assert row.current_status == "in_review"
        assert row.assigned_to_id == reviewer_id
        assert _approval_count(wf["id"]) == 0

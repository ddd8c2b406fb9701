"""
Workflow Service — the approval state machine.

Transition legality comes from ``WORKFLOW_TRANSITIONS`` only.  Every
operation follows the same shape:

    1. load the workflow              → NotFoundError
    2. load the acting user           → NotFoundError
    3. actor / state preconditions    → AuthorizationError / StateConflictError
    4. input validation               → ValidationError
    5. compare-and-set write, audit row, notifications, approved-change
       effect, all in one transaction committed by this module

Check order differs by actor kind.  Creator actions (submit,
update_payload, cancel) check the actor before the state; reviewer
decisions check the state, then the assignee, then the comment.

Compare-and-set: status writes are ``UPDATE ... WHERE id = :id AND
current_status = :expected`` (claim additionally requires
``assigned_to_id IS NULL``, decisions require ``assigned_to_id = :actor``).
Zero affected rows means another request got there first and surfaces as
StateConflictError; nothing is retried here.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, update

from cms.core.exceptions import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from cms.models import db
from cms.models.workflow import (
    COMMENT_REQUIRED_ACTIONS,
    TERMINAL_STATUSES,
    WORKFLOW_ENTITY_TYPES,
    WORKFLOW_OPERATIONS,
    WORKFLOW_TRANSITIONS,
    Approval,
    Workflow,
    WorkflowAssignment,
)
from cms.services import workflow_audit, workflow_policy
from cms.services.notification import NotificationService
from cms.services.permission_service import get_user_or_404, get_user_role_names
from cms.services.workflow_effects import apply_approved_change
from cms.utils.helpers import db_commit_or_raise, parse_datetime

logger = logging.getLogger(__name__)

# Internal transitions that are never offered to a caller directly
_INTERNAL_ACTIONS = frozenset({"auto_approve"})

_ANY = object()


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# Transition table helpers
# ═════════════════════════════════════════════════════════════════════════════


def validate_transition(current_status, action):
    """Return True if ``action`` is legal from ``current_status``."""
    rule = WORKFLOW_TRANSITIONS.get(action)
    if rule is None:
        return False
    allowed_from = rule["from"]
    return allowed_from is None or current_status in allowed_from


def get_available_transitions(current_status):
    """Caller-facing actions legal from ``current_status``, sorted."""
    return sorted(
        action for action in WORKFLOW_TRANSITIONS
        if action not in _INTERNAL_ACTIONS and validate_transition(current_status, action)
    )


def _target_status(action, current_status):
    target = WORKFLOW_TRANSITIONS[action]["to"]
    return current_status if target is None else target


def _assert_transition(workflow, action):
    if not validate_transition(workflow.current_status, action):
        reason = (
            "workflow is already decided"
            if workflow.current_status in TERMINAL_STATUSES
            else f"must be in {' or '.join(WORKFLOW_TRANSITIONS[action]['from'])}"
        )
        raise StateConflictError(workflow.id, action, workflow.current_status, reason)


# ═════════════════════════════════════════════════════════════════════════════
# Loading and guards
# ═════════════════════════════════════════════════════════════════════════════


def _load_workflow(workflow_id):
    workflow = db.session.get(Workflow, workflow_id)
    if workflow is None:
        raise NotFoundError(resource="Workflow", resource_id=workflow_id)
    return workflow


def _reload_workflow(workflow_id):
    return db.session.get(Workflow, workflow_id, populate_existing=True)


def _require_creator(workflow, actor_id, action):
    if workflow.created_by_id != actor_id:
        raise AuthorizationError(actor_id, action, "only the creator can do this")


def _require_assignee(workflow, actor_id, action):
    if workflow.assigned_to_id != actor_id:
        raise AuthorizationError(actor_id, action, "only the assigned reviewer can do this")


def _require_comment(action, comment):
    if action in COMMENT_REQUIRED_ACTIONS and not (comment or "").strip():
        raise ValidationError(
            f"A comment is required to {action.replace('_', ' ')}",
            details={"comment": "required"},
        )


def _compare_and_set(workflow, action, values, *, expected_status, assignee=_ANY):
    """Apply ``values`` only if the row still has ``expected_status``.

    ``assignee=None`` additionally requires the workflow to be unclaimed;
    an int requires it to be claimed by that user.
    """
    stmt = update(Workflow).where(
        Workflow.id == workflow.id,
        Workflow.current_status == expected_status,
    )
    if assignee is None:
        stmt = stmt.where(Workflow.assigned_to_id.is_(None))
    elif assignee is not _ANY:
        stmt = stmt.where(Workflow.assigned_to_id == assignee)

    result = db.session.execute(
        stmt.values(**values, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        logger.warning(
            "Workflow changed concurrently",
            extra={"workflow_id": workflow.id, "action": action, "from_status": expected_status},
        )
        raise StateConflictError(
            workflow.id, action, expected_status, "workflow was modified by another request",
        )


def _status_change(workflow, to_status, **extra):
    """Column values for a status change; previous_status always tracks it."""
    return {
        "previous_status": workflow.current_status,
        "current_status": to_status,
        **extra,
    }


def _log_transition(workflow_id, action, actor_id, from_status, to_status, **extra):
    logger.info(
        "Workflow %s: %s → %s", action, from_status, to_status,
        extra={
            "workflow_id": workflow_id,
            "action": action,
            "actor_id": actor_id,
            "from_status": from_status,
            "to_status": to_status,
            **extra,
        },
    )


def _apply_change_or_rollback(workflow):
    try:
        return apply_approved_change(workflow)
    except Exception:
        db.session.rollback()
        logger.exception(
            "Approved-change handler failed; approval rolled back",
            extra={"workflow_id": workflow.id},
        )
        raise


def _queue_completion_notice(workflow):
    config = workflow_policy.get_effective_config(workflow.entity_type)
    if config.notify_on_complete:
        NotificationService.notify_decision(workflow)


# ═════════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════════


def create_workflow(data, actor_id):
    """Create a draft workflow owned by ``actor_id``.

    Args:
        data: entity_type, operation and payload (required); entity_id,
            priority and due_date (optional).
        actor_id: the creating user.

    Returns:
        dict: the serialized draft.

    Raises:
        NotFoundError: actor does not exist.
        ValidationError: unknown entity type / operation, payload that is not
            an object, negative or non-integer priority, bad due_date.
    """
    get_user_or_404(actor_id)

    errors = {}
    entity_type = data.get("entity_type")
    if not isinstance(entity_type, str) or entity_type not in WORKFLOW_ENTITY_TYPES:
        errors["entity_type"] = f"must be one of: {', '.join(sorted(WORKFLOW_ENTITY_TYPES))}"
    operation = data.get("operation")
    if not isinstance(operation, str) or operation not in WORKFLOW_OPERATIONS:
        errors["operation"] = f"must be one of: {', '.join(sorted(WORKFLOW_OPERATIONS))}"
    payload = data.get("payload")
    if not isinstance(payload, dict):
        errors["payload"] = "must be a JSON object"
    priority = data.get("priority", 0)
    if priority is None:
        priority = 0
    if isinstance(priority, bool) or not isinstance(priority, int) or priority < 0:
        errors["priority"] = "must be an integer >= 0"
    due_date = None
    try:
        due_date = parse_datetime(data.get("due_date"))
    except ValueError as exc:
        errors["due_date"] = str(exc)
    entity_id = data.get("entity_id")
    if entity_id is not None and not isinstance(entity_id, (str, int)):
        errors["entity_id"] = "must be a string"
    if errors:
        raise ValidationError("Invalid workflow", details=errors)

    workflow = Workflow(
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        operation=operation,
        payload=payload,
        current_status="draft",
        priority=priority,
        due_date=due_date,
        created_by_id=actor_id,
    )
    db.session.add(workflow)
    db_commit_or_raise()

    _log_transition(workflow.id, "create", actor_id, None, "draft")
    return workflow.to_dict()


# ═════════════════════════════════════════════════════════════════════════════
# Creator actions
# ═════════════════════════════════════════════════════════════════════════════


def submit_workflow(workflow_id, actor_id):
    """Submit a draft (or a changes_requested workflow) for review.

    The auto-approval policy is evaluated now, against the roles the
    submitter currently holds.  When it applies the workflow goes straight
    to ``approved``: no review is entered, no Approval row is written, and
    the approved-change handler runs.

    Returns:
        dict: the workflow plus ``auto_approved`` and ``entity``.
    """
    workflow = _load_workflow(workflow_id)
    get_user_or_404(actor_id)
    _require_creator(workflow, actor_id, "submit")
    _assert_transition(workflow, "submit")

    from_status = workflow.current_status
    auto_approved = workflow_policy.should_auto_approve(
        workflow.entity_type, get_user_role_names(actor_id),
    )
    now = _utcnow()
    submitted_at = workflow.submitted_at or now
    if auto_approved:
        action = "auto_approve"
        values = _status_change(workflow, "approved", submitted_at=submitted_at, completed_at=now)
    else:
        action = "submit"
        values = _status_change(workflow, "pending_review", submitted_at=submitted_at)
    _compare_and_set(workflow, action, values, expected_status=from_status)

    workflow = _reload_workflow(workflow_id)
    entity = None
    if auto_approved:
        entity = _apply_change_or_rollback(workflow)
        _queue_completion_notice(workflow)
    elif workflow_policy.get_effective_config(workflow.entity_type).notify_on_submit:
        NotificationService.notify_review_requested(workflow)
    db_commit_or_raise()

    _log_transition(
        workflow_id, "submit", actor_id, from_status, values["current_status"],
        auto_approved=auto_approved,
    )
    return {**workflow.to_dict(), "auto_approved": auto_approved, "entity": entity}


def update_payload(workflow_id, actor_id, payload):
    """Replace the payload of an editable workflow; status is unchanged."""
    workflow = _load_workflow(workflow_id)
    get_user_or_404(actor_id)
    _require_creator(workflow, actor_id, "update_payload")
    _assert_transition(workflow, "update_payload")
    if not isinstance(payload, dict):
        raise ValidationError("payload must be a JSON object", details={"payload": "invalid"})

    status = workflow.current_status
    _compare_and_set(workflow, "update_payload", {"payload": payload}, expected_status=status)
    workflow = _reload_workflow(workflow_id)
    db_commit_or_raise()

    _log_transition(workflow_id, "update_payload", actor_id, status, status)
    return workflow.to_dict()


def cancel_workflow(workflow_id, actor_id):
    """Hard-delete a draft or pending_review workflow.

    Its approval and assignment rows are removed in the same transaction.
    The final DELETE is conditional on the status read here, so a claim that
    lands in between wins and the cancel fails with StateConflictError.
    """
    workflow = _load_workflow(workflow_id)
    get_user_or_404(actor_id)
    _require_creator(workflow, actor_id, "cancel")
    _assert_transition(workflow, "cancel")

    status = workflow.current_status
    db.session.execute(
        delete(Approval).where(Approval.workflow_id == workflow_id)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(
        delete(WorkflowAssignment).where(WorkflowAssignment.workflow_id == workflow_id)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(
        delete(Workflow)
        .where(Workflow.id == workflow_id, Workflow.current_status == status)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        raise StateConflictError(
            workflow_id, "cancel", status, "workflow was modified by another request",
        )
    db.session.expunge(workflow)
    db_commit_or_raise()

    _log_transition(workflow_id, "cancel", actor_id, status, None)


# ═════════════════════════════════════════════════════════════════════════════
# Reviewer actions
# ═════════════════════════════════════════════════════════════════════════════


def claim_workflow(workflow_id, actor_id):
    """Take exclusive review ownership of a pending_review workflow.

    Performed as one conditional UPDATE on ``status = pending_review AND
    assigned_to_id IS NULL``; of two concurrent claimers exactly one
    succeeds, the other gets StateConflictError.
    """
    workflow = _load_workflow(workflow_id)
    get_user_or_404(actor_id)
    _assert_transition(workflow, "claim")
    if workflow.assigned_to_id is not None:
        raise StateConflictError(
            workflow_id, "claim", workflow.current_status, "already claimed by another reviewer",
        )

    values = _status_change(
        workflow, "in_review",
        assigned_to_id=actor_id,
        started_at=workflow.started_at or _utcnow(),
    )
    _compare_and_set(workflow, "claim", values, expected_status="pending_review", assignee=None)
    workflow = _reload_workflow(workflow_id)
    db_commit_or_raise()

    _log_transition(workflow_id, "claim", actor_id, "pending_review", "in_review")
    return workflow.to_dict()


def _decide(workflow_id, actor_id, action, comment):
    """Shared path for approve / reject / request_changes.

    Every decision releases the claim: assigned_to_id is only set while
    the workflow is in_review.
    """
    workflow = _load_workflow(workflow_id)
    get_user_or_404(actor_id)
    _assert_transition(workflow, action)
    _require_assignee(workflow, actor_id, action)
    _require_comment(action, comment)

    from_status = workflow.current_status
    to_status = _target_status(action, from_status)
    values = _status_change(workflow, to_status, assigned_to_id=None)
    if to_status in TERMINAL_STATUSES:
        values["completed_at"] = workflow.completed_at or _utcnow()
    _compare_and_set(workflow, action, values, expected_status=from_status, assignee=actor_id)

    workflow = _reload_workflow(workflow_id)
    workflow_audit.record(
        workflow, actor_id, action, (comment or "").strip() or None, from_status, to_status,
    )
    entity = _apply_change_or_rollback(workflow) if action == "approve" else None
    if to_status in TERMINAL_STATUSES:
        _queue_completion_notice(workflow)
    db_commit_or_raise()

    _log_transition(workflow_id, action, actor_id, from_status, to_status)
    return workflow, entity


def approve_workflow(workflow_id, actor_id, comment=None):
    """Approve a claimed workflow and hand the change to the materializer.

    Returns:
        dict: ``{"workflow": ..., "entity": handler result or None}``
    """
    workflow, entity = _decide(workflow_id, actor_id, "approve", comment)
    return {"workflow": workflow.to_dict(), "entity": entity}


def reject_workflow(workflow_id, actor_id, comment):
    workflow, _ = _decide(workflow_id, actor_id, "reject", comment)
    return workflow.to_dict()


def request_changes(workflow_id, actor_id, comment):
    """Send the workflow back to its creator; the claim is released."""
    workflow, _ = _decide(workflow_id, actor_id, "request_changes", comment)
    return workflow.to_dict()


def add_comment(workflow_id, actor_id, comment):
    """Record a non-transitioning comment from any authenticated user."""
    workflow = _load_workflow(workflow_id)
    get_user_or_404(actor_id)
    _assert_transition(workflow, "comment")
    _require_comment("comment", comment)

    status = workflow.current_status
    entry = workflow_audit.record(workflow, actor_id, "comment", comment.strip(), status, status)
    db_commit_or_raise()

    _log_transition(workflow_id, "comment", actor_id, status, status)
    return entry.to_dict(include_reviewer=True)

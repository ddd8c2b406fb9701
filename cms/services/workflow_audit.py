"""
Workflow Audit Log — append-only ledger of reviewer actions.

Decisions (approve / reject / request_changes) and comments are recorded;
submit and claim are not.  Rows are never updated.  ``record`` only flushes:
the calling transition owns the transaction, so the audit row and the status
change commit together.
"""

import logging

from cms.models import db
from cms.models.auth import User
from cms.models.workflow import APPROVAL_ACTIONS, Approval

logger = logging.getLogger(__name__)


def record(workflow, reviewer_id, action, comment, from_status, to_status):
    """Append one Approval row for ``workflow``.

    For ``comment`` the status never changes, so ``to_status`` is forced to
    ``from_status`` whatever the caller passed.
    """
    if action not in APPROVAL_ACTIONS:
        raise ValueError(f"Unknown approval action: {action}")
    if action == "comment":
        to_status = from_status

    reviewer = db.session.get(User, reviewer_id) if reviewer_id is not None else None
    entry = Approval(
        workflow_id=workflow.id,
        reviewer_id=reviewer_id,
        reviewer_name_snapshot=reviewer.display_name if reviewer else None,
        action=action,
        comment=comment,
        from_status=from_status,
        to_status=to_status,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_by_workflow(workflow_id):
    """Chronological history for one workflow, reviewer identity included."""
    rows = (
        Approval.query
        .filter_by(workflow_id=workflow_id)
        .order_by(Approval.created_at.asc(), Approval.id.asc())
        .all()
    )
    return [r.to_dict(include_reviewer=True) for r in rows]

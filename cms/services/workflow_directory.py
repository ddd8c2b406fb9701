"""
Workflow Directory — read-only query surface over workflows.

Filters combine with AND; ``mine`` expands to
``created_by == actor OR assigned_to == actor``.  Results are newest first
with the id as tie-breaker so paging is stable.  The caller clamps
page/limit; this module trusts what it is given.
"""

import logging

from sqlalchemy import or_

from cms.core.exceptions import NotFoundError
from cms.models.auth import User
from cms.models.workflow import Workflow
from cms.services import workflow_audit
from cms.services.workflow_service import get_available_transitions

logger = logging.getLogger(__name__)


def list_workflows(
    page,
    limit,
    *,
    entity_type=None,
    status=None,
    assigned_to=None,
    created_by=None,
    mine=False,
    acting_user_id=None,
):
    """Return one page of workflows and the total count for the filters.

    Returns:
        (items, total): list of serialized workflows, int
    """
    q = Workflow.query
    if entity_type:
        q = q.filter(Workflow.entity_type == entity_type)
    if status:
        q = q.filter(Workflow.current_status == status)
    if assigned_to is not None:
        q = q.filter(Workflow.assigned_to_id == assigned_to)
    if created_by is not None:
        q = q.filter(Workflow.created_by_id == created_by)
    if mine and acting_user_id is not None:
        q = q.filter(or_(
            Workflow.created_by_id == acting_user_id,
            Workflow.assigned_to_id == acting_user_id,
        ))

    total = q.count()
    rows = (
        q.order_by(Workflow.created_at.desc(), Workflow.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return [w.to_dict() for w in rows], total


def _user_summary(user: User | None):
    return user.to_summary() if user else None


def get_workflow(workflow_id, include_history=True):
    """Single workflow with people, history and the actions legal right now."""
    workflow = Workflow.query.filter_by(id=workflow_id).first()
    if workflow is None:
        raise NotFoundError(resource="Workflow", resource_id=workflow_id)

    data = workflow.to_dict()
    data["created_by_user"] = _user_summary(workflow.created_by)
    data["assigned_to_user"] = _user_summary(workflow.assigned_to)
    data["available_actions"] = get_available_transitions(workflow.current_status)
    if include_history:
        data["approvals"] = workflow_audit.list_by_workflow(workflow_id)
    return data


def get_history(workflow_id):
    """Audit trail of an existing workflow, oldest first."""
    if Workflow.query.filter_by(id=workflow_id).count() == 0:
        raise NotFoundError(resource="Workflow", resource_id=workflow_id)
    return workflow_audit.list_by_workflow(workflow_id)

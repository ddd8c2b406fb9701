"""
Content Management Backend
Approval Workflow domain model.

Models:
    - Workflow: one proposed content change moving through review
    - Approval: immutable audit record of a reviewer action
    - WorkflowConfig: per-entity-type approval policy
    - WorkflowAssignment: declared reviewer/approver/observer (reserved)

Lifecycle: draft → pending_review → in_review → approved | rejected
                                             ↘ changes_requested → (submit again)

WORKFLOW_TRANSITIONS is the only place where transition legality is defined.
Services look actions up here; nothing else compares statuses ad hoc.
"""

import uuid
from datetime import datetime, timezone

from cms.models import db, utc_isoformat


def _uuid():
    """Generate a new UUID4 string."""
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ── Constants ────────────────────────────────────────────────────────────────

WORKFLOW_ENTITY_TYPES = frozenset({"content"})

WORKFLOW_OPERATIONS = frozenset({"create", "update", "delete"})

WORKFLOW_STATUSES = frozenset({
    "draft",
    "pending_review",
    "in_review",
    "changes_requested",
    "approved",
    "rejected",
})

TERMINAL_STATUSES = frozenset({"approved", "rejected"})

APPROVAL_ACTIONS = frozenset({"approve", "reject", "request_changes", "comment"})

# action → {"from": [...], "to": target}
#   "to": None means the action never changes status
#   "from": None means the action is legal from every status
WORKFLOW_TRANSITIONS = {
    "submit": {"from": ["draft", "changes_requested"], "to": "pending_review"},
    "auto_approve": {"from": ["draft", "changes_requested"], "to": "approved"},
    "claim": {"from": ["pending_review"], "to": "in_review"},
    "approve": {"from": ["in_review"], "to": "approved"},
    "reject": {"from": ["in_review"], "to": "rejected"},
    "request_changes": {"from": ["in_review"], "to": "changes_requested"},
    "comment": {"from": None, "to": None},
    "update_payload": {"from": ["draft", "changes_requested"], "to": None},
    "cancel": {"from": ["draft", "pending_review"], "to": None},
}

# Actions that require a non-blank comment
COMMENT_REQUIRED_ACTIONS = frozenset({"reject", "request_changes", "comment"})


class Workflow(db.Model):
    """
    One proposed change to a target entity, tracked from draft to decision.

    Business rules:
    - payload is an opaque JSON document; it is stored and returned, never inspected.
    - assigned_to_id is set iff current_status == "in_review".
    - submitted_at / started_at / completed_at are set once, never reset.
    - created_by_id is immutable.
    - Only draft / pending_review workflows can be deleted (cancel).
    """

    __tablename__ = "workflows"
    __table_args__ = (
        db.Index("idx_wf_entity", "entity_type", "entity_id"),
        db.Index("idx_wf_entity_type", "entity_type"),
        db.Index("idx_wf_status", "current_status"),
        db.Index("idx_wf_status_assignee", "current_status", "assigned_to_id"),
        db.Index("idx_wf_type_status", "entity_type", "current_status"),
        db.Index("idx_wf_created_by", "created_by_id"),
        db.Index("idx_wf_due_date", "due_date"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)

    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="content",
    )
    entity_id = db.Column(
        db.String(64), nullable=True,
        comment="Target entity PK; NULL for create operations",
    )
    operation = db.Column(
        db.String(10), nullable=False,
        comment="create | update | delete",
    )
    payload = db.Column(db.JSON, nullable=False, default=dict)

    current_status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | pending_review | in_review | changes_requested | approved | rejected",
    )
    previous_status = db.Column(
        db.String(20), nullable=True,
        comment="Status before the last transition (display only)",
    )

    assigned_to_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, comment="Reviewer holding the claim; only while in_review",
    )
    priority = db.Column(db.Integer, nullable=False, default=0)

    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    # Relationships
    created_by = db.relationship("User", foreign_keys=[created_by_id])
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_id])
    approvals = db.relationship(
        "Approval", back_populates="workflow", lazy="select",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by=lambda: [Approval.created_at, Approval.id],
    )

    def to_dict(self):
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "operation": self.operation,
            "payload": self.payload,
            "current_status": self.current_status,
            "previous_status": self.previous_status,
            "assigned_to": self.assigned_to_id,
            "priority": self.priority,
            "due_date": utc_isoformat(self.due_date),
            "submitted_at": utc_isoformat(self.submitted_at),
            "started_at": utc_isoformat(self.started_at),
            "completed_at": utc_isoformat(self.completed_at),
            "created_by": self.created_by_id,
            "created_at": utc_isoformat(self.created_at),
            "updated_at": utc_isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Workflow {self.id} {self.entity_type}/{self.operation} {self.current_status}>"


class Approval(db.Model):
    """
    Immutable audit record of one reviewer action against a workflow.

    Business rules:
    - Records are NEVER updated.  They disappear only with their workflow
      (cancel cascades); decided workflows can never be canceled.
    - For action=comment, from_status == to_status.
    - reviewer_name_snapshot is captured at write time so history stays
      readable even if the user row changes later.
    """

    __tablename__ = "approvals"
    __table_args__ = (
        db.Index("idx_approval_workflow", "workflow_id"),
        db.Index("idx_approval_reviewer", "reviewer_id"),
        db.Index("idx_approval_workflow_ts", "workflow_id", "created_at"),
        db.Index("idx_approval_action", "action"),
    )

    # Autoincrement: ties on created_at resolve to insert order
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    workflow_id = db.Column(
        db.String(36), db.ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
    )
    reviewer_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, comment="SET NULL if the user is deleted; name snapshot survives",
    )
    reviewer_name_snapshot = db.Column(db.String(255), nullable=True)

    action = db.Column(
        db.String(20), nullable=False,
        comment="approve | reject | request_changes | comment",
    )
    comment = db.Column(db.Text, nullable=True)
    from_status = db.Column(db.String(20), nullable=False)
    to_status = db.Column(db.String(20), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    workflow = db.relationship("Workflow", back_populates="approvals")
    reviewer = db.relationship("User", foreign_keys=[reviewer_id])

    def to_dict(self, include_reviewer=False) -> dict:
        d = {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "reviewer_id": self.reviewer_id,
            "action": self.action,
            "comment": self.comment,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "created_at": utc_isoformat(self.created_at),
        }
        if include_reviewer:
            if self.reviewer is not None:
                d["reviewer"] = self.reviewer.to_summary()
            else:
                d["reviewer"] = {
                    "id": self.reviewer_id,
                    "email": None,
                    "full_name": self.reviewer_name_snapshot,
                }
        return d

    def __repr__(self) -> str:
        return f"<Approval #{self.id} {self.workflow_id} {self.action}>"


class WorkflowConfig(db.Model):
    """
    Approval policy for one entity type.

    min_approvers is stored but not enforced: a single approving reviewer
    completes a workflow.  notify_* flags are read by the notification
    writer, not by the state machine.
    """

    __tablename__ = "workflow_configs"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    entity_type = db.Column(db.String(30), nullable=False, unique=True, index=True)
    requires_approval = db.Column(db.Boolean, nullable=False, default=True)
    auto_approve_for_roles = db.Column(
        db.JSON, nullable=True,
        comment='Role names that bypass review, e.g. ["admin", "chief_editor"]',
    )
    min_approvers = db.Column(db.Integer, nullable=False, default=1)
    notify_on_submit = db.Column(db.Boolean, nullable=False, default=True)
    notify_on_complete = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "requires_approval": self.requires_approval,
            "auto_approve_for_roles": list(self.auto_approve_for_roles or []),
            "min_approvers": self.min_approvers,
            "notify_on_submit": self.notify_on_submit,
            "notify_on_complete": self.notify_on_complete,
            "created_at": utc_isoformat(self.created_at),
            "updated_at": utc_isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<WorkflowConfig {self.entity_type} requires_approval={self.requires_approval}>"


class WorkflowAssignment(db.Model):
    """
    Declared reviewer / approver / observer for a workflow.

    Reserved for multi-reviewer routing; independent of the single
    assigned_to claim on Workflow.  Removed together with its workflow.
    """

    __tablename__ = "workflow_assignments"
    __table_args__ = (
        db.UniqueConstraint("workflow_id", "user_id", name="uq_wf_assignment_user"),
        db.Index("idx_wf_assignment_user_done", "user_id", "completed_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workflow_id = db.Column(
        db.String(36), db.ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    role = db.Column(db.String(50), nullable=False, comment="reviewer | approver | observer")
    assigned_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "user_id": self.user_id,
            "role": self.role,
            "assigned_by": self.assigned_by_id,
            "assigned_at": utc_isoformat(self.assigned_at),
            "completed_at": utc_isoformat(self.completed_at),
        }

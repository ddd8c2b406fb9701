"""workflow_engine

Creates the approval workflow tables and the identity/RBAC rows they read:
  - users, roles, user_roles  — minimal identity + role membership
  - workflows                 — one proposed content change under review
  - approvals                 — immutable reviewer-action ledger
  - workflow_configs          — per-entity-type approval policy
  - workflow_assignments      — reserved reviewer/approver/observer links
  - notifications             — in-app workflow notifications

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: c4e1a9d27b10
Revises:
Create Date: 2026-10-17 09:12:44.318204
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'c4e1a9d27b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Identity / RBAC ───────────────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if "roles" not in existing:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    if "user_roles" not in existing:
        op.create_table(
            "user_roles",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("role_id", sa.Integer(), nullable=False),
            sa.Column("granted_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "role_id", name="uq_user_role"),
        )

    # ── Workflows ─────────────────────────────────────────────────────────
    if "workflows" not in existing:
        op.create_table(
            "workflows",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("entity_type", sa.String(length=30), nullable=False, comment="content"),
            sa.Column("entity_id", sa.String(length=64), nullable=True,
                      comment="Target entity PK; NULL for create operations"),
            sa.Column("operation", sa.String(length=10), nullable=False,
                      comment="create | update | delete"),
            sa.Column("payload", sa.JSON(), nullable=False),
            sa.Column("current_status", sa.String(length=20), nullable=False,
                      server_default="draft",
                      comment="draft | pending_review | in_review | changes_requested | approved | rejected"),
            sa.Column("previous_status", sa.String(length=20), nullable=True),
            sa.Column("assigned_to_id", sa.Integer(), nullable=True,
                      comment="Reviewer holding the claim; only while in_review"),
            sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_by_id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["assigned_to_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_wf_entity", "workflows", ["entity_type", "entity_id"])
        op.create_index("idx_wf_entity_type", "workflows", ["entity_type"])
        op.create_index("idx_wf_status", "workflows", ["current_status"])
        op.create_index("idx_wf_status_assignee", "workflows", ["current_status", "assigned_to_id"])
        op.create_index("idx_wf_type_status", "workflows", ["entity_type", "current_status"])
        op.create_index("idx_wf_created_by", "workflows", ["created_by_id"])
        op.create_index("idx_wf_due_date", "workflows", ["due_date"])

    if "approvals" not in existing:
        op.create_table(
            "approvals",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("workflow_id", sa.String(length=36), nullable=False),
            sa.Column("reviewer_id", sa.Integer(), nullable=True),
            sa.Column("reviewer_name_snapshot", sa.String(length=255), nullable=True),
            sa.Column("action", sa.String(length=20), nullable=False,
                      comment="approve | reject | request_changes | comment"),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("from_status", sa.String(length=20), nullable=False),
            sa.Column("to_status", sa.String(length=20), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["workflow_id"], ["workflows.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["reviewer_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_approval_workflow", "approvals", ["workflow_id"])
        op.create_index("idx_approval_reviewer", "approvals", ["reviewer_id"])
        op.create_index("idx_approval_workflow_ts", "approvals", ["workflow_id", "created_at"])
        op.create_index("idx_approval_action", "approvals", ["action"])

    if "workflow_configs" not in existing:
        op.create_table(
            "workflow_configs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("requires_approval", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("auto_approve_for_roles", sa.JSON(), nullable=True,
                      comment='Role names that bypass review, e.g. ["admin", "chief_editor"]'),
            sa.Column("min_approvers", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("notify_on_submit", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("notify_on_complete", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_workflow_configs_entity_type", "workflow_configs",
                        ["entity_type"], unique=True)

    if "workflow_assignments" not in existing:
        op.create_table(
            "workflow_assignments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("workflow_id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("role", sa.String(length=50), nullable=False,
                      comment="reviewer | approver | observer"),
            sa.Column("assigned_by_id", sa.Integer(), nullable=True),
            sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["workflow_id"], ["workflows.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["assigned_by_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("workflow_id", "user_id", name="uq_wf_assignment_user"),
        )
        op.create_index("ix_workflow_assignments_workflow_id", "workflow_assignments", ["workflow_id"])
        op.create_index("ix_workflow_assignments_user_id", "workflow_assignments", ["user_id"])
        op.create_index("idx_wf_assignment_user_done", "workflow_assignments",
                        ["user_id", "completed_at"])

    # ── Notifications ─────────────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient", sa.String(length=150), nullable=False,
                      comment="User id (as string) or 'reviewers'"),
            sa.Column("event", sa.String(length=40), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("workflow_id", sa.String(length=36), nullable=True,
                      comment="No FK: notices outlive cancelled workflows"),
            sa.Column("is_read", sa.Boolean(), nullable=False),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_inbox", "notifications", ["recipient", "is_read"])
        op.create_index("ix_notifications_workflow_id", "notifications", ["workflow_id"])


def downgrade():
    op.drop_table("notifications")
    op.drop_table("workflow_assignments")
    op.drop_table("workflow_configs")
    op.drop_table("approvals")
    op.drop_table("workflows")
    op.drop_table("user_roles")
    op.drop_table("roles")
    op.drop_table("users")

"""
Content Management Backend
Workflow notice model.

A Notification is one in-app notice produced by a workflow event.  Notices
addressed to the reviewer pool use the ``"reviewers"`` recipient and are
visible to every caller's inbox; direct notices use the user id as string.
"""

from datetime import datetime, timezone

from cms.models import db, utc_isoformat

REVIEWERS_RECIPIENT = "reviewers"

# event → default severity
NOTIFICATION_EVENTS = {
    "review_requested": "info",
    "workflow_approved": "success",
    "workflow_rejected": "warning",
}


class Notification(db.Model):
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_inbox", "recipient", "is_read"),
    )

    id = db.Column(db.Integer, primary_key=True)
    recipient = db.Column(db.String(150), nullable=False,
                          comment="User id (as string) or 'reviewers'")
    event = db.Column(db.String(40), nullable=False)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    severity = db.Column(db.String(20), default="info")

    # No FK: notices outlive cancelled workflows
    workflow_id = db.Column(db.String(36), nullable=True, index=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def is_broadcast(self):
        return self.recipient == REVIEWERS_RECIPIENT

    def mark_read(self, when=None):
        self.is_read = True
        self.read_at = when or datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient": self.recipient,
            "event": self.event,
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "workflow_id": self.workflow_id,
            "is_read": self.is_read,
            "read_at": utc_isoformat(self.read_at),
            "created_at": utc_isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<Notification {self.id} {self.event} → {self.recipient}>"

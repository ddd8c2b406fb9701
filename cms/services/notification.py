"""
Content Management Backend
Notification Service.

Writes in-app notices for workflow events and serves the caller's inbox.
Workflow notices are queued on the current session without committing, so
they land or roll back together with the transition that caused them.
"""

from datetime import datetime, timezone

from cms.models import db
from cms.models.notification import NOTIFICATION_EVENTS, REVIEWERS_RECIPIENT, Notification


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def queue(workflow, event, *, recipient, title, message=""):
        """Add a notice for ``workflow`` to the current session; no commit."""
        if event not in NOTIFICATION_EVENTS:
            raise ValueError(f"Unknown notification event: {event}")
        notif = Notification(
            recipient=recipient,
            event=event,
            title=title,
            message=message,
            severity=NOTIFICATION_EVENTS[event],
            workflow_id=workflow.id,
        )
        db.session.add(notif)
        return notif

    # ── Workflow events ───────────────────────────────────────────────────

    @staticmethod
    def notify_review_requested(workflow):
        """Broadcast to reviewers that a workflow is waiting in the queue."""
        return NotificationService.queue(
            workflow, "review_requested",
            recipient=REVIEWERS_RECIPIENT,
            title=f"Review requested: {workflow.entity_type}/{workflow.operation}",
            message=f"Workflow {workflow.id} was submitted and is waiting for a reviewer.",
        )

    @staticmethod
    def notify_decision(workflow):
        """Tell the creator that their workflow was approved or rejected."""
        status = workflow.current_status
        return NotificationService.queue(
            workflow, f"workflow_{status}",
            recipient=str(workflow.created_by_id),
            title=f"Workflow {status}: {workflow.entity_type}/{workflow.operation}",
            message=f"Workflow {workflow.id} is now {status}.",
        )

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def _inbox_query(user_id):
        return Notification.query.filter(
            Notification.recipient.in_([str(user_id), REVIEWERS_RECIPIENT])
        )

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """
        Retrieve a user's notifications (direct and reviewer broadcasts), newest first.
        """
        q = NotificationService._inbox_query(user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(user_id):
        return NotificationService._inbox_query(user_id).filter_by(is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark one of the user's notifications as read; None if not visible to them."""
        notif = NotificationService._inbox_query(user_id).filter(
            Notification.id == notification_id
        ).first()
        if notif and not notif.is_read:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark all of a user's unread notifications as read."""
        now = datetime.now(timezone.utc)
        count = NotificationService._inbox_query(user_id).filter_by(is_read=False).update(
            {"is_read": True, "read_at": now}, synchronize_session=False,
        )
        db.session.commit()
        return count

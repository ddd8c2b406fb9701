"""
Notification Blueprint — the caller's in-app inbox.

Routes:
  GET   /notifications                  – list (unread_only, limit, offset)
  GET   /notifications/unread-count     – badge count
  PATCH /notifications/<nid>/read       – mark one as read
  POST  /notifications/mark-all-read    – mark all as read
"""

from flask import Blueprint, g, jsonify, request

from cms.blueprints import register_error_handlers
from cms.middleware.permission_required import require_auth
from cms.services.notification import NotificationService
from cms.utils.errors import E, api_error

notification_bp = Blueprint("notification", __name__, url_prefix="/api/v1")
register_error_handlers(notification_bp)


@notification_bp.route("/notifications", methods=["GET"])
@require_auth
def list_notifications():
    unread_only = request.args.get("unread_only", "false").lower() == "true"
    try:
        limit = min(max(int(request.args.get("limit", 50)), 1), 200)
        offset = max(int(request.args.get("offset", 0)), 0)
    except ValueError:
        return api_error(E.VALIDATION_INVALID, "limit and offset must be integers")

    items, total = NotificationService.list_for_user(
        g.jwt_user_id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(g.jwt_user_id),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_auth
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(g.jwt_user_id)})


@notification_bp.route("/notifications/<int:nid>/read", methods=["PATCH"])
@require_auth
def mark_read(nid):
    notif = NotificationService.mark_read(nid, g.jwt_user_id)
    if not notif:
        return api_error(E.NOT_FOUND, "Notification not found")
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/mark-all-read", methods=["POST"])
@require_auth
def mark_all_read():
    count = NotificationService.mark_all_read(g.jwt_user_id)
    return jsonify({"marked_read": count})

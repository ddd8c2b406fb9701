"""
Approval Workflow Blueprint.

Routes:
  POST   /workflows                          – create draft (201)
  GET    /workflows                          – list (page, limit, entity_type, status,
                                               assigned_to, created_by, mine)
  GET    /workflows/<wid>                    – detail with history + available actions
  GET    /workflows/<wid>/history            – audit trail, oldest first
  DELETE /workflows/<wid>                    – cancel (204)
  POST   /workflows/<wid>/submit             – submit for review (may auto-approve)
  POST   /workflows/<wid>/claim              – take review ownership
  POST   /workflows/<wid>/approve            – approve (comment optional)
  POST   /workflows/<wid>/reject             – reject (comment required)
  POST   /workflows/<wid>/request-changes    – send back to creator (comment required)
  POST   /workflows/<wid>/comment            – add comment (201)
  PATCH  /workflows/<wid>/update-payload     – replace payload

All routes require a JWT identity.  Malformed bodies and query params are
rejected here with 400; business-rule failures come back from the services
as ValidationError (422).
"""

import logging

from flask import Blueprint, g, jsonify, request

from cms.blueprints import page_args, paged_response, register_error_handlers
from cms.middleware.permission_required import require_auth
from cms.models.workflow import WORKFLOW_STATUSES
from cms.services import workflow_directory, workflow_service
from cms.utils.errors import E, api_error

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1")
register_error_handlers(workflow_bp)


# ── helpers ──────────────────────────────────────────────────────────────

def _json_body(required=True):
    """Return the JSON object body, or None when it is missing / not an object."""
    data = request.get_json(silent=True)
    if data is None and not required:
        return {}
    return data if isinstance(data, dict) else None


def _comment_arg(data):
    """Return (comment, error_response)."""
    comment = data.get("comment")
    if comment is not None and not isinstance(comment, str):
        return None, api_error(E.VALIDATION_INVALID, "comment must be a string")
    return comment, None


def _int_arg(name):
    """Return (value, error_response) for an optional integer query param."""
    raw = request.args.get(name)
    if raw in (None, ""):
        return None, None
    try:
        return int(raw), None
    except ValueError:
        return None, api_error(E.VALIDATION_INVALID, f"{name} must be an integer")


# ═════════════════════════════════════════════════════════════════════════════
# CREATE / READ
# ═════════════════════════════════════════════════════════════════════════════

@workflow_bp.route("/workflows", methods=["POST"])
@require_auth
def create_workflow():
    """Create a draft workflow.

    Body: { entity_type, operation, payload, entity_id?, priority?, due_date? }
    """
    data = _json_body()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "Request body must be a JSON object")
    return jsonify(workflow_service.create_workflow(data, g.jwt_user_id)), 201


@workflow_bp.route("/workflows", methods=["GET"])
@require_auth
def list_workflows():
    page, limit = page_args()

    status = request.args.get("status") or None
    if status and status not in WORKFLOW_STATUSES:
        return api_error(
            E.VALIDATION_INVALID,
            f"status must be one of: {', '.join(sorted(WORKFLOW_STATUSES))}",
        )
    assigned_to, err = _int_arg("assigned_to")
    if err:
        return err
    created_by, err = _int_arg("created_by")
    if err:
        return err
    mine = request.args.get("mine", "").lower() in ("1", "true", "yes")

    items, total = workflow_directory.list_workflows(
        page, limit,
        entity_type=request.args.get("entity_type") or None,
        status=status,
        assigned_to=assigned_to,
        created_by=created_by,
        mine=mine,
        acting_user_id=g.jwt_user_id,
    )
    return paged_response(items, total, page, limit)


@workflow_bp.route("/workflows/<wid>", methods=["GET"])
@require_auth
def get_workflow(wid):
    return jsonify(workflow_directory.get_workflow(wid))


@workflow_bp.route("/workflows/<wid>/history", methods=["GET"])
@require_auth
def get_history(wid):
    items = workflow_directory.get_history(wid)
    return jsonify({"items": items, "total": len(items)})


# ═════════════════════════════════════════════════════════════════════════════
# CREATOR ACTIONS
# ═════════════════════════════════════════════════════════════════════════════

@workflow_bp.route("/workflows/<wid>/submit", methods=["POST"])
@require_auth
def submit_workflow(wid):
    return jsonify(workflow_service.submit_workflow(wid, g.jwt_user_id))


@workflow_bp.route("/workflows/<wid>/update-payload", methods=["PATCH"])
@require_auth
def update_payload(wid):
    """Replace the payload.  Body: { payload: {...} }"""
    data = _json_body()
    if data is None or "payload" not in data:
        return api_error(E.VALIDATION_REQUIRED, "payload is required")
    return jsonify(workflow_service.update_payload(wid, g.jwt_user_id, data["payload"]))


@workflow_bp.route("/workflows/<wid>", methods=["DELETE"])
@require_auth
def cancel_workflow(wid):
    workflow_service.cancel_workflow(wid, g.jwt_user_id)
    return "", 204


# ═════════════════════════════════════════════════════════════════════════════
# REVIEWER ACTIONS
# ═════════════════════════════════════════════════════════════════════════════

@workflow_bp.route("/workflows/<wid>/claim", methods=["POST"])
@require_auth
def claim_workflow(wid):
    return jsonify(workflow_service.claim_workflow(wid, g.jwt_user_id))


@workflow_bp.route("/workflows/<wid>/approve", methods=["POST"])
@require_auth
def approve_workflow(wid):
    """Approve.  Body (optional): { comment }"""
    data = _json_body(required=False)
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    comment, err = _comment_arg(data)
    if err:
        return err
    result = workflow_service.approve_workflow(wid, g.jwt_user_id, comment)
    return jsonify({**result, "message": "Workflow approved"})


@workflow_bp.route("/workflows/<wid>/reject", methods=["POST"])
@require_auth
def reject_workflow(wid):
    """Reject.  Body: { comment }"""
    data = _json_body(required=False)
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    comment, err = _comment_arg(data)
    if err:
        return err
    return jsonify(workflow_service.reject_workflow(wid, g.jwt_user_id, comment))


@workflow_bp.route("/workflows/<wid>/request-changes", methods=["POST"])
@require_auth
def request_changes(wid):
    """Send back for changes.  Body: { comment }"""
    data = _json_body(required=False)
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    comment, err = _comment_arg(data)
    if err:
        return err
    return jsonify(workflow_service.request_changes(wid, g.jwt_user_id, comment))


@workflow_bp.route("/workflows/<wid>/comment", methods=["POST"])
@require_auth
def add_comment(wid):
    """Comment without changing status.  Body: { comment }"""
    data = _json_body(required=False)
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    comment, err = _comment_arg(data)
    if err:
        return err
    return jsonify(workflow_service.add_comment(wid, g.jwt_user_id, comment)), 201

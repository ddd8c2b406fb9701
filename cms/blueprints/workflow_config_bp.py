"""
Workflow Config Blueprint — per-entity-type approval policy.

Routes:
  GET    /workflow-configs                  – list stored configs
  GET    /workflow-configs/<entity_type>    – one config (404 when none stored)
  PATCH  /workflow-configs/<entity_type>    – create or partially update (admin)
"""

from flask import Blueprint, jsonify, request

from cms.blueprints import register_error_handlers
from cms.middleware.permission_required import require_any_role, require_auth
from cms.services import workflow_policy
from cms.utils.errors import E, api_error

workflow_config_bp = Blueprint("workflow_config", __name__, url_prefix="/api/v1")
register_error_handlers(workflow_config_bp)


@workflow_config_bp.route("/workflow-configs", methods=["GET"])
@require_auth
def list_configs():
    items = workflow_policy.list_configs()
    return jsonify({"items": items, "total": len(items)})


@workflow_config_bp.route("/workflow-configs/<entity_type>", methods=["GET"])
@require_auth
def get_config(entity_type):
    return jsonify(workflow_policy.get_config(entity_type))


@workflow_config_bp.route("/workflow-configs/<entity_type>", methods=["PATCH"])
@require_any_role("admin")
def upsert_config(entity_type):
    """Body: any of { requires_approval, auto_approve_for_roles, min_approvers,
    notify_on_submit, notify_on_complete }"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_REQUIRED, "Request body must be a JSON object")
    return jsonify(workflow_policy.upsert_config(entity_type, data))

"""
Content Management Backend
Blueprint registry.
"""

import logging

from flask import current_app, g, jsonify, request
from werkzeug.exceptions import HTTPException

from cms.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from cms.utils.errors import E, api_error
from cms.utils.helpers import clamp_paging

logger = logging.getLogger(__name__)


def page_args():
    """Read page/limit from the query string, clamped to the configured maximum.

    Query params:
        page  — 1-indexed page number (default 1)
        limit — page size (default WORKFLOW_DEFAULT_PAGE_SIZE, capped at
                WORKFLOW_MAX_PAGE_SIZE)

    Returns:
        (page, limit)
    """
    return clamp_paging(
        request.args.get("page", 1),
        request.args.get("limit", current_app.config["WORKFLOW_DEFAULT_PAGE_SIZE"]),
        default_limit=current_app.config["WORKFLOW_DEFAULT_PAGE_SIZE"],
        max_limit=current_app.config["WORKFLOW_MAX_PAGE_SIZE"],
    )


def paged_response(items, total, page, limit):
    return jsonify({
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit if total else 0,
    })


def register_error_handlers(bp):
    """Map the service exception taxonomy to HTTP responses on ``bp``."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(AuthorizationError)
    def _handle_forbidden(error: AuthorizationError):
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(StateConflictError)
    def _handle_state_conflict(error: StateConflictError):
        return api_error(
            E.CONFLICT_STATE, str(error),
            details={"current_status": error.current_status, "action": error.action},
        )

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception(
            "Unexpected error in %s endpoint=%s user=%s",
            bp.name, request.endpoint, getattr(g, "jwt_user_id", None),
        )
        return api_error(E.INTERNAL, "Internal server error")

"""
Route decorators — JWT-aware authentication and role checks.

Usage:
    @bp.route("/workflows", methods=["POST"])
    @require_auth
    def create_workflow():
        ...

    @bp.route("/workflow-configs/<entity_type>", methods=["PATCH"])
    @require_any_role("admin")
    def upsert_config(entity_type):
        ...

Role membership is read from the database (user_roles), not from the token,
so a role granted or revoked after login takes effect immediately.
"""

import functools
import logging

from flask import g

from cms.services.permission_service import get_user_role_names
from cms.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_auth(f):
    """Decorator: reject the request with 401 when no JWT identity is present."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "jwt_user_id", None) is None:
            return api_error(E.UNAUTHENTICATED, "Authentication required")
        return f(*args, **kwargs)

    return decorated


def require_any_role(*role_names: str):
    """
    Decorator: require the JWT user to hold at least ONE of the listed roles.
    """
    def decorator(f):
        @functools.wraps(f)
        @require_auth
        def decorated(*args, **kwargs):
            user_id = g.jwt_user_id
            held = set(get_user_role_names(user_id))
            if not held.intersection(role_names):
                logger.warning(
                    "User %s denied: needs one of %s on %s",
                    user_id, sorted(role_names), f.__name__,
                )
                return api_error(
                    E.FORBIDDEN, "Permission denied",
                    details={"required_any": sorted(role_names)},
                )
            return f(*args, **kwargs)
        return decorated
    return decorator

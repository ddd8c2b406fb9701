"""
Bearer-token identity for /api/v1 requests.

    Authorization: Bearer <token>  →  g.jwt_user_id

Role claims in the token are ignored; role checks read user_roles.

The engine never authenticates users itself.  A missing, expired or
malformed token leaves the identity empty and the route decorators in
``permission_required`` answer 401.
"""

import logging

import jwt
from flask import g, request

from cms.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/"
PUBLIC_PREFIXES = ("/api/v1/health",)


def _bearer_token():
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def init_jwt_middleware(app):
    """Resolve the caller identity before every API request."""

    @app.before_request
    def _resolve_identity():
        g.jwt_user_id = None

        if not request.path.startswith(API_PREFIX) or request.path.startswith(PUBLIC_PREFIXES):
            return

        token = _bearer_token()
        if token is None:
            return
        try:
            claims = decode_access_token(token)
        except jwt.ExpiredSignatureError:
            logger.info("Expired access token on %s", request.path)
            return
        except jwt.InvalidTokenError as exc:
            logger.info("Rejected access token on %s: %s", request.path, exc)
            return

        g.jwt_user_id = claims["user_id"]

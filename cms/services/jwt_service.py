"""
Access token verification for the workflow API.

Tokens are minted by the authentication collaborator.  This module verifies
them (HS256, JWT_SECRET_KEY) and exposes ``generate_access_token`` for
trusted in-process callers such as the test suite and CLI tooling.

Claims:
    sub    user id as string
    roles  role names at issue time (informational; workflow policy
           re-reads roles from the database)
    type   always "access"
    iss    JWT_ISSUER when configured
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

ALGORITHM = "HS256"
TOKEN_TYPE = "access"


def _signing_params():
    cfg = current_app.config
    return {
        "key": cfg.get("JWT_SECRET_KEY") or cfg["SECRET_KEY"],
        "issuer": cfg.get("JWT_ISSUER"),
        "ttl": int(cfg.get("JWT_ACCESS_EXPIRES", 900)),
        "leeway": int(cfg.get("JWT_LEEWAY_SECONDS", 0)),
    }


def generate_access_token(user_id: int, roles: list[str] | None = None) -> str:
    params = _signing_params()
    issued = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "roles": sorted(set(roles or [])),
        "type": TOKEN_TYPE,
        "iat": issued,
        "exp": issued + timedelta(seconds=params["ttl"]),
        "jti": uuid.uuid4().hex,
    }
    if params["issuer"]:
        claims["iss"] = params["issuer"]
    return jwt.encode(claims, params["key"], algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature, expiry, issuer and token type.

    Raises jwt.InvalidTokenError (or a subclass) on any failure; a ``sub``
    that is not an integer id is rejected the same way.
    """
    params = _signing_params()
    options = {"require": ["sub", "exp"]}
    claims = jwt.decode(
        token,
        params["key"],
        algorithms=[ALGORITHM],
        issuer=params["issuer"],
        leeway=params["leeway"],
        options=options,
    )
    if claims.get("type") != TOKEN_TYPE:
        raise jwt.InvalidTokenError("Not an access token")
    try:
        claims["user_id"] = int(claims["sub"])
    except (TypeError, ValueError) as exc:
        raise jwt.InvalidTokenError("Subject is not a user id") from exc
    return claims

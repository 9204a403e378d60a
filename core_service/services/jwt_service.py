"""
JWT Service — bearer tokens of the shared identity provider.

The identity provider issues the tokens; this service verifies them and
turns the claims into an ActingUser. ``generate_access_token`` mints the
same shape for internal tooling and tests.

Claims read:
    sub                  user id (owner id stored on use cases)
    <JWT_ROLES_CLAIM>    list of role names, default claim "roles"
    type                 must be "access"
    exp                  checked with JWT_LEEWAY_SECONDS of clock skew
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from core_service.services.permission import ActingUser

ALGORITHM = "HS256"
TOKEN_TYPE = "access"


def _signing_key():
    cfg = current_app.config
    return cfg.get("JWT_SECRET_KEY") or cfg["SECRET_KEY"]


def _roles_claim():
    return current_app.config.get("JWT_ROLES_CLAIM", "roles")


def generate_access_token(user_id: str, roles: list[str]) -> str:
    """Mint an access token for ``user_id`` carrying ``roles``."""
    issued = datetime.now(timezone.utc)
    lifetime = timedelta(seconds=current_app.config.get("JWT_ACCESS_EXPIRES", 900))
    claims = {
        "sub": str(user_id),
        _roles_claim(): list(roles),
        "type": TOKEN_TYPE,
        "iat": issued,
        "exp": issued + lifetime,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, _signing_key(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature, expiry and token type; return the claims.

    Raises:
        jwt.ExpiredSignatureError: token expired (beyond the leeway)
        jwt.InvalidTokenError: bad signature, malformed, or not an access token
    """
    claims = jwt.decode(
        token,
        _signing_key(),
        algorithms=[ALGORITHM],
        leeway=current_app.config.get("JWT_LEEWAY_SECONDS", 0),
    )
    if claims.get("type") != TOKEN_TYPE:
        raise jwt.InvalidTokenError(f"Expected a token of type '{TOKEN_TYPE}'")
    if not claims.get("sub"):
        raise jwt.InvalidTokenError("Token has no subject")
    return claims


def acting_user_from_token(token: str) -> ActingUser:
    """Decode ``token`` into the caller identity used by the authorization checks."""
    claims = decode_access_token(token)
    roles = claims.get(_roles_claim()) or []
    if isinstance(roles, str):
        roles = [roles]
    return ActingUser(id=str(claims["sub"]), roles=frozenset(roles))

"""
Use Case Workflow Core Service
Request identity helpers.

The JWT middleware (middleware/jwt_auth.py) resolves the caller once per
request into ``g.acting_user`` / ``g.is_internal``. Views use the helpers
here to read that context and to forward the caller's credentials to
collaborating services.

Usage:
    @use_case_bp.route(...)
    @require_auth
    def view(...):
        actor = current_actor()
"""

import functools
import logging

from flask import g, request

from core_service.utils.errors import E, api_error

logger = logging.getLogger(__name__)

INTERNAL_ACTOR_ID = "internal"


def current_actor():
    """Return the ActingUser of this request, or None."""
    return getattr(g, "acting_user", None)


def is_internal_request() -> bool:
    return bool(getattr(g, "is_internal", False))


def actor_id() -> str:
    """Id recorded as created_by: the user, else the internal caller's hint."""
    actor = current_actor()
    if actor is not None:
        return actor.id
    return request.headers.get("X-User-Id") or INTERNAL_ACTOR_ID


def outbound_auth_headers() -> dict:
    """Credentials to forward to the file service / user directory."""
    headers = {}
    auth_header = request.headers.get("Authorization")
    if auth_header:
        headers["Authorization"] = auth_header
    internal_token = request.headers.get("X-Internal-Token")
    if internal_token and is_internal_request():
        headers["X-Internal-Token"] = internal_token
    return headers


def require_auth(f):
    """
    Decorator: require a verified user token or a trusted internal caller.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_actor() is None and not is_internal_request():
            logger.info("Unauthenticated request to %s", request.path)
            return api_error(E.UNAUTHORIZED, "Authentication required. Provide a Bearer token.")
        return f(*args, **kwargs)

    return decorated

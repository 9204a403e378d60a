"""
Caller resolution — runs before every /api/v1 view.

Per-request context it leaves behind:
  g.acting_user   ActingUser(id, roles) from `Authorization: Bearer <jwt>`, else None
  g.is_internal   True when `X-Internal-Token` equals INTERNAL_API_TOKEN

A bad or expired credential only leaves the context empty; rejecting the
request is up to `core_service.auth.require_auth`, so public routes such as
the health check keep working.
"""

import hmac
import logging

import jwt as pyjwt
from flask import current_app, g, request

from core_service.services.jwt_service import acting_user_from_token

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/"
PUBLIC_PATHS = frozenset({"/api/v1/health"})


def _bearer_token():
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _internal_token_matches(supplied: str) -> bool:
    expected = current_app.config.get("INTERNAL_API_TOKEN") or ""
    return bool(expected) and hmac.compare_digest(expected.encode(), supplied.encode())


def init_jwt_middleware(app):
    """Register caller resolution as a before_request hook."""

    @app.before_request
    def _resolve_caller():
        g.acting_user = None
        g.is_internal = False

        if not request.path.startswith(API_PREFIX) or request.path in PUBLIC_PATHS:
            return

        supplied = request.headers.get("X-Internal-Token")
        if supplied:
            g.is_internal = _internal_token_matches(supplied)
            if not g.is_internal:
                logger.warning("Rejected internal token from %s", request.remote_addr)

        token = _bearer_token()
        if token is None:
            return
        try:
            g.acting_user = acting_user_from_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token on %s", request.path)
        except pyjwt.InvalidTokenError as exc:
            logger.warning("Invalid access token on %s: %s", request.path, exc)

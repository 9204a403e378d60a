"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in core_service/__init__.py with no default limits; this module
applies the limits per route category, keyed by the authenticated user
where there is one and by remote address otherwise.

Usage:
    from core_service.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"

_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def rate_limit_key():
    """Per-user bucket for authenticated callers, per-IP otherwise."""
    actor = getattr(g, "acting_user", None)
    if actor is not None:
        return f"user:{actor.id}"
    return request.remote_addr or "unknown"


def _is_read():
    return request.method not in _WRITE_METHODS


def _is_write():
    return request.method in _WRITE_METHODS


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Write requests (POST/PUT/DELETE): 60/minute per user
        - Read requests (GET):              200/minute per user

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in ("use_cases", "plants"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=rate_limit_key, exempt_when=_is_read)(bp)
            limiter.limit(READ_LIMIT, key_func=rate_limit_key, exempt_when=_is_write)(bp)

    app.logger.info("Rate limiter configured — write: %s, read: %s", WRITE_LIMIT, READ_LIMIT)

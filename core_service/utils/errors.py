"""JSON error bodies shared by every blueprint.

Body shape::

    {"error": "<human readable>", "code": "ERR_...", "details": {...}}

``details`` is omitted when empty. Codes are stable and meant for clients
to branch on; the message is not.

Usage::

    from core_service.utils.errors import api_error, E

    return api_error(E.FORBIDDEN, "Attachment locked", details={"reason": "attachment-locked"})
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes, grouped by the HTTP status they default to."""

    UNAUTHORIZED = "ERR_UNAUTHORIZED"                # 401
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"    # 400
    FORBIDDEN = "ERR_FORBIDDEN"                      # 403
    NOT_FOUND = "ERR_NOT_FOUND"                      # 404
    WORKFLOW_VIOLATION = "ERR_WORKFLOW_VIOLATION"    # 409
    CONFLICT_VERSION = "ERR_CONFLICT_VERSION"        # 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"    # 409
    DATABASE = "ERR_DATABASE"                        # 503
    INTERNAL = "ERR_INTERNAL"                        # 500


HTTP_STATUS: dict[str, int] = {
    E.UNAUTHORIZED: 401,
    E.VALIDATION_INVALID: 400,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.WORKFLOW_VIOLATION: 409,
    E.CONFLICT_VERSION: 409,
    E.CONFLICT_DUPLICATE: 409,
    E.DATABASE: 503,
    E.INTERNAL: 500,
}


def error_body(code: str, message: str, details: dict | None = None) -> dict:
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return body


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Return ``(response, status)`` for a Flask view or error handler.

    ``status`` overrides the code's default from HTTP_STATUS (400 if unknown).
    """
    return jsonify(error_body(code, message, details)), status or HTTP_STATUS.get(code, 400)

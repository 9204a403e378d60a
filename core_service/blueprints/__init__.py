"""
Use Case Workflow Core Service
Blueprint registry and shared view helpers.
"""

import logging

from flask import request
from werkzeug.exceptions import HTTPException

from core_service.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
    WorkflowViolationError,
)
from core_service.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def paging_args(default_limit=10, max_limit=100):
    """Read page/limit query params for list endpoints.

    Query params:
        page  — 1-based page number (default 1)
        limit — page size (default ``default_limit``, capped at ``max_limit``)

    Malformed values fall back to the defaults.

    Returns:
        (page, limit)
    """
    try:
        page = max(int(request.args.get("page", 1)), 1)
    except (ValueError, TypeError):
        page = 1
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 1), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    return page, limit


def register_error_handlers(bp):
    """Map the domain exception families onto JSON error responses for ``bp``."""

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(PermissionDeniedError)
    def _handle_denied(error: PermissionDeniedError):
        logger.info("Denied %s %s: %s", request.method, request.path, error.reason)
        return api_error(E.FORBIDDEN, str(error), details={"reason": error.reason})

    @bp.errorhandler(WorkflowViolationError)
    def _handle_workflow(error: WorkflowViolationError):
        return api_error(E.WORKFLOW_VIOLATION, str(error), details=error.to_details())

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        code = E.CONFLICT_VERSION if error.field == "version" else E.CONFLICT_DUPLICATE
        return api_error(code, str(error), details={"field": error.field})

    @bp.errorhandler(StorageError)
    def _handle_storage(error: StorageError):
        return api_error(E.DATABASE, "Database temporarily unavailable")

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            status = error.code or 500
            code = E.INTERNAL if status >= 500 else E.VALIDATION_INVALID
            return api_error(code, error.description, status=status)
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

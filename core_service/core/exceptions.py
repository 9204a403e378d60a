"""
Service-wide exception hierarchy.

Services raise these types; the use case and plant blueprints register one
handler per type and get consistent HTTP status codes everywhere.

Usage:
    from core_service.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="UseCase", resource_id=use_case_id)
    raise ValidationError("Unknown step 'foo'", details={"step": "foo"})

Families:
    ValidationError          malformed input, no state change          → 400
    NotFoundError            use case / plant / user missing           → 404
    PermissionDeniedError    guard denial with a machine reason        → 403
    WorkflowViolationError   step ordering invariant would break       → 409
    ConflictError            concurrent write on the same use case     → 409
    StorageError             transient database failure                → 503
    NotificationError,
    FileLockError            side-effect failures, logged + reported, never
                             the primary operation's failure
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "UseCase", "Plant").
        resource_id: The key that was looked up. Included in logs and message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is malformed: unknown step/status/attachment strings,
    missing required fields, non-object step forms.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PermissionDeniedError(Exception):
    """Raised at the HTTP boundary when an authorization check denies.

    ``reason`` is one of the machine-readable denial reasons defined in
    ``core_service.services.permission`` (e.g. "not-owner", "attachment-locked").
    """

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or f"Permission denied: {reason}")


class WorkflowViolationError(Exception):
    """Base for step-ordering failures. Never bypassable by a raw write."""

    code = "workflow-violation"

    def __init__(self, message: str, step: str | None = None) -> None:
        self.step = step
        super().__init__(message)

    def to_details(self) -> dict:
        details = {"violation": self.code}
        if self.step is not None:
            details["step"] = self.step
        return details


class NotSubmittedError(WorkflowViolationError):
    code = "not-submitted"

    def __init__(self, step: str) -> None:
        super().__init__(f"Step '{step}' was not submitted yet", step=step)


class AlreadyCompletedError(WorkflowViolationError):
    code = "already-completed"

    def __init__(self, step: str) -> None:
        super().__init__(f"Step '{step}' has already been completed", step=step)


class OutOfOrderError(WorkflowViolationError):
    code = "out-of-order"

    def __init__(self, step: str, expected: str) -> None:
        self.expected = expected
        super().__init__(
            f"Step '{expected}' needs to be completed before '{step}'", step=step,
        )

    def to_details(self) -> dict:
        details = super().to_details()
        details["expected"] = self.expected
        return details


class ConflictError(Exception):
    """Raised when a write would overwrite a concurrent change.

    Maps to HTTP 409. The caller may reload and retry.

    Args:
        resource: Model name.
        field: The field that carries the conflict (usually "version").
        value: The value the caller expected.
        message: Optional override of the generated message.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} was modified concurrently ({field}={value!r})"
        super().__init__(msg)


class StorageError(Exception):
    """Raised when the database rejects or fails a write for a transient reason."""


class NotificationError(Exception):
    """Raised by the handoff email path. Logged only by the workflow engine."""


class FileLockError(Exception):
    """Raised when the file service refuses or fails to lock a file.

    Args:
        ref_id: External file reference that could not be locked.
        message: Underlying failure description.
    """

    def __init__(self, ref_id: str, message: str) -> None:
        self.ref_id = ref_id
        super().__init__(f"Locking file {ref_id} failed: {message}")

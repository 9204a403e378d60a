"""
Use Case Workflow Core Service
Step catalog — the fixed workflow every use case runs through.

    initial-request → initial-feasibility-check → detailed-request → offer → order
       requestor            review team              requestor     review    requestor

Ownership alternates by ordinal parity, starting with the requesting party.
Each attachment type belongs to exactly one step and is locked once that
step is completed.

Step, Status and AttachmentType travel over the wire as lower-kebab-case
strings. The *_from_string helpers use explicit lookup tables and reject
unknown strings instead of defaulting.
"""

import enum
from types import MappingProxyType

from core_service.core.exceptions import ValidationError


# ── Roles ────────────────────────────────────────────────────────────────────

ROLE_REQUESTOR = "requestor"
ROLE_REVIEW_TEAM = "review-team"

ROLES = frozenset({ROLE_REQUESTOR, ROLE_REVIEW_TEAM})


# ── Closed value sets ────────────────────────────────────────────────────────


class Step(enum.Enum):
    INITIAL_REQUEST = "initial-request"
    INITIAL_FEASIBILITY_CHECK = "initial-feasibility-check"
    DETAILED_REQUEST = "detailed-request"
    OFFER = "offer"
    ORDER = "order"


class Status(enum.Enum):
    LIVE = "live"                          # display-only, never written by the engine
    IN_EVALUATION = "in-evaluation"
    UNDER_VALIDATION = "under-validation"
    IN_IMPLEMENTATION = "in-implementation"
    DECLINED = "declined"


class AttachmentType(enum.Enum):
    INITIAL_REQUEST_FILE = "initial-request-file"
    FEASIBILITY_CHECK_FILE = "feasibility-check-file"
    DETAILED_REQUEST_FILE = "detailed-request-file"
    OFFER_FILE = "offer-file"
    ORDER_FILE = "order-file"


# ── Catalog tables (built once at import) ────────────────────────────────────

STEPS_ORDER = (
    Step.INITIAL_REQUEST,
    Step.INITIAL_FEASIBILITY_CHECK,
    Step.DETAILED_REQUEST,
    Step.OFFER,
    Step.ORDER,
)

_STEP_INDEX = MappingProxyType({step: idx for idx, step in enumerate(STEPS_ORDER)})

STEP_ROLES = MappingProxyType({
    step: ROLE_REQUESTOR if idx % 2 == 0 else ROLE_REVIEW_TEAM
    for idx, step in enumerate(STEPS_ORDER)
})

ATTACHMENT_STEPS = MappingProxyType({
    AttachmentType.INITIAL_REQUEST_FILE: Step.INITIAL_REQUEST,
    AttachmentType.FEASIBILITY_CHECK_FILE: Step.INITIAL_FEASIBILITY_CHECK,
    AttachmentType.DETAILED_REQUEST_FILE: Step.DETAILED_REQUEST,
    AttachmentType.OFFER_FILE: Step.OFFER,
    AttachmentType.ORDER_FILE: Step.ORDER,
})

# Statuses the engine is allowed to persist
WRITABLE_STATUSES = frozenset({
    Status.IN_EVALUATION,
    Status.UNDER_VALIDATION,
    Status.IN_IMPLEMENTATION,
    Status.DECLINED,
})

_STEPS_BY_NAME = MappingProxyType({step.value: step for step in Step})
_STATUSES_BY_NAME = MappingProxyType({status.value: status for status in Status})
_ATTACHMENT_TYPES_BY_NAME = MappingProxyType({t.value: t for t in AttachmentType})


# ── Catalog lookups ──────────────────────────────────────────────────────────


def ordered_steps():
    """Return the fixed 5-step sequence."""
    return STEPS_ORDER


def step_index(step):
    """Return the 0-based catalog position of ``step``."""
    return _STEP_INDEX[step]


def role_for(step):
    """Return the role that owns ``step``; ``None`` for the terminal marker."""
    if step is None:
        return None
    return STEP_ROLES[step]


def is_review_step(step):
    return role_for(step) == ROLE_REVIEW_TEAM


def is_final_step(step):
    return step_index(step) == len(STEPS_ORDER) - 1


def attachment_owner(attachment_type):
    """Return the step whose completion locks ``attachment_type``, or None."""
    return ATTACHMENT_STEPS.get(attachment_type)


def attachment_types_for(step):
    """Return every attachment type owned by ``step``."""
    return [t for t, owner in ATTACHMENT_STEPS.items() if owner == step]


# ── String codec ─────────────────────────────────────────────────────────────


def _decode(table, raw, label):
    value = table.get(raw) if isinstance(raw, str) else None
    if value is None:
        raise ValidationError(
            f"Unknown {label} '{raw}'",
            details={label: f"must be one of: {', '.join(table)}"},
        )
    return value


def step_from_string(raw):
    return _decode(_STEPS_BY_NAME, raw, "step")


def status_from_string(raw):
    return _decode(_STATUSES_BY_NAME, raw, "status")


def attachment_type_from_string(raw):
    return _decode(_ATTACHMENT_TYPES_BY_NAME, raw, "attachment_type")

"""
Use Case Authorization Guard

Pure decision functions for the five mutating actions on a use case. Each
check looks only at the acting user, the ``is_internal`` flag and an
already-loaded UseCase snapshot; nothing here touches the database.

Every check returns ``None`` when the action is allowed, or a ``Denial``
carrying a machine-readable reason. The blueprint turns a denial into
PermissionDeniedError via ``require`` before any service call runs, which
keeps the workflow engine free of caller and role concerns.

Privileged callers (trusted internal services and review-team members)
pass every check.

Usage:
    from core_service.services.permission import can_edit_step, require

    require(can_edit_step(actor, use_case, Step.OFFER, is_internal=False))
"""

from dataclasses import dataclass, field

from core_service.core.exceptions import PermissionDeniedError
from core_service.models.workflow import (
    ROLE_REVIEW_TEAM,
    Status,
    attachment_owner,
    role_for,
)

# ── Denial reasons ───────────────────────────────────────────────────────────

NOT_OWNER = "not-owner"
WRONG_ROLE_FOR_STEP = "wrong-role-for-step"
WRONG_STATUS_FOR_EDIT = "wrong-status-for-edit"
STEP_ALREADY_COMPLETED = "step-already-completed"
ATTACHMENT_LOCKED = "attachment-locked"
PENDING_STEPS_BLOCK_DELETE = "pending-steps-block-delete"
INVALID_STATUS_TRANSITION = "invalid-status-transition"

DENIAL_REASONS = frozenset({
    NOT_OWNER,
    WRONG_ROLE_FOR_STEP,
    WRONG_STATUS_FOR_EDIT,
    STEP_ALREADY_COMPLETED,
    ATTACHMENT_LOCKED,
    PENDING_STEPS_BLOCK_DELETE,
    INVALID_STATUS_TRANSITION,
})

# The only status change a non-privileged owner may make
SELF_SERVICE_TRANSITIONS = frozenset({
    (Status.IN_IMPLEMENTATION, Status.DECLINED),
})


@dataclass(frozen=True)
class ActingUser:
    """Authenticated caller: identity-provider id plus role names."""

    id: str
    roles: frozenset = field(default_factory=frozenset)

    def has_role(self, role) -> bool:
        return role is not None and role in self.roles


@dataclass(frozen=True)
class Denial:
    reason: str
    message: str


def require(denial):
    """Raise PermissionDeniedError for a denial; no-op when allowed."""
    if denial is not None:
        raise PermissionDeniedError(denial.reason, denial.message)


def _is_privileged(actor, is_internal: bool) -> bool:
    if is_internal:
        return True
    return actor is not None and actor.has_role(ROLE_REVIEW_TEAM)


def _ownership_denial(actor, use_case):
    if actor is None or actor.id != use_case.created_by:
        return Denial(NOT_OWNER, "Only the owner of the use case may do this")
    return None


# ── Checks ───────────────────────────────────────────────────────────────────


def can_edit_use_case(actor, use_case, *, is_internal=False):
    """Owner holding the current step's role may edit while in evaluation.

    The status gate is evaluated first, so a terminal use case
    (in-implementation, declined) reports ``wrong-status-for-edit`` no
    matter who asks.
    """
    if _is_privileged(actor, is_internal):
        return None

    if use_case.status != Status.IN_EVALUATION.value:
        return Denial(
            WRONG_STATUS_FOR_EDIT,
            f"Changing a use case with status '{use_case.status}' is not permitted",
        )

    denial = _ownership_denial(actor, use_case)
    if denial:
        return denial

    current = use_case.current_step()
    if not actor.has_role(role_for(current)):
        step_name = current.value if current else "completed"
        return Denial(
            WRONG_ROLE_FOR_STEP,
            f"Changing a use case in step '{step_name}' is not permitted for your role",
        )
    return None


def can_edit_step(actor, use_case, step, *, is_internal=False):
    """Submit or complete ``step``: edit rights plus the step's role, step still open."""
    denial = can_edit_use_case(actor, use_case, is_internal=is_internal)
    if denial or _is_privileged(actor, is_internal):
        return denial

    if not actor.has_role(role_for(step)):
        return Denial(
            WRONG_ROLE_FOR_STEP,
            f"Changing step '{step.value}' is not permitted for your role",
        )

    if any(record.step == step for record in use_case.completed_steps()):
        return Denial(
            STEP_ALREADY_COMPLETED,
            f"Step '{step.value}' has already been completed",
        )
    return None


def can_change_status(actor, use_case, target, *, is_internal=False):
    """Owners may only decline a use case that is in implementation."""
    if _is_privileged(actor, is_internal):
        return None

    denial = _ownership_denial(actor, use_case)
    if denial:
        return denial

    if (use_case.status_value, target) in SELF_SERVICE_TRANSITIONS:
        return None
    return Denial(
        INVALID_STATUS_TRANSITION,
        f"Changing status from '{use_case.status}' to '{target.value}' is not permitted",
    )


def can_add_attachment(actor, use_case, attachment_type, *, is_internal=False):
    """Owners may attach files of a type only while its owning step is current."""
    if _is_privileged(actor, is_internal):
        return None

    denial = _ownership_denial(actor, use_case)
    if denial:
        return denial

    owner_step = attachment_owner(attachment_type)
    if owner_step is None or owner_step != use_case.current_step():
        return Denial(ATTACHMENT_LOCKED, "Attachment locked")
    return None


def can_delete(actor, use_case, *, is_internal=False):
    """Owners may delete only before the first step is completed."""
    if _is_privileged(actor, is_internal):
        return None

    denial = _ownership_denial(actor, use_case)
    if denial:
        return denial

    if use_case.last_completed_step() is not None:
        return Denial(
            PENDING_STEPS_BLOCK_DELETE,
            "Cannot delete a use case with completed steps",
        )
    return None

"""
Use Case Workflow Service — the workflow engine.

Owns every write to use cases, step records and attachments. Callers (the
use case blueprint) run the matching check from services/permission.py
first; the functions here assume authorization was already granted and
focus on state-machine correctness.

Design decisions:
    - Completed steps must always form a gapless prefix of the step catalog.
      complete_step() is the only writer of completed_at and enforces it on
      every call; storage never does.
    - Completion and the derived status are written in ONE commit. There is
      no second read-modify-write for the status.
    - Every mutation touches use_cases.updated_at, so the version_id_col on
      UseCase detects concurrent writers. StaleDataError → ConflictError.
      Callers may also pass ``expected_version`` (HTTP If-Match).
    - Post-commit side effects (handoff mail, file locks) run concurrently
      on a thread pool and are awaited, but their failure is logged and
      reported, never raised: the committed state stays.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from core_service.core.exceptions import (
    AlreadyCompletedError,
    ConflictError,
    FileLockError,
    NotFoundError,
    NotificationError,
    NotSubmittedError,
    OutOfOrderError,
    StorageError,
    ValidationError,
    WorkflowViolationError,
)
from core_service.integrations.file_service import file_service_gateway
from core_service.models import db
from core_service.models.plant import Plant
from core_service.models.use_case import (
    Attachment,
    UseCase,
    UseCaseStep,
    compose_use_case_name,
)
from core_service.models.workflow import (
    STEPS_ORDER,
    WRITABLE_STATUSES,
    Status,
    attachment_owner,
    is_final_step,
    is_review_step,
    step_index,
)
from core_service.services import notification as notification_service

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100

# Free-text fields that may be null; building and plant_id may not
_OPTIONAL_FIELDS = ("image", "line", "position")
_REQUIRED_FIELDS = ("building", "plant_id")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Private helpers ────────────────────────────────────────────────────────────


def _commit(use_case_id: str | None = None) -> None:
    """Commit the session, translating database failures into domain errors."""
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        logger.warning("Concurrent write rejected use_case=%s", use_case_id)
        raise ConflictError(
            "UseCase", "version", use_case_id,
            message="Use case was modified concurrently; reload and retry",
        ) from exc
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit use_case=%s: %s", use_case_id, exc.orig)
        raise ConflictError(
            "UseCase", "id", use_case_id,
            message="Use case was modified concurrently; reload and retry",
        ) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error on commit use_case=%s", use_case_id)
        raise StorageError("Database error") from exc


def _check_version(use_case: UseCase, expected_version) -> None:
    if expected_version is None:
        return
    if int(expected_version) != use_case.version:
        raise ConflictError(
            "UseCase", "version", str(expected_version),
            message=(
                f"Use case version is {use_case.version}, "
                f"request was based on {expected_version}"
            ),
        )


def _get_plant(plant_id) -> Plant:
    plant = db.session.get(Plant, plant_id) if plant_id else None
    if plant is None:
        raise NotFoundError("Plant", plant_id)
    return plant


def _required_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required", details={key: "required"})
    return value.strip()


def _optional_str(data: dict, key: str):
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", details={key: "string or null required"})
    return value


def _like_pattern(q: str) -> str:
    escaped = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def derive_status(step) -> Status:
    """Status after completing ``step``.

    Final catalog step → in-implementation regardless of its role.
    Review-team step → in-evaluation (requestor's turn to act).
    Requestor step → under-validation (review team's turn).
    """
    if is_final_step(step):
        return Status.IN_IMPLEMENTATION
    return Status.IN_EVALUATION if is_review_step(step) else Status.UNDER_VALIDATION


# ── Queries ────────────────────────────────────────────────────────────────────


def get_use_case(use_case_id: str) -> UseCase:
    use_case = db.session.get(UseCase, use_case_id)
    if use_case is None:
        raise NotFoundError("UseCase", use_case_id)
    return use_case


def list_use_cases(
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
    q: str | None = None,
    plant_id: str | None = None,
) -> tuple[list[UseCase], dict]:
    """Return one page of use cases plus paging metadata.

    Args:
        page:     1-based page number.
        limit:    Page size, capped at MAX_PAGE_LIMIT.
        q:        Optional case-insensitive substring match on name.
        plant_id: Optional plant filter.
    """
    limit = max(1, min(limit or DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT))
    page = max(1, page or 1)

    stmt = select(UseCase)
    if q:
        stmt = stmt.where(UseCase.name.ilike(_like_pattern(q), escape="\\"))
    if plant_id:
        stmt = stmt.where(UseCase.plant_id == plant_id)

    total = db.session.execute(
        select(func.count()).select_from(stmt.subquery())
    ).scalar_one()
    items = db.session.execute(
        stmt.order_by(UseCase.created_at.desc(), UseCase.id)
        .limit(limit)
        .offset((page - 1) * limit)
    ).scalars().all()

    paging = {
        "count": len(items),
        "page": page,
        "page_count": max(math.ceil(total / limit), 1),
        "total": total,
    }
    return list(items), paging


def list_attachments(use_case_id: str) -> list[Attachment]:
    return list(get_use_case(use_case_id).attachments)


# ── Use case lifecycle ─────────────────────────────────────────────────────────


def create_use_case(data: dict, created_by: str) -> UseCase:
    """Create a use case in status in-evaluation with no steps or attachments.

    Required: name, plant_id, building. Optional: image, line, position.
    The stored name is ``<plant>-H<building>-<name>``.
    """
    name = _required_str(data, "name")
    plant_id = _required_str(data, "plant_id")
    building = _required_str(data, "building")
    optional = {key: _optional_str(data, key) for key in _OPTIONAL_FIELDS}
    _get_plant(plant_id)

    now = _utcnow()
    use_case = UseCase(
        name=compose_use_case_name(plant_id, building, name),
        plant_id=plant_id,
        building=building,
        image=optional["image"],
        line=optional["line"],
        position=optional["position"],
        created_by=created_by,
        status=Status.IN_EVALUATION.value,
        created_at=now,
        updated_at=now,
    )
    db.session.add(use_case)
    _commit()

    logger.info(
        "Use case created",
        extra={"use_case_id": use_case.id, "plant_id": plant_id, "created_by": created_by},
    )
    return use_case


def update_use_case(use_case_id: str, data: dict, expected_version=None) -> UseCase:
    """Partial update of descriptive fields.

    A new ``name`` is recomposed with the (possibly changed) plant and
    building. Workflow fields (status, steps, owner) are not touched here.
    """
    changes = {key: _optional_str(data, key) for key in _OPTIONAL_FIELDS if data.get(key) is not None}
    for key in _REQUIRED_FIELDS:
        if data.get(key) is not None:
            changes[key] = _required_str(data, key)
    name = _required_str(data, "name") if data.get("name") is not None else None

    use_case = get_use_case(use_case_id)
    _check_version(use_case, expected_version)
    if "plant_id" in changes:
        _get_plant(changes["plant_id"])

    for key, value in changes.items():
        setattr(use_case, key, value)
    if name is not None:
        use_case.name = compose_use_case_name(use_case.plant_id, use_case.building, name)

    use_case.updated_at = _utcnow()
    _commit(use_case_id)
    logger.info("Use case updated", extra={"use_case_id": use_case_id})
    return use_case


def submit_step(
    use_case_id: str, step, actor_id: str, form, expected_version=None,
) -> UseCase:
    """Create or replace the form of ``step``.

    First submission creates the record (completed_at=None, created_by=actor).
    Resubmission replaces only ``form``; record id and created_by stay.
    """
    if not isinstance(form, dict):
        raise ValidationError("Step form must be a JSON object", details={"form": "object required"})

    use_case = get_use_case(use_case_id)
    _check_version(use_case, expected_version)

    record = use_case.step_record(step)
    if record is None:
        record = UseCaseStep(
            use_case=use_case,
            step_type=step.value,
            form=form,
            created_by=actor_id,
            created_at=_utcnow(),
        )
        db.session.add(record)
        created = True
    else:
        record.form = form
        created = False

    use_case.updated_at = _utcnow()
    _commit(use_case_id)

    logger.info(
        "Step submitted",
        extra={"use_case_id": use_case_id, "step": step.value, "first_submission": created, "actor_id": actor_id},
    )
    return use_case


def complete_step(
    use_case_id: str,
    step,
    actor_id: str,
    auth_headers: dict | None = None,
    expected_version=None,
) -> tuple[UseCase, dict]:
    """Finalize ``step`` and hand the use case to the other party.

    Order of checks (all before any mutation):
        1. step was submitted               else NotSubmittedError
        2. step not completed yet           else AlreadyCompletedError
        3. step directly follows the last
           completed step                   else OutOfOrderError(expected)

    Returns:
        (use_case, side_effect_report). See dispatch_completion_side_effects.
    """
    use_case = get_use_case(use_case_id)
    _check_version(use_case, expected_version)

    record = use_case.step_record(step)
    if record is None:
        raise NotSubmittedError(step.value)
    if record.completed_at is not None:
        raise AlreadyCompletedError(step.value)

    completed = use_case.completed_steps()
    if not use_case.has_gapless_completion():
        logger.error(
            "Completed steps are not a catalog prefix",
            extra={"use_case_id": use_case_id, "completed": [r.step_type for r in completed]},
        )
        raise WorkflowViolationError(
            "Completed steps of this use case are not contiguous", step=step.value,
        )

    ordinal = step_index(step)
    last_ordinal = step_index(completed[-1].step) if completed else -1
    if ordinal - last_ordinal != 1:
        raise OutOfOrderError(step.value, expected=STEPS_ORDER[last_ordinal + 1].value)

    now = _utcnow()
    new_status = derive_status(step)
    record.completed_at = now
    use_case.status = new_status.value
    use_case.updated_at = now
    _commit(use_case_id)

    logger.info(
        "Step completed",
        extra={
            "use_case_id": use_case_id,
            "step": step.value,
            "status": new_status.value,
            "actor_id": actor_id,
        },
    )

    ref_ids = [
        att.ref_id for att in use_case.attachments
        if attachment_owner(att.type_value) == step
    ]
    report = dispatch_completion_side_effects(
        use_case_id=use_case.id,
        use_case_name=use_case.name,
        owner_id=use_case.created_by,
        step=step,
        ref_ids=ref_ids,
        auth_headers=auth_headers,
    )
    return use_case, report


def set_status(use_case_id: str, status: Status, expected_version=None) -> UseCase:
    """Overwrite the status. Used for privileged overrides and owner decline.

    Never touches step records, so the completion ordering stays intact.
    """
    if status not in WRITABLE_STATUSES:
        raise ValidationError(
            f"Status '{status.value}' cannot be set",
            details={"status": f"must be one of: {', '.join(sorted(s.value for s in WRITABLE_STATUSES))}"},
        )
    use_case = get_use_case(use_case_id)
    _check_version(use_case, expected_version)

    old = use_case.status
    use_case.status = status.value
    use_case.updated_at = _utcnow()
    _commit(use_case_id)

    logger.info(
        "Use case status changed",
        extra={"use_case_id": use_case_id, "from_status": old, "to_status": status.value},
    )
    return use_case


def delete_use_case(use_case_id: str, expected_version=None) -> None:
    """Delete the use case with its attachments and step records in one transaction."""
    use_case = get_use_case(use_case_id)
    _check_version(use_case, expected_version)

    for attachment in list(use_case.attachments):
        db.session.delete(attachment)
    for record in list(use_case.steps):
        db.session.delete(record)
    db.session.flush()
    db.session.delete(use_case)
    _commit(use_case_id)

    logger.info("Use case deleted", extra={"use_case_id": use_case_id})


def add_attachment(
    use_case_id: str, attachment_type, ref_id, metadata=None,
) -> Attachment:
    """Register a file reference for ``use_case_id``."""
    if not isinstance(ref_id, str) or not ref_id.strip():
        raise ValidationError("ref_id is required", details={"ref_id": "required"})
    if metadata is not None and not isinstance(metadata, dict):
        raise ValidationError("metadata must be a JSON object", details={"metadata": "object required"})

    use_case = get_use_case(use_case_id)
    attachment = Attachment(
        use_case=use_case,
        attachment_type=attachment_type.value,
        ref_id=ref_id.strip(),
        file_metadata=metadata or {},
        created_at=_utcnow(),
    )
    db.session.add(attachment)
    use_case.updated_at = _utcnow()
    _commit(use_case_id)

    logger.info(
        "Attachment added",
        extra={"use_case_id": use_case_id, "type": attachment_type.value, "ref_id": attachment.ref_id},
    )
    return attachment


# ── Side effects ───────────────────────────────────────────────────────────────


def _in_app_context(app, fn, *args, **kwargs):
    with app.app_context():
        return fn(*args, **kwargs)


def dispatch_completion_side_effects(
    *,
    use_case_id: str,
    use_case_name: str,
    owner_id: str,
    step,
    ref_ids: list[str],
    auth_headers: dict | None = None,
) -> dict:
    """Run the handoff mail and one lock per file concurrently and wait for all.

    Each side effect fails on its own; nothing here raises.

    Returns:
        {
            "notification": {"ok": bool, "recipients": [...]} | {"ok": False, "error": str},
            "file_locks": [{"ref_id": str, "ok": bool, "error"?: str}, ...],
        }
    """
    app = current_app._get_current_object()
    workers = max(1, min(app.config.get("SIDE_EFFECT_WORKERS", 4), len(ref_ids) + 1))
    log_extra = {"use_case_id": use_case_id, "step": step.value}

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="use-case-side-effect") as pool:
        notify_future = pool.submit(
            _in_app_context, app, notification_service.notify_step_handoff,
            use_case_id=use_case_id,
            use_case_name=use_case_name,
            owner_id=owner_id,
            step=step,
            auth_headers=auth_headers,
        )
        lock_futures = [
            (ref_id, pool.submit(_in_app_context, app, file_service_gateway.lock_file, ref_id, auth_headers))
            for ref_id in ref_ids
        ]

        try:
            notification = {"ok": True, "recipients": notify_future.result()}
        except NotificationError as exc:
            logger.warning("Handoff notification failed: %s", exc, extra=log_extra)
            notification = {"ok": False, "error": str(exc)}
        except Exception as exc:  # isolated: the step is already committed
            logger.exception("Unexpected error in handoff notification", extra=log_extra)
            notification = {"ok": False, "error": str(exc)}

        file_locks = []
        for ref_id, future in lock_futures:
            try:
                future.result()
                file_locks.append({"ref_id": ref_id, "ok": True})
            except FileLockError as exc:
                logger.warning("File lock failed: %s", exc, extra={**log_extra, "ref_id": ref_id})
                file_locks.append({"ref_id": ref_id, "ok": False, "error": str(exc)})
            except Exception as exc:  # isolated per attachment
                logger.exception("Unexpected error locking file", extra={**log_extra, "ref_id": ref_id})
                file_locks.append({"ref_id": ref_id, "ok": False, "error": str(exc)})

    return {"notification": notification, "file_locks": file_locks}

"""
Use Case Blueprint — REST surface of the approval workflow.

Endpoints (all under /api/v1, authentication required):
    GET    /use-cases?page&limit&q&plant_id      paged list
    POST   /use-cases                            create (caller becomes owner)
    GET    /use-cases/<id>                       detail incl. steps + attachments
    PUT    /use-cases/<id>                       update descriptive fields
    DELETE /use-cases/<id>                       delete incl. steps + attachments
    POST   /use-cases/<id>/status/<status>       overwrite status
    PUT    /use-cases/<id>/step/<step>           submit / resubmit a step form
    POST   /use-cases/<id>/step/<step>/complete  finalize a step
    GET    /use-cases/<id>/attachments           list attachments
    POST   /use-cases/<id>/attachments           register a file reference

Layer contract:
    - Blueprint: decode path strings, load the snapshot, run the matching
      authorization check, call use_case_service, serialize.
    - NO db.session calls here — all writes owned by use_case_service.
    - Mutating routes honour an optional ``If-Match: <version>`` header.
"""

import logging

from flask import Blueprint, jsonify, request

from core_service.auth import (
    actor_id,
    current_actor,
    is_internal_request,
    outbound_auth_headers,
    require_auth,
)
from core_service.blueprints import paging_args, register_error_handlers
from core_service.core.exceptions import ValidationError
from core_service.models.workflow import (
    attachment_type_from_string,
    status_from_string,
    step_from_string,
)
from core_service.services import permission, use_case_service
from core_service.services.permission import require

logger = logging.getLogger(__name__)

use_case_bp = Blueprint("use_cases", __name__, url_prefix="/api/v1")

register_error_handlers(use_case_bp)


# ── Helpers ────────────────────────────────────────────────────────────────────


def _expected_version():
    """Parse ``If-Match`` into an int version, or None when absent."""
    raw = request.headers.get("If-Match")
    if raw is None or raw.strip() in ("", "*"):
        return None
    value = raw.strip()
    if value.startswith("W/"):
        value = value[2:]
    value = value.strip('"')
    try:
        return int(value)
    except ValueError:
        raise ValidationError(
            "If-Match must carry the use case version",
            details={"If-Match": "integer version required"},
        ) from None


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _guard_kwargs() -> dict:
    return {"is_internal": is_internal_request()}


# ═════════════════════════════════════════════════════════════════════════
# Use cases
# ═════════════════════════════════════════════════════════════════════════


@use_case_bp.route("/use-cases", methods=["GET"])
@require_auth
def list_use_cases():
    page, limit = paging_args(
        default_limit=use_case_service.DEFAULT_PAGE_LIMIT,
        max_limit=use_case_service.MAX_PAGE_LIMIT,
    )
    items, paging = use_case_service.list_use_cases(
        page=page,
        limit=limit,
        q=request.args.get("q") or None,
        plant_id=request.args.get("plant_id") or None,
    )
    return jsonify({
        "items": [uc.to_dict(include_children=False) for uc in items],
        "paging": paging,
    })


@use_case_bp.route("/use-cases", methods=["POST"])
@require_auth
def create_use_case():
    use_case = use_case_service.create_use_case(_json_body(), created_by=actor_id())
    return jsonify(use_case.to_dict()), 201


@use_case_bp.route("/use-cases/<use_case_id>", methods=["GET"])
@require_auth
def get_use_case(use_case_id):
    return jsonify(use_case_service.get_use_case(use_case_id).to_dict())


@use_case_bp.route("/use-cases/<use_case_id>", methods=["PUT"])
@require_auth
def update_use_case(use_case_id):
    data = _json_body()
    use_case = use_case_service.get_use_case(use_case_id)
    require(permission.can_edit_use_case(current_actor(), use_case, **_guard_kwargs()))

    use_case = use_case_service.update_use_case(
        use_case_id, data, expected_version=_expected_version(),
    )
    return jsonify(use_case.to_dict())


@use_case_bp.route("/use-cases/<use_case_id>", methods=["DELETE"])
@require_auth
def delete_use_case(use_case_id):
    use_case = use_case_service.get_use_case(use_case_id)
    require(permission.can_delete(current_actor(), use_case, **_guard_kwargs()))

    use_case_service.delete_use_case(use_case_id, expected_version=_expected_version())
    return "", 204


@use_case_bp.route("/use-cases/<use_case_id>/status/<status>", methods=["POST"])
@require_auth
def change_status(use_case_id, status):
    target = status_from_string(status)
    use_case = use_case_service.get_use_case(use_case_id)
    require(permission.can_change_status(current_actor(), use_case, target, **_guard_kwargs()))

    use_case = use_case_service.set_status(
        use_case_id, target, expected_version=_expected_version(),
    )
    return jsonify(use_case.to_dict())


# ═════════════════════════════════════════════════════════════════════════
# Steps
# ═════════════════════════════════════════════════════════════════════════


@use_case_bp.route("/use-cases/<use_case_id>/step/<step>", methods=["PUT"])
@require_auth
def submit_step(use_case_id, step):
    """Body is the step form itself (any JSON object)."""
    target = step_from_string(step)
    form = request.get_json(silent=True)
    use_case = use_case_service.get_use_case(use_case_id)
    require(permission.can_edit_step(current_actor(), use_case, target, **_guard_kwargs()))

    use_case = use_case_service.submit_step(
        use_case_id, target, actor_id(), form, expected_version=_expected_version(),
    )
    return jsonify(use_case.to_dict())


@use_case_bp.route("/use-cases/<use_case_id>/step/<step>/complete", methods=["POST"])
@require_auth
def complete_step(use_case_id, step):
    """Finalize a step. Side-effect outcomes are reported, never fail the call."""
    target = step_from_string(step)
    use_case = use_case_service.get_use_case(use_case_id)
    require(permission.can_edit_step(current_actor(), use_case, target, **_guard_kwargs()))

    use_case, report = use_case_service.complete_step(
        use_case_id,
        target,
        actor_id(),
        auth_headers=outbound_auth_headers(),
        expected_version=_expected_version(),
    )
    return jsonify({"use_case": use_case.to_dict(), "side_effects": report})


# ═════════════════════════════════════════════════════════════════════════
# Attachments
# ═════════════════════════════════════════════════════════════════════════


@use_case_bp.route("/use-cases/<use_case_id>/attachments", methods=["GET"])
@require_auth
def list_attachments(use_case_id):
    attachments = use_case_service.list_attachments(use_case_id)
    return jsonify({"items": [att.to_dict() for att in attachments], "total": len(attachments)})


@use_case_bp.route("/use-cases/<use_case_id>/attachments", methods=["POST"])
@require_auth
def add_attachment(use_case_id):
    data = _json_body()
    attachment_type = attachment_type_from_string(data.get("type"))
    use_case = use_case_service.get_use_case(use_case_id)
    require(permission.can_add_attachment(
        current_actor(), use_case, attachment_type, **_guard_kwargs(),
    ))

    attachment = use_case_service.add_attachment(
        use_case_id, attachment_type, data.get("ref_id"), data.get("metadata"),
    )
    return jsonify(attachment.to_dict()), 201

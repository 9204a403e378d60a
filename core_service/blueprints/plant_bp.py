"""
Plant Blueprint — the site registry use cases point at.

Endpoints (all under /api/v1, authentication required):
    GET    /plants          list
    GET    /plants/<id>     detail
    POST   /plants          create     (review team or internal caller)
    PUT    /plants/<id>     update     (review team or internal caller)
    DELETE /plants/<id>     delete     (review team or internal caller)
"""

import functools

from flask import Blueprint, jsonify, request

from core_service.auth import current_actor, is_internal_request, require_auth
from core_service.blueprints import register_error_handlers
from core_service.core.exceptions import PermissionDeniedError
from core_service.models.workflow import ROLE_REVIEW_TEAM
from core_service.services import plant_service

plant_bp = Blueprint("plants", __name__, url_prefix="/api/v1")

register_error_handlers(plant_bp)


def require_review_team(f):
    """Decorator: only review-team members and internal callers may manage plants."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        actor = current_actor()
        if not is_internal_request() and (actor is None or not actor.has_role(ROLE_REVIEW_TEAM)):
            raise PermissionDeniedError("wrong-role", "Managing plants requires the review-team role")
        return f(*args, **kwargs)

    return decorated


@plant_bp.route("/plants", methods=["GET"])
@require_auth
def list_plants():
    plants = plant_service.list_plants()
    return jsonify({"items": [p.to_dict() for p in plants], "total": len(plants)})


@plant_bp.route("/plants/<plant_id>", methods=["GET"])
@require_auth
def get_plant(plant_id):
    return jsonify(plant_service.get_plant(plant_id).to_dict())


@plant_bp.route("/plants", methods=["POST"])
@require_auth
@require_review_team
def create_plant():
    plant = plant_service.create_plant(request.get_json(silent=True) or {})
    return jsonify(plant.to_dict()), 201


@plant_bp.route("/plants/<plant_id>", methods=["PUT"])
@require_auth
@require_review_team
def update_plant(plant_id):
    plant = plant_service.update_plant(plant_id, request.get_json(silent=True) or {})
    return jsonify(plant.to_dict())


@plant_bp.route("/plants/<plant_id>", methods=["DELETE"])
@require_auth
@require_review_team
def delete_plant(plant_id):
    plant_service.delete_plant(plant_id)
    return "", 204

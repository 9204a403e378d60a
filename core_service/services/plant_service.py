"""
Plant Service — registry of the sites use cases belong to.

Plants are managed by the review team or an internal caller. Plant ids
follow the site code convention ``P<two digits>`` and are embedded in every
use case display name, so a plant that is still referenced cannot be
deleted.
"""

import logging
import re

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core_service.core.exceptions import (
    ConflictError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from core_service.models import db
from core_service.models.plant import Plant
from core_service.models.use_case import UseCase

logger = logging.getLogger(__name__)

PLANT_ID_PATTERN = re.compile(r"^P\d{2}$")

_REQUIRED_FIELDS = ("id", "name", "country")
_EDITABLE_FIELDS = ("name", "country")


def _commit(plant_id: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(
            "Plant", "name", plant_id, message="Plant name already exists",
        ) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error on plant %s", plant_id)
        raise StorageError("Database error") from exc


def list_plants() -> list[Plant]:
    return list(db.session.execute(select(Plant).order_by(Plant.id)).scalars())


def get_plant(plant_id: str) -> Plant:
    plant = db.session.get(Plant, plant_id)
    if plant is None:
        raise NotFoundError("Plant", plant_id)
    return plant


def create_plant(data: dict) -> Plant:
    """Register a plant. Required: id (``P<nn>``), name, country."""
    missing = [
        key for key in _REQUIRED_FIELDS
        if not isinstance(data.get(key), str) or not data[key].strip()
    ]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={key: "required" for key in missing},
        )

    plant_id = data["id"].strip()
    if not PLANT_ID_PATTERN.match(plant_id):
        raise ValidationError("Plant ID is not valid", details={"id": "must match P<two digits>"})
    if db.session.get(Plant, plant_id) is not None:
        raise ConflictError("Plant", "id", plant_id, message=f"Plant '{plant_id}' already exists")

    plant = Plant(id=plant_id, name=data["name"].strip(), country=data["country"].strip())
    db.session.add(plant)
    _commit(plant_id)

    logger.info("Plant created id=%s", plant_id)
    return plant


def update_plant(plant_id: str, data: dict) -> Plant:
    """Partial update of name and country. The id is immutable."""
    plant = get_plant(plant_id)
    for key in _EDITABLE_FIELDS:
        value = data.get(key)
        if value is None:
            continue
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{key} must not be empty", details={key: "required"})
        setattr(plant, key, value.strip())
    _commit(plant_id)

    logger.info("Plant updated id=%s", plant_id)
    return plant


def delete_plant(plant_id: str) -> None:
    plant = get_plant(plant_id)
    in_use = db.session.execute(
        select(func.count()).select_from(UseCase).where(UseCase.plant_id == plant_id)
    ).scalar_one()
    if in_use:
        raise ConflictError(
            "Plant", "id", plant_id,
            message=f"Plant '{plant_id}' is referenced by {in_use} use case(s)",
        )
    db.session.delete(plant)
    _commit(plant_id)
    logger.info("Plant deleted id=%s", plant_id)

"""
Use Case Workflow Core Service
Use case aggregate — UseCase, UseCaseStep and Attachment models.

Architecture:
    Plant ──1:N──▶ UseCase ──1:N──▶ UseCaseStep   (at most one per Step)
                           └─1:N──▶ Attachment

Derived reads (completed_steps / current_step / next_step /
last_completed_step) are computed from which step records carry a
completed_at timestamp. They never touch the database beyond the already
loaded collections.

Concurrency:
    ``version`` is the SQLAlchemy version_id_col. Every UPDATE/DELETE of a
    use_cases row is qualified with the version that was read, so a second
    writer working from a stale snapshot gets StaleDataError instead of
    silently overwriting. Services translate that into ConflictError.

Child rows are deleted explicitly by the service inside the deletion
transaction (``passive_deletes="all"``); the ORM never cascades implicitly.
"""

import uuid
from datetime import datetime, timezone

from core_service.models import db
from core_service.models.workflow import (
    STEPS_ORDER,
    AttachmentType,
    Status,
    Step,
    step_index,
)


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def compose_use_case_name(plant_id: str, building: str, name: str) -> str:
    """Display name convention: ``<plant>-H<building>-<name>``."""
    return f"{plant_id}-H{building}-{name}"


class UseCase(db.Model):
    """
    Tracked approval-workflow instance tied to a plant.

    Lifecycle:
        created → in-evaluation, no steps, no attachments
        each completed requestor step → under-validation
        each completed review step    → in-evaluation
        final step completed         → in-implementation
        declined                     → set manually (owner only from in-implementation)
    """

    __tablename__ = "use_cases"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(255), nullable=False, index=True)
    image = db.Column(db.String(500), nullable=True)
    building = db.Column(db.String(50), nullable=False)
    line = db.Column(db.String(100), nullable=True)
    position = db.Column(db.String(100), nullable=True)

    plant_id = db.Column(
        db.String(32),
        db.ForeignKey("plants.id"),
        nullable=False,
        index=True,
    )
    created_by = db.Column(
        db.String(64),
        nullable=False,
        index=True,
        comment="Owner user id from the identity provider",
    )
    status = db.Column(
        db.String(32),
        nullable=False,
        default=Status.IN_EVALUATION.value,
        comment="live | in-evaluation | under-validation | in-implementation | declined",
    )
    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    plant = db.relationship("Plant", lazy="joined")
    steps = db.relationship(
        "UseCaseStep",
        back_populates="use_case",
        lazy="selectin",
        order_by="UseCaseStep.created_at",
        passive_deletes="all",
    )
    attachments = db.relationship(
        "Attachment",
        back_populates="use_case",
        lazy="selectin",
        order_by="Attachment.created_at",
        passive_deletes="all",
    )

    __mapper_args__ = {"version_id_col": version}

    # ── Derived reads ────────────────────────────────────────────────────

    @property
    def status_value(self) -> Status:
        return Status(self.status)

    def step_record(self, step: Step):
        """Return the UseCaseStep for ``step`` or None if never submitted."""
        for record in self.steps:
            if record.step_type == step.value:
                return record
        return None

    def completed_steps(self) -> list:
        """Step records with completed_at set, in catalog order."""
        done = [record for record in self.steps if record.completed_at is not None]
        return sorted(done, key=lambda record: step_index(record.step))

    def has_gapless_completion(self) -> bool:
        """True when the completed steps are exactly a prefix of the catalog."""
        completed = [record.step for record in self.completed_steps()]
        return completed == list(STEPS_ORDER[: len(completed)])

    def current_step(self):
        """Catalog step at position len(completed), or None once all are done."""
        idx = len(self.completed_steps())
        if idx >= len(STEPS_ORDER):
            return None
        return STEPS_ORDER[idx]

    def next_step(self):
        idx = len(self.completed_steps()) + 1
        if idx >= len(STEPS_ORDER):
            return None
        return STEPS_ORDER[idx]

    def last_completed_step(self):
        completed = self.completed_steps()
        if not completed:
            return None
        return completed[-1].step

    # ── Serialization ────────────────────────────────────────────────────

    def to_dict(self, include_children: bool = True) -> dict:
        current = self.current_step()
        upcoming = self.next_step()
        data = {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "building": self.building,
            "line": self.line,
            "position": self.position,
            "plant_id": self.plant_id,
            "created_by": self.created_by,
            "status": self.status,
            "current_step": current.value if current else None,
            "next_step": upcoming.value if upcoming else None,
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_children:
            data["steps"] = [record.to_dict() for record in self.steps]
            data["attachments"] = [att.to_dict() for att in self.attachments]
        return data

    def __repr__(self) -> str:
        return f"<UseCase {self.id} {self.name!r} {self.status}>"


class UseCaseStep(db.Model):
    """
    Submitted form of one workflow step.

    Business rules:
    - One record per (use_case, step) — unique constraint.
    - Resubmission replaces ``form`` only; id and created_by never change.
    - completed_at is set exactly once, by the workflow engine.
    """

    __tablename__ = "use_case_steps"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    use_case_id = db.Column(
        db.String(36),
        db.ForeignKey("use_cases.id"),
        nullable=False,
        index=True,
    )
    step_type = db.Column(db.String(50), nullable=False)
    form = db.Column(db.JSON, nullable=False, default=dict)
    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    use_case = db.relationship("UseCase", back_populates="steps")

    __table_args__ = (
        db.UniqueConstraint("use_case_id", "step_type", name="uq_use_case_step_type"),
    )

    @property
    def step(self) -> Step:
        return Step(self.step_type)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.step_type,
            "form": self.form,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "completed_at": _iso(self.completed_at),
        }

    def __repr__(self) -> str:
        return f"<UseCaseStep {self.use_case_id}/{self.step_type} completed={self.is_completed}>"


class Attachment(db.Model):
    """Reference to a file held by the file service, owned by one step."""

    __tablename__ = "attachments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    use_case_id = db.Column(
        db.String(36),
        db.ForeignKey("use_cases.id"),
        nullable=False,
        index=True,
    )
    attachment_type = db.Column("type", db.String(50), nullable=False)
    ref_id = db.Column(
        db.String(255),
        nullable=False,
        comment="File id in the file service; locked when the owning step completes",
    )
    file_metadata = db.Column("metadata", db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    use_case = db.relationship("UseCase", back_populates="attachments")

    @property
    def type_value(self) -> AttachmentType:
        return AttachmentType(self.attachment_type)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "use_case_id": self.use_case_id,
            "type": self.attachment_type,
            "ref_id": self.ref_id,
            "metadata": self.file_metadata,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Attachment {self.id} {self.attachment_type} ref={self.ref_id}>"

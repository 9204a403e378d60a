"""
Use Case Workflow Core Service
Plant — the location a use case belongs to.

Plant ids are short site codes chosen by the operator (e.g. "MUC1") and
are part of every use case display name.
"""

from datetime import datetime, timezone

from core_service.models import db


class Plant(db.Model):
    __tablename__ = "plants"

    id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    country = db.Column(db.String(100), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "country": self.country,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Plant {self.id} {self.name}>"

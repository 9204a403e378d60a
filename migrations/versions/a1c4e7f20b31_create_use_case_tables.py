"""create_use_case_tables

Creates the use case workflow schema:
  - plants            — site registry (id = site code, e.g. P01)
  - use_cases         — workflow instance, version = optimistic lock counter
  - use_case_steps    — one submitted form per (use case, step)
  - attachments       — file references owned by a step

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via
db.create_all() in a development environment.

Revision ID: a1c4e7f20b31
Revises:
Create Date: 2026-10-19 09:12:44.201553
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'a1c4e7f20b31'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Plants ────────────────────────────────────────────────────────────
    if "plants" not in existing:
        op.create_table(
            "plants",
            sa.Column("id", sa.String(length=32), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("country", sa.String(length=100), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name", name="uq_plants_name"),
        )

    # ── Use cases ─────────────────────────────────────────────────────────
    if "use_cases" not in existing:
        op.create_table(
            "use_cases",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("image", sa.String(length=500), nullable=True),
            sa.Column("building", sa.String(length=50), nullable=False),
            sa.Column("line", sa.String(length=100), nullable=True),
            sa.Column("position", sa.String(length=100), nullable=True),
            sa.Column("plant_id", sa.String(length=32), nullable=False),
            sa.Column("created_by", sa.String(length=64), nullable=False,
                      comment="Owner user id from the identity provider"),
            sa.Column("status", sa.String(length=32), nullable=False,
                      server_default="in-evaluation",
                      comment="live | in-evaluation | under-validation | in-implementation | declined"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["plant_id"], ["plants.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_use_cases_name", "use_cases", ["name"])
        op.create_index("ix_use_cases_plant_id", "use_cases", ["plant_id"])
        op.create_index("ix_use_cases_created_by", "use_cases", ["created_by"])

    # ── Step records ──────────────────────────────────────────────────────
    if "use_case_steps" not in existing:
        op.create_table(
            "use_case_steps",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("use_case_id", sa.String(length=36), nullable=False),
            sa.Column("step_type", sa.String(length=50), nullable=False),
            sa.Column("form", sa.JSON(), nullable=False),
            sa.Column("created_by", sa.String(length=64), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["use_case_id"], ["use_cases.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("use_case_id", "step_type", name="uq_use_case_step_type"),
        )
        op.create_index("ix_use_case_steps_use_case_id", "use_case_steps", ["use_case_id"])

    # ── Attachments ───────────────────────────────────────────────────────
    if "attachments" not in existing:
        op.create_table(
            "attachments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("use_case_id", sa.String(length=36), nullable=False),
            sa.Column("type", sa.String(length=50), nullable=False),
            sa.Column("ref_id", sa.String(length=255), nullable=False,
                      comment="File id in the file service; locked when the owning step completes"),
            sa.Column("metadata", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["use_case_id"], ["use_cases.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_attachments_use_case_id", "attachments", ["use_case_id"])


def downgrade():
    op.drop_index("ix_attachments_use_case_id", table_name="attachments")
    op.drop_table("attachments")
    op.drop_index("ix_use_case_steps_use_case_id", table_name="use_case_steps")
    op.drop_table("use_case_steps")
    op.drop_index("ix_use_cases_created_by", table_name="use_cases")
    op.drop_index("ix_use_cases_plant_id", table_name="use_cases")
    op.drop_index("ix_use_cases_name", table_name="use_cases")
    op.drop_table("use_cases")
    op.drop_table("plants")

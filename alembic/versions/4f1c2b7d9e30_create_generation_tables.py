"""create generation job, unit and artifact tables

Revision ID: 4f1c2b7d9e30
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "4f1c2b7d9e30"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_UTC_NOW = sa.text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


def upgrade() -> None:
  """Create the generation tables."""
  op.create_table(
    "generation_jobs",
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("owner_id", sa.String(), nullable=False),
    sa.Column("request_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("model_selector", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("progress_percent", sa.Integer(), nullable=False),
    sa.Column("total_units", sa.Integer(), nullable=False),
    sa.Column("completed_units", sa.Integer(), nullable=False),
    sa.Column("outline_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("artifact_ref", sa.String(), nullable=True),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW, nullable=False),
    sa.Column("updated_at", sa.String(), server_default=_UTC_NOW, nullable=False),
    sa.Column("completed_at", sa.String(), nullable=True),
    sa.PrimaryKeyConstraint("job_id"),
  )
  op.create_index("ix_generation_jobs_owner_id", "generation_jobs", ["owner_id"])
  op.create_index("ix_generation_jobs_owner_status", "generation_jobs", ["owner_id", "status"])
  op.create_index("ix_generation_jobs_status_updated", "generation_jobs", ["status", "updated_at"])

  op.create_table(
    "generation_units",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("unit_index", sa.Integer(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("kind", sa.String(), nullable=False),
    sa.Column("content", sa.Text(), nullable=False),
    sa.Column("size", sa.Integer(), nullable=False),
    sa.Column("is_fallback", sa.Boolean(), nullable=False),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW, nullable=False),
    sa.ForeignKeyConstraint(["job_id"], ["generation_jobs.job_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("job_id", "unit_index", name="ux_generation_units_job_index"),
  )
  op.create_index("ix_generation_units_job_id", "generation_units", ["job_id"])

  op.create_table(
    "generation_artifacts",
    sa.Column("artifact_id", sa.String(), nullable=False),
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("content", sa.Text(), nullable=False),
    sa.Column("is_partial", sa.Boolean(), nullable=False),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW, nullable=False),
    sa.ForeignKeyConstraint(["job_id"], ["generation_jobs.job_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("artifact_id"),
  )
  op.create_index("ix_generation_artifacts_job_id", "generation_artifacts", ["job_id"])


def downgrade() -> None:
  """Drop the generation tables."""
  op.drop_index("ix_generation_artifacts_job_id", table_name="generation_artifacts")
  op.drop_table("generation_artifacts")
  op.drop_index("ix_generation_units_job_id", table_name="generation_units")
  op.drop_table("generation_units")
  op.drop_index("ix_generation_jobs_status_updated", table_name="generation_jobs")
  op.drop_index("ix_generation_jobs_owner_status", table_name="generation_jobs")
  op.drop_index("ix_generation_jobs_owner_id", table_name="generation_jobs")
  op.drop_table("generation_jobs")

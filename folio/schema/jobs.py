from __future__ import annotations

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from folio.core.database import Base

_UTC_NOW = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class GenerationJob(Base):
  __tablename__ = "generation_jobs"
  __table_args__ = (
    Index("ix_generation_jobs_owner_status", "owner_id", "status"),
    Index("ix_generation_jobs_status_updated", "status", "updated_at"),
  )

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  request_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  model_selector: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False)
  progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  total_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  completed_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  outline_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  artifact_ref: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)


class GenerationUnit(Base):
  __tablename__ = "generation_units"
  __table_args__ = (UniqueConstraint("job_id", "unit_index", name="ux_generation_units_job_index"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  job_id: Mapped[str] = mapped_column(ForeignKey("generation_jobs.job_id", ondelete="CASCADE"), nullable=False, index=True)
  unit_index: Mapped[int] = mapped_column(Integer, nullable=False)
  title: Mapped[str] = mapped_column(String, nullable=False)
  kind: Mapped[str] = mapped_column(String, nullable=False)
  content: Mapped[str] = mapped_column(Text, nullable=False)
  size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  is_fallback: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW)


class GenerationArtifact(Base):
  __tablename__ = "generation_artifacts"

  artifact_id: Mapped[str] = mapped_column(String, primary_key=True)
  job_id: Mapped[str] = mapped_column(ForeignKey("generation_jobs.job_id", ondelete="CASCADE"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  content: Mapped[str] = mapped_column(Text, nullable=False)
  is_partial: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW)

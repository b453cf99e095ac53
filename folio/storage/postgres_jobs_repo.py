"""Postgres-backed repository for generation jobs using SQLAlchemy."""

from __future__ import annotations

import logging
from collections.abc import Collection
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from folio.core.database import get_session_factory
from folio.jobs.models import ACTIVE_STATUSES, ArtifactRecord, JobRecord, JobStatus, UnitRecord
from folio.schema.jobs import GenerationArtifact, GenerationJob, GenerationUnit
from folio.storage.jobs_repo import JobsRepository
from folio.utils.timestamps import now_iso

logger = logging.getLogger(__name__)


class PostgresJobsRepository(JobsRepository):
  """Persist jobs, units and artifacts to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      job = GenerationJob(
        job_id=record.job_id,
        owner_id=record.owner_id,
        request_json=record.request,
        model_selector=record.model_selector,
        status=record.status,
        progress_percent=record.progress_percent,
        total_units=record.total_units,
        completed_units=record.completed_units,
        outline_json=record.outline,
        error_message=record.error_message,
        artifact_ref=record.artifact_ref,
        created_at=record.created_at,
        updated_at=record.updated_at,
        completed_at=record.completed_at,
      )
      session.add(job)
      await session.commit()

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(GenerationJob, job_id)
      if row is None:
        return None
      return self._job_to_record(row)

  async def update_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    progress_percent: int | None = None,
    total_units: int | None = None,
    completed_units: int | None = None,
    outline: dict[str, Any] | None = None,
    error_message: str | None = None,
    clear_error: bool = False,
    completed_at: str | None = None,
    artifact_ref: str | None = None,
    expected_statuses: Collection[str] | None = None,
  ) -> JobRecord | None:
    async with self._session_factory() as session:
      # Lock the row so the status check and the write are one atomic step.
      stmt = select(GenerationJob).where(GenerationJob.job_id == job_id).with_for_update()
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      if expected_statuses is not None and row.status not in expected_statuses:
        await session.rollback()
        return None
      if status is not None:
        row.status = status
      if progress_percent is not None:
        row.progress_percent = max(row.progress_percent, progress_percent)
      if total_units is not None:
        row.total_units = total_units
      if completed_units is not None:
        row.completed_units = completed_units
      if outline is not None:
        row.outline_json = outline
      if clear_error:
        row.error_message = None
      if error_message is not None:
        row.error_message = error_message
      if completed_at is not None:
        row.completed_at = completed_at
      if artifact_ref is not None:
        row.artifact_ref = artifact_ref
      row.updated_at = now_iso()
      await session.commit()
      return self._job_to_record(row)

  async def count_active_jobs(self, owner_id: str) -> int:
    async with self._session_factory() as session:
      stmt = select(func.count()).select_from(GenerationJob).where(GenerationJob.owner_id == owner_id, GenerationJob.status.in_(ACTIVE_STATUSES))
      return int((await session.execute(stmt)).scalar_one())

  async def count_jobs_since(self, owner_id: str, since: str) -> int:
    async with self._session_factory() as session:
      stmt = select(func.count()).select_from(GenerationJob).where(GenerationJob.owner_id == owner_id, GenerationJob.created_at >= since)
      return int((await session.execute(stmt)).scalar_one())

  async def list_idle_jobs(self, status: JobStatus, updated_before: str) -> list[JobRecord]:
    async with self._session_factory() as session:
      stmt = select(GenerationJob).where(GenerationJob.status == status, GenerationJob.updated_at < updated_before).order_by(GenerationJob.updated_at.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._job_to_record(row) for row in rows]

  async def insert_unit(self, record: UnitRecord) -> bool:
    async with self._session_factory() as session:
      unit = GenerationUnit(
        job_id=record.job_id,
        unit_index=record.index,
        title=record.title,
        kind=record.kind,
        content=record.content,
        size=record.size,
        is_fallback=record.is_fallback,
        created_at=record.created_at,
      )
      session.add(unit)
      try:
        await session.commit()
      except IntegrityError:
        # The unique (job_id, unit_index) constraint keeps the first write.
        await session.rollback()
        logger.info("Unit %s already persisted for job %s; keeping existing content", record.index, record.job_id)
        return False
      return True

  async def list_units(self, job_id: str) -> list[UnitRecord]:
    async with self._session_factory() as session:
      stmt = select(GenerationUnit).where(GenerationUnit.job_id == job_id).order_by(GenerationUnit.unit_index.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._unit_to_record(row) for row in rows]

  async def count_units(self, job_id: str) -> int:
    async with self._session_factory() as session:
      stmt = select(func.count()).select_from(GenerationUnit).where(GenerationUnit.job_id == job_id)
      return int((await session.execute(stmt)).scalar_one())

  async def create_artifact(self, record: ArtifactRecord) -> None:
    async with self._session_factory() as session:
      artifact = GenerationArtifact(artifact_id=record.artifact_id, job_id=record.job_id, title=record.title, content=record.content, is_partial=record.is_partial, created_at=record.created_at)
      session.add(artifact)
      await session.commit()

  async def get_artifact(self, artifact_id: str) -> ArtifactRecord | None:
    async with self._session_factory() as session:
      row = await session.get(GenerationArtifact, artifact_id)
      if row is None:
        return None
      return ArtifactRecord(artifact_id=row.artifact_id, job_id=row.job_id, title=row.title, content=row.content, is_partial=row.is_partial, created_at=row.created_at)

  @staticmethod
  def _job_to_record(row: GenerationJob) -> JobRecord:
    return JobRecord(
      job_id=row.job_id,
      owner_id=row.owner_id,
      request=dict(row.request_json or {}),
      model_selector=row.model_selector,
      status=row.status,  # type: ignore[arg-type]
      created_at=row.created_at,
      updated_at=row.updated_at,
      progress_percent=row.progress_percent,
      total_units=row.total_units,
      completed_units=row.completed_units,
      outline=row.outline_json,
      error_message=row.error_message,
      completed_at=row.completed_at,
      artifact_ref=row.artifact_ref,
    )

  @staticmethod
  def _unit_to_record(row: GenerationUnit) -> UnitRecord:
    return UnitRecord(job_id=row.job_id, index=row.unit_index, title=row.title, kind=row.kind, content=row.content, size=row.size, is_fallback=row.is_fallback, created_at=row.created_at)  # type: ignore[arg-type]

"""Process-local jobs repository for development runs and tests."""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import replace
from typing import Any

from folio.jobs.models import ACTIVE_STATUSES, ArtifactRecord, JobRecord, JobStatus, UnitRecord
from folio.storage.jobs_repo import JobsRepository
from folio.utils.timestamps import now_iso


class InMemoryJobsRepository(JobsRepository):
  """Dict-backed repository honoring the same write-once and compare-and-set rules as Postgres."""

  def __init__(self) -> None:
    self._jobs: dict[str, JobRecord] = {}
    self._units: dict[str, dict[int, UnitRecord]] = {}
    self._artifacts: dict[str, ArtifactRecord] = {}

  async def create_job(self, record: JobRecord) -> None:
    if record.job_id in self._jobs:
      raise ValueError(f"Job {record.job_id} already exists.")
    self._jobs[record.job_id] = replace(record)

  async def get_job(self, job_id: str) -> JobRecord | None:
    record = self._jobs.get(job_id)
    # Hand out copies so callers cannot mutate stored state.
    return replace(record) if record is not None else None

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
    current = self._jobs.get(job_id)
    if current is None:
      return None
    if expected_statuses is not None and current.status not in expected_statuses:
      return None
    changes: dict[str, Any] = {"updated_at": now_iso()}
    if status is not None:
      changes["status"] = status
    if progress_percent is not None:
      changes["progress_percent"] = max(current.progress_percent, progress_percent)
    if total_units is not None:
      changes["total_units"] = total_units
    if completed_units is not None:
      changes["completed_units"] = completed_units
    if outline is not None:
      changes["outline"] = outline
    if clear_error:
      changes["error_message"] = None
    if error_message is not None:
      changes["error_message"] = error_message
    if completed_at is not None:
      changes["completed_at"] = completed_at
    if artifact_ref is not None:
      changes["artifact_ref"] = artifact_ref
    updated = replace(current, **changes)
    self._jobs[job_id] = updated
    return replace(updated)

  async def count_active_jobs(self, owner_id: str) -> int:
    return sum(1 for job in self._jobs.values() if job.owner_id == owner_id and job.status in ACTIVE_STATUSES)

  async def count_jobs_since(self, owner_id: str, since: str) -> int:
    return sum(1 for job in self._jobs.values() if job.owner_id == owner_id and job.created_at >= since)

  async def list_idle_jobs(self, status: JobStatus, updated_before: str) -> list[JobRecord]:
    matches = [replace(job) for job in self._jobs.values() if job.status == status and job.updated_at < updated_before]
    return sorted(matches, key=lambda job: job.updated_at)

  async def insert_unit(self, record: UnitRecord) -> bool:
    units = self._units.setdefault(record.job_id, {})
    if record.index in units:
      return False
    units[record.index] = record
    return True

  async def list_units(self, job_id: str) -> list[UnitRecord]:
    units = self._units.get(job_id, {})
    return [units[index] for index in sorted(units)]

  async def count_units(self, job_id: str) -> int:
    return len(self._units.get(job_id, {}))

  async def create_artifact(self, record: ArtifactRecord) -> None:
    self._artifacts[record.artifact_id] = record

  async def get_artifact(self, artifact_id: str) -> ArtifactRecord | None:
    return self._artifacts.get(artifact_id)

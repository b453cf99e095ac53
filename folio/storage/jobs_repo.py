"""Storage interfaces for generation jobs, units and artifacts."""

from __future__ import annotations

from collections.abc import Collection
from typing import Any, Protocol

from folio.jobs.models import ArtifactRecord, JobRecord, JobStatus, UnitRecord


class JobsRepository(Protocol):
  """Repository contract for job persistence.

  All mutations are keyed by job id. ``update_job`` behaves as a compare-and-set
  when ``expected_statuses`` is given: the row is only written while its current
  status is one of them, otherwise ``None`` is returned and nothing changes.
  ``progress_percent`` never moves backwards; lower values are ignored.
  """

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

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
    """Apply partial updates to a job."""

  async def count_active_jobs(self, owner_id: str) -> int:
    """Count the owner's jobs in a non-terminal status."""

  async def count_jobs_since(self, owner_id: str, since: str) -> int:
    """Count the owner's jobs created at or after ``since``."""

  async def list_idle_jobs(self, status: JobStatus, updated_before: str) -> list[JobRecord]:
    """Return jobs in ``status`` whose last update is older than ``updated_before``."""

  async def insert_unit(self, record: UnitRecord) -> bool:
    """Persist a unit unless (job_id, index) already exists; return whether it was written."""

  async def list_units(self, job_id: str) -> list[UnitRecord]:
    """Return persisted units ordered by index."""

  async def count_units(self, job_id: str) -> int:
    """Count persisted units for a job."""

  async def create_artifact(self, record: ArtifactRecord) -> None:
    """Persist an assembled artifact."""

  async def get_artifact(self, artifact_id: str) -> ArtifactRecord | None:
    """Fetch an artifact by identifier."""

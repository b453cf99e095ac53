"""Job progress and phase tracking."""

from __future__ import annotations

import logging
from typing import Any

from folio.jobs.models import ACTIVE_STATUSES, JobRecord, JobStatus
from folio.storage.jobs_repo import JobsRepository
from folio.utils.timestamps import now_iso

PLANNING_PROGRESS = 10
OUTLINE_READY_PROGRESS = 20
UNITS_PROGRESS_SPAN = 70
ASSEMBLING_PROGRESS = 95
COMPLETED_PROGRESS = 100

logger = logging.getLogger(__name__)


class JobCancelledError(Exception):
  """Raised when a job left the pipeline's control (cancelled, or finalized elsewhere)."""


def unit_progress(completed_units: int, total_units: int) -> int:
  """Map unit completion onto the 20..90 band of the progress bar."""
  if total_units <= 0:
    return OUTLINE_READY_PROGRESS
  ratio = min(completed_units, total_units) / total_units
  return round(OUTLINE_READY_PROGRESS + ratio * UNITS_PROGRESS_SPAN)


class JobProgressTracker:
  """Write phase transitions for one job, refusing to touch jobs the pipeline no longer owns.

  Every write is a compare-and-set against the active statuses, so a cancel or
  partial-save recorded by the recovery API is never overwritten by a running
  pipeline.
  """

  def __init__(self, job_id: str, jobs_repo: JobsRepository) -> None:
    self.job_id = job_id
    self._jobs_repo = jobs_repo

  async def _update_job(self, **fields: Any) -> JobRecord:
    record = await self._jobs_repo.update_job(self.job_id, expected_statuses=ACTIVE_STATUSES, **fields)
    if record is not None:
      return record
    current = await self._jobs_repo.get_job(self.job_id)
    if current is None:
      raise RuntimeError(f"Job {self.job_id} disappeared during processing.")
    raise JobCancelledError(f"Job {self.job_id} is {current.status}; stopping.")

  async def set_phase(self, status: JobStatus, progress_percent: int, **fields: Any) -> JobRecord:
    logger.info("Job %s -> %s (%d%%)", self.job_id, status, progress_percent)
    return await self._update_job(status=status, progress_percent=progress_percent, **fields)

  async def record_units(self, completed_units: int, total_units: int) -> JobRecord:
    return await self._update_job(completed_units=completed_units, progress_percent=unit_progress(completed_units, total_units))

  async def complete(self, artifact_id: str, completed_units: int) -> JobRecord:
    return await self._update_job(status="completed", progress_percent=COMPLETED_PROGRESS, completed_units=completed_units, artifact_ref=artifact_id, completed_at=now_iso(), clear_error=True)

  async def fail(self, message: str, *, completed_units: int | None = None) -> JobRecord | None:
    """Mark the job failed unless it already left the active statuses."""
    record = await self._jobs_repo.update_job(self.job_id, status="failed", error_message=message, completed_units=completed_units, expected_statuses=ACTIVE_STATUSES)
    if record is None:
      logger.info("Job %s not marked failed; it is no longer active", self.job_id)
    return record

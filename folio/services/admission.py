"""Per-owner admission check run before a job record exists."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from folio.storage.jobs_repo import JobsRepository
from folio.utils.timestamps import start_of_day_iso

logger = logging.getLogger(__name__)


class AdmissionError(RuntimeError):
  """A submission was rejected before any background work started."""

  code = "ADMISSION_REJECTED"


class QuotaExceededError(AdmissionError):
  code = "QUOTA_EXCEEDED"


class ConcurrencyLimitReachedError(AdmissionError):
  code = "CONCURRENCY_LIMIT_REACHED"


@dataclass(frozen=True)
class AdmissionDecision:
  allowed: bool
  active_jobs: int
  jobs_today: int
  reason: str | None = None
  error: type[AdmissionError] | None = None

  def raise_for_rejection(self) -> None:
    if not self.allowed:
      error = self.error or AdmissionError
      raise error(self.reason or "Job submission rejected.")


class AdmissionGate:
  """Bound concurrent non-terminal jobs per owner and the owner's jobs per UTC day (0 disables the daily check)."""

  def __init__(self, jobs_repo: JobsRepository, *, max_concurrent_jobs: int, daily_job_limit: int, clock: Callable[[], datetime] | None = None) -> None:
    self._jobs_repo = jobs_repo
    self._max_concurrent_jobs = max_concurrent_jobs
    self._daily_job_limit = daily_job_limit
    self._clock = clock or (lambda: datetime.now(UTC))

  async def admit(self, owner_id: str) -> AdmissionDecision:
    active_jobs = await self._jobs_repo.count_active_jobs(owner_id)
    jobs_today = await self._jobs_repo.count_jobs_since(owner_id, start_of_day_iso(self._clock()))

    if active_jobs >= self._max_concurrent_jobs:
      logger.info("Rejecting job for owner %s: %d active jobs (limit %d)", owner_id, active_jobs, self._max_concurrent_jobs)
      return AdmissionDecision(allowed=False, active_jobs=active_jobs, jobs_today=jobs_today, reason=f"Concurrency limit reached: {active_jobs} of {self._max_concurrent_jobs} jobs are still running.", error=ConcurrencyLimitReachedError)

    if self._daily_job_limit and jobs_today >= self._daily_job_limit:
      logger.info("Rejecting job for owner %s: daily limit %d reached", owner_id, self._daily_job_limit)
      return AdmissionDecision(allowed=False, active_jobs=active_jobs, jobs_today=jobs_today, reason=f"Daily generation limit of {self._daily_job_limit} reached.", error=QuotaExceededError)

    return AdmissionDecision(allowed=True, active_jobs=active_jobs, jobs_today=jobs_today)

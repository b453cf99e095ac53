"""Stall detection (read-only) and the stalled-job maintenance sweep."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from folio.config import Settings
from folio.jobs.models import JobRecord, JobStatus
from folio.storage.jobs_repo import JobsRepository
from folio.utils.timestamps import now_iso, parse_iso

logger = logging.getLogger(__name__)

RECOVERY_ACTIONS: tuple[str, ...] = ("resume", "cancel", "get_partial", "save_partial")


@dataclass(frozen=True)
class StallBudgets:
  """Seconds a job may sit in each active phase without its updated_at advancing."""

  pending: int = 60
  planning: int = 120
  generating_units: int = 180
  assembling: int = 60

  @classmethod
  def from_settings(cls, settings: Settings) -> StallBudgets:
    return cls(pending=settings.stall_pending_seconds, planning=settings.stall_planning_seconds, generating_units=settings.stall_generating_seconds, assembling=settings.stall_assembling_seconds)

  def by_status(self) -> dict[JobStatus, int]:
    return {"pending": self.pending, "planning": self.planning, "generating_units": self.generating_units, "assembling": self.assembling}

  def budget_for(self, status: JobStatus) -> int | None:
    return self.by_status().get(status)


@dataclass(frozen=True)
class StallReport:
  is_stalled: bool
  idle_seconds: int
  budget_seconds: int | None
  recommended_actions: tuple[str, ...] = ()


def evaluate_stall(job: JobRecord, budgets: StallBudgets, *, now: datetime | None = None) -> StallReport:
  """Judge whether a job is stalled. Never writes anything."""
  moment = now or datetime.now(UTC)
  idle_seconds = max(0, int((moment - parse_iso(job.updated_at)).total_seconds()))
  budget = budgets.budget_for(job.status)
  if budget is None or idle_seconds <= budget:
    return StallReport(is_stalled=False, idle_seconds=idle_seconds, budget_seconds=budget)
  return StallReport(is_stalled=True, idle_seconds=idle_seconds, budget_seconds=budget, recommended_actions=RECOVERY_ACTIONS)


async def fail_stalled_jobs(jobs_repo: JobsRepository, budgets: StallBudgets, *, now: datetime | None = None) -> list[str]:
  """Mark every stalled active job failed; units are kept so the jobs stay resumable."""
  moment = now or datetime.now(UTC)
  failed: list[str] = []
  for status, budget in budgets.by_status().items():
    cutoff = now_iso(moment - timedelta(seconds=budget))
    for job in await jobs_repo.list_idle_jobs(status, cutoff):
      completed = await jobs_repo.count_units(job.job_id)
      message = f"Generation stalled: no progress for more than {budget}s while {status}. Partial content is available; resume to continue."
      # Compare-and-set on the observed status so a job that moved on is left alone.
      updated = await jobs_repo.update_job(job.job_id, status="failed", error_message=message, completed_units=completed, expected_statuses={status})
      if updated is not None:
        failed.append(job.job_id)
        logger.warning("Job %s marked failed after stalling in %s (%d units persisted)", job.job_id, status, completed)
  return failed

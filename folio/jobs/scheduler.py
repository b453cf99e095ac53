"""Batch unit scheduler: bounded fan-out with a barrier between batches."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Literal

from folio.ai.agents.prompts import build_fallback_content
from folio.ai.agents.unit_writer import UnitTask, UnitWriter
from folio.ai.executor import ExecutorError
from folio.ai.pipeline.contracts import GenerationInput, Outline, OutlineUnit
from folio.jobs.models import ACTIVE_STATUSES, UnitRecord, count_words
from folio.jobs.progress import unit_progress
from folio.storage.jobs_repo import JobsRepository
from folio.utils.timestamps import now_iso

logger = logging.getLogger(__name__)

SchedulerStatus = Literal["finished", "stopped", "timed_out"]

_COUNTABLE_STATUSES: frozenset[str] = ACTIVE_STATUSES | {"cancelled"}


@dataclass(frozen=True)
class SchedulerOutcome:
  """How a scheduler run ended and what it wrote."""

  status: SchedulerStatus
  completed_units: int
  total_units: int
  generated_indexes: tuple[int, ...] = ()
  fallback_indexes: tuple[int, ...] = ()
  batches_run: int = 0
  reason: str | None = None


@dataclass(frozen=True)
class _UnitResult:
  index: int
  is_fallback: bool
  inserted: bool


def plan_batches(units: Sequence[OutlineUnit], batch_size: int) -> list[list[OutlineUnit]]:
  """Split units, in index order, into consecutive batches of at most batch_size."""
  if batch_size <= 0:
    raise ValueError("batch_size must be positive.")
  ordered = sorted(units, key=lambda unit: unit.index)
  return [ordered[start : start + batch_size] for start in range(0, len(ordered), batch_size)]


class BatchUnitScheduler:
  """Generate every missing unit of an outline, one batch at a time.

  Units in a batch run concurrently and are checkpointed as soon as each one
  resolves. A unit whose provider calls are exhausted is checkpointed as a
  fallback placeholder. Progress is written only after a whole batch resolves.
  Before each batch the job is re-read: anything but ``generating_units`` (a
  cancel, a partial save) stops the run, and so does the wall-clock deadline.
  """

  def __init__(self, *, jobs_repo: JobsRepository, unit_writer: UnitWriter, batch_size: int, clock: Callable[[], float] = time.monotonic) -> None:
    self._jobs_repo = jobs_repo
    self._unit_writer = unit_writer
    self._batch_size = batch_size
    self._clock = clock

  async def run(self, job_id: str, outline: Outline, request: GenerationInput, *, deadline: float | None = None) -> SchedulerOutcome:
    persisted = {unit.index for unit in await self._jobs_repo.list_units(job_id)}
    batches = plan_batches(outline.missing_units(persisted), self._batch_size)
    total = outline.total_units
    completed = len(persisted)
    generated: list[int] = []
    fallbacks: list[int] = []
    logger.info("Job %s: %d of %d units persisted; scheduling %d batches of up to %d", job_id, completed, total, len(batches), self._batch_size)

    def outcome(status: SchedulerStatus, batches_run: int, reason: str | None = None) -> SchedulerOutcome:
      return SchedulerOutcome(status=status, completed_units=completed, total_units=total, generated_indexes=tuple(generated), fallback_indexes=tuple(fallbacks), batches_run=batches_run, reason=reason)

    for number, batch in enumerate(batches, start=1):
      reason = await self._stop_reason(job_id)
      if reason is not None:
        logger.info("Job %s: stopping before batch %d/%d (%s)", job_id, number, len(batches), reason)
        return outcome("stopped", number - 1, reason)
      if deadline is not None and self._clock() >= deadline:
        logger.warning("Job %s: phase deadline passed before batch %d/%d", job_id, number, len(batches))
        return outcome("timed_out", number - 1, "phase deadline exceeded")

      logger.info("Job %s: batch %d/%d units %s", job_id, number, len(batches), [unit.index for unit in batch])
      async with asyncio.TaskGroup() as group:
        tasks = [group.create_task(self._generate_unit(job_id, request, unit)) for unit in batch]

      for task in tasks:
        result = task.result()
        if result.inserted:
          generated.append(result.index)
          if result.is_fallback:
            fallbacks.append(result.index)

      # Counts are re-read so completed_units always equals the persisted rows.
      # A cancelled job still records them; a job completed by a partial save is never touched.
      completed = await self._jobs_repo.count_units(job_id)
      await self._jobs_repo.update_job(job_id, completed_units=completed, progress_percent=unit_progress(completed, total), expected_statuses=_COUNTABLE_STATUSES)

    return outcome("finished", len(batches))

  async def _stop_reason(self, job_id: str) -> str | None:
    job = await self._jobs_repo.get_job(job_id)
    if job is None:
      return "job no longer exists"
    if job.status != "generating_units":
      return f"job is {job.status}"
    return None

  async def _generate_unit(self, job_id: str, request: GenerationInput, unit: OutlineUnit) -> _UnitResult:
    outcome = await self._unit_writer.run(UnitTask(request=request, unit=unit))
    if isinstance(outcome, ExecutorError):
      logger.warning("Job %s unit %d: providers exhausted, writing fallback unit: %s", job_id, unit.index, outcome.message)
      content = build_fallback_content(unit)
      is_fallback = True
    else:
      content = outcome.text
      is_fallback = False

    record = UnitRecord(job_id=job_id, index=unit.index, title=unit.title, kind=unit.kind, content=content, size=count_words(content), is_fallback=is_fallback, created_at=now_iso())
    inserted = await self._jobs_repo.insert_unit(record)
    if inserted:
      logger.info("Job %s unit %d checkpointed (%d words%s)", job_id, unit.index, record.size, ", fallback" if is_fallback else "")
    return _UnitResult(index=unit.index, is_fallback=is_fallback, inserted=inserted)

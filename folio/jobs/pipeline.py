"""End-to-end generation pipeline for one job: plan, generate units, assemble."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from folio.ai.agents.planner import OutlinePlanner
from folio.ai.agents.prompts import render_manual_unit
from folio.ai.agents.unit_writer import UnitWriter
from folio.ai.executor import RetryFallbackExecutor, RetryPolicy
from folio.ai.pipeline.contracts import GenerationInput, Outline, OutlineUnit, PlanError, clamp_target_size
from folio.ai.router import ModelRegistry, ProviderRoute, resolve_fallback_route, resolve_route
from folio.config import Settings
from folio.jobs.assembler import Assembler
from folio.jobs.models import JobRecord, UnitRecord, count_words
from folio.jobs.progress import ASSEMBLING_PROGRESS, OUTLINE_READY_PROGRESS, PLANNING_PROGRESS, JobCancelledError, JobProgressTracker, unit_progress
from folio.jobs.scheduler import BatchUnitScheduler, SchedulerOutcome
from folio.storage.jobs_repo import JobsRepository
from folio.utils.timestamps import now_iso

logger = logging.getLogger(__name__)


def merge_outlines(fresh: Outline, previous: Outline, persisted: list[UnitRecord]) -> Outline:
  """Combine a replanned outline with checkpoints made under the previous one.

  Persisted indexes keep the previous entry so titles match their content; every
  other index takes the fresh entry. The result covers all persisted indexes.
  """
  by_index = {unit.index: unit for unit in persisted}
  length = max(fresh.total_units, max(by_index, default=-1) + 1)
  units: list[OutlineUnit] = []
  for index in range(length):
    if index in by_index or index >= fresh.total_units:
      if index < previous.total_units:
        entry = previous.units[index]
      else:
        unit = by_index[index]
        entry = OutlineUnit(index=index, title=unit.title, kind=unit.kind, target_size=clamp_target_size(unit.size))
    else:
      entry = fresh.units[index]
    units.append(entry.model_copy(update={"index": index}))
  return Outline(title=fresh.title, units=units, total_estimated_size=fresh.total_estimated_size)


def manual_outline(request: GenerationInput) -> Outline:
  units = [OutlineUnit(index=index, title=unit.title, kind="chapter", target_size=clamp_target_size(count_words(unit.content))) for index, unit in enumerate(request.units)]
  return Outline(title=request.title, units=units)


class GenerationPipeline:
  """Run one job from its current state to a terminal (or handed-off) state.

  Safe to call again on the same job: a stored outline is reused, persisted
  units are skipped, and a job already terminal is left alone.
  """

  def __init__(self, *, jobs_repo: JobsRepository, settings: Settings, executor: RetryFallbackExecutor, clock: Callable[[], float] = time.monotonic) -> None:
    self._jobs_repo = jobs_repo
    self._settings = settings
    self._executor = executor
    self._clock = clock
    self._assembler = Assembler(jobs_repo)

  @classmethod
  def from_settings(cls, jobs_repo: JobsRepository, settings: Settings, registry: ModelRegistry) -> GenerationPipeline:
    """Build a pipeline whose provider clients come from a registry shared across jobs."""
    return cls(jobs_repo=jobs_repo, settings=settings, executor=RetryFallbackExecutor(registry.get_model, RetryPolicy.from_settings(settings)))

  async def run(self, job_id: str, *, regenerate_outline: bool = False) -> JobRecord | None:
    job = await self._jobs_repo.get_job(job_id)
    if job is None:
      logger.warning("Job %s not found; nothing to run", job_id)
      return None
    if job.is_terminal:
      logger.info("Job %s is already %s; skipping", job_id, job.status)
      return job

    tracker = JobProgressTracker(job_id, self._jobs_repo)
    try:
      request = GenerationInput.model_validate(job.request)
      if not request.use_ai:
        return await self._run_manual(job, request, tracker)

      primary = resolve_route(job.model_selector, self._settings)
      fallback = resolve_fallback_route(primary, self._settings)
      outline = await self._resolve_outline(job, request, tracker, primary, fallback, regenerate_outline)
      if outline is None:
        return await self._jobs_repo.get_job(job_id)

      persisted = {unit.index for unit in await self._jobs_repo.list_units(job_id)}
      if not outline.missing_units(persisted):
        logger.info("Job %s: all %d units already persisted; assembling", job_id, outline.total_units)
        return await self._assemble(job_id, tracker, total_units=outline.total_units, outline=outline.model_dump(mode="json"))

      job = await tracker.set_phase("generating_units", max(OUTLINE_READY_PROGRESS, unit_progress(0, outline.total_units)), total_units=outline.total_units, outline=outline.model_dump(mode="json"))
      outcome = await self._generate_units(job, outline, request, primary, fallback)
      if outcome.status == "stopped":
        return await self._jobs_repo.get_job(job_id)
      if outcome.status == "timed_out":
        message = f"Timeout: generation exceeded {self._settings.phase_timeout_seconds:.0f}s with {outcome.completed_units} of {outcome.total_units} units persisted. Partial content is available."
        await tracker.fail(message, completed_units=outcome.completed_units)
        return await self._jobs_repo.get_job(job_id)
      return await self._assemble(job_id, tracker)
    except JobCancelledError as exc:
      logger.info("%s", exc)
      return await self._jobs_repo.get_job(job_id)
    except ValidationError:
      logger.error("Job %s has an invalid stored request", job_id, exc_info=True)
      await tracker.fail("Invalid job request.")
      return await self._jobs_repo.get_job(job_id)
    except Exception:
      logger.error("Job %s failed unexpectedly", job_id, exc_info=True)
      await tracker.fail("Unexpected error during generation. Partial content is preserved.", completed_units=await self._jobs_repo.count_units(job_id))
      return await self._jobs_repo.get_job(job_id)

  async def _resolve_outline(self, job: JobRecord, request: GenerationInput, tracker: JobProgressTracker, primary: ProviderRoute, fallback: ProviderRoute | None, regenerate_outline: bool) -> Outline | None:
    previous = Outline.model_validate(job.outline) if job.outline else None
    if previous is not None and not regenerate_outline:
      return previous

    await tracker.set_phase("planning", PLANNING_PROGRESS)
    planner = OutlinePlanner(executor=self._executor, primary=primary, fallback=fallback, max_units=self._settings.max_units)
    result = await planner.plan(request)
    if isinstance(result, PlanError):
      await tracker.fail(f"Planning failed: {result.message}")
      return None
    if previous is not None:
      result = merge_outlines(result, previous, await self._jobs_repo.list_units(job.job_id))
    return result

  async def _generate_units(self, job: JobRecord, outline: Outline, request: GenerationInput, primary: ProviderRoute, fallback: ProviderRoute | None) -> SchedulerOutcome:
    writer = UnitWriter(executor=self._executor, primary=primary, fallback=fallback)
    scheduler = BatchUnitScheduler(jobs_repo=self._jobs_repo, unit_writer=writer, batch_size=self._settings.batch_size, clock=self._clock)
    ceiling = self._settings.phase_timeout_seconds
    try:
      # The deadline is checked between batches; the timeout bounds a batch that hangs.
      async with asyncio.timeout(ceiling):
        return await scheduler.run(job.job_id, outline, request, deadline=self._clock() + ceiling)
    except TimeoutError:
      completed = await self._jobs_repo.count_units(job.job_id)
      logger.warning("Job %s: phase ceiling of %.0fs reached mid-batch", job.job_id, ceiling)
      return SchedulerOutcome(status="timed_out", completed_units=completed, total_units=outline.total_units, reason="phase ceiling reached mid-batch")

  async def _run_manual(self, job: JobRecord, request: GenerationInput, tracker: JobProgressTracker) -> JobRecord | None:
    outline = manual_outline(request)
    await tracker.set_phase("generating_units", OUTLINE_READY_PROGRESS, total_units=outline.total_units, outline=outline.model_dump(mode="json"))
    for planned, supplied in zip(outline.units, request.units, strict=True):
      content = render_manual_unit(supplied.title, supplied.content)
      await self._jobs_repo.insert_unit(UnitRecord(job_id=job.job_id, index=planned.index, title=planned.title, kind=planned.kind, content=content, size=count_words(content), is_fallback=False, created_at=now_iso()))
    completed = await self._jobs_repo.count_units(job.job_id)
    await tracker.record_units(completed, outline.total_units)
    return await self._assemble(job.job_id, tracker)

  async def _assemble(self, job_id: str, tracker: JobProgressTracker, **fields: Any) -> JobRecord:
    job = await tracker.set_phase("assembling", ASSEMBLING_PROGRESS, **fields)
    document = await self._assembler.assemble(job, partial=False, persist=True)
    if document.artifact is None:
      raise RuntimeError(f"Final artifact for job {job_id} was not persisted.")
    record = await tracker.complete(document.artifact.artifact_id, len(document.units))
    logger.info("Job %s completed: %d units, %d words", job_id, len(document.units), document.word_count)
    return record

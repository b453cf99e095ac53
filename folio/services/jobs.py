"""Job submission, status and recovery operations behind the HTTP routes."""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from folio.ai.pipeline.contracts import Outline
from folio.api.models import ArtifactResponse, JobCreateRequest, JobCreateResponse, JobResumeRequest, JobStatusResponse, PartialContentResponse, PartialUnit, StallResponse, StallSweepResponse
from folio.config import Settings
from folio.jobs.assembler import Assembler
from folio.jobs.models import ACTIVE_STATUSES, JobRecord, JobStatus
from folio.jobs.progress import COMPLETED_PROGRESS
from folio.jobs.stall import StallBudgets, evaluate_stall, fail_stalled_jobs
from folio.jobs.worker import JobWorker
from folio.services.admission import AdmissionError, AdmissionGate
from folio.storage.jobs_repo import JobsRepository
from folio.utils.ids import generate_job_id
from folio.utils.timestamps import now_iso

logger = logging.getLogger(__name__)

_JOB_NOT_FOUND_MSG = "Job not found."
_NO_CONTENT_MSG = "No content generated yet."
# Partial content shorter than this is treated as empty by clients.
_MIN_CONTENT_CHARS = 100


def _job_status_from_record(record: JobRecord, settings: Settings) -> JobStatusResponse:
  """Convert a persisted job record into an API response payload."""
  stall = None
  if not record.is_terminal:
    report = evaluate_stall(record, StallBudgets.from_settings(settings))
    stall = StallResponse(is_stalled=report.is_stalled, idle_seconds=report.idle_seconds, budget_seconds=report.budget_seconds, recommended_actions=list(report.recommended_actions))
  return JobStatusResponse(
    job_id=record.job_id,
    status=record.status,
    progress_percent=record.progress_percent,
    completed_units=record.completed_units,
    total_units=record.total_units,
    error_message=record.error_message,
    artifact_ref=record.artifact_ref,
    created_at=record.created_at,
    updated_at=record.updated_at,
    completed_at=record.completed_at,
    stall=stall,
  )


async def _get_owned_job(repo: JobsRepository, job_id: str, owner_id: str) -> JobRecord:
  record = await repo.get_job(job_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND_MSG)
  if record.owner_id != owner_id:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied.")
  return record


async def create_job(payload: JobCreateRequest, settings: Settings, repo: JobsRepository, worker: JobWorker, *, owner_id: str) -> JobCreateResponse:
  """Admit, persist and queue a generation job."""
  gate = AdmissionGate(repo, max_concurrent_jobs=settings.max_concurrent_jobs, daily_job_limit=settings.daily_job_limit)
  decision = await gate.admit(owner_id)
  try:
    decision.raise_for_rejection()
  except AdmissionError as exc:
    raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail={"error": exc.code, "message": str(exc)}) from exc

  request = payload.effective_input()
  timestamp = now_iso()
  record = JobRecord(
    job_id=generate_job_id(),
    owner_id=owner_id,
    request=request.model_dump(mode="json"),
    model_selector=payload.model_selector or settings.default_model,
    status="pending",
    created_at=timestamp,
    updated_at=timestamp,
  )
  await repo.create_job(record)
  worker.submit(record.job_id)
  logger.info("Job %s created for owner %s (model=%s, use_ai=%s)", record.job_id, owner_id, record.model_selector, request.use_ai)
  return JobCreateResponse(job_id=record.job_id)


async def get_job_status(job_id: str, settings: Settings, repo: JobsRepository, *, owner_id: str) -> JobStatusResponse:
  """Fetch the status of a job, including its stall assessment while active."""
  record = await _get_owned_job(repo, job_id, owner_id)
  return _job_status_from_record(record, settings)


async def resume_job(job_id: str, payload: JobResumeRequest, settings: Settings, repo: JobsRepository, worker: JobWorker, *, owner_id: str) -> JobStatusResponse:
  """Re-enter an interrupted job; only missing units are generated."""
  record = await _get_owned_job(repo, job_id, owner_id)

  if record.status == "completed":
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Completed jobs cannot be resumed.")

  if worker.is_active(job_id):
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Job is already running.")

  if record.status in ACTIVE_STATUSES:
    report = evaluate_stall(record, StallBudgets.from_settings(settings))
    if not report.is_stalled:
      raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Job is still running; resume is allowed once it fails, is cancelled or stalls.")

  # A stored outline is reused unless the caller asked for a new plan.
  next_status: JobStatus = "pending"
  if record.outline and not payload.regenerate_outline:
    persisted = {unit.index for unit in await repo.list_units(job_id)}
    next_status = "generating_units" if Outline.model_validate(record.outline).missing_units(persisted) else "assembling"
  updated = await repo.update_job(job_id, status=next_status, clear_error=True, expected_statuses={record.status})
  if updated is None:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Job changed state; try again.")

  worker.submit(job_id, regenerate_outline=payload.regenerate_outline)
  logger.info("Job %s resumed from %s (regenerate_outline=%s)", job_id, record.status, payload.regenerate_outline)
  return _job_status_from_record(updated, settings)


async def cancel_job(job_id: str, settings: Settings, repo: JobsRepository, *, owner_id: str) -> JobStatusResponse:
  """Cancel a non-terminal job; the running pipeline stops before its next batch."""
  record = await _get_owned_job(repo, job_id, owner_id)
  if record.is_terminal:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Job is already {record.status}.")

  updated = await repo.update_job(job_id, status="cancelled", expected_statuses=ACTIVE_STATUSES)
  if updated is None:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Job finished before it could be cancelled.")

  logger.info("Job %s cancelled while %s", job_id, record.status)
  return _job_status_from_record(updated, settings)


async def get_partial(job_id: str, repo: JobsRepository, *, owner_id: str) -> PartialContentResponse:
  """Assemble the persisted units without writing an artifact."""
  record = await _get_owned_job(repo, job_id, owner_id)
  document = await Assembler(repo).assemble(record, partial=True, persist=False)
  if not document.units:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NO_CONTENT_MSG)

  units = [PartialUnit(index=unit.index, title=unit.title, kind=unit.kind, size=unit.size, is_fallback=unit.is_fallback) for unit in document.units]
  return PartialContentResponse(
    job_id=job_id,
    title=document.title,
    content=document.content,
    has_content=document.body_chars > _MIN_CONTENT_CHARS,
    word_count=document.word_count,
    unit_count=len(units),
    total_units=max(record.total_units, len(units)),
    units=units,
  )


async def save_partial(job_id: str, repo: JobsRepository, *, owner_id: str) -> ArtifactResponse:
  """Persist a partial artifact and close the job as completed."""
  record = await _get_owned_job(repo, job_id, owner_id)
  if record.status == "completed":
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Job is already completed.")
  if await repo.count_units(job_id) == 0:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NO_CONTENT_MSG)

  document = await Assembler(repo).assemble(record, partial=True, persist=True)
  artifact = document.artifact
  if artifact is None:
    raise RuntimeError(f"Partial artifact for job {job_id} was not persisted.")
  updated = await repo.update_job(job_id, status="completed", progress_percent=COMPLETED_PROGRESS, completed_units=len(document.units), artifact_ref=artifact.artifact_id, completed_at=now_iso(), expected_statuses={record.status})
  if updated is None:
    logger.warning("Job %s changed state while saving partial artifact %s", job_id, artifact.artifact_id)
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Job changed state; try again.")

  logger.info("Job %s completed from partial content (%d units)", job_id, len(document.units))
  return ArtifactResponse(artifact_id=artifact.artifact_id, job_id=job_id, title=artifact.title, content=artifact.content, is_partial=True, created_at=artifact.created_at)


async def get_artifact(job_id: str, repo: JobsRepository, *, owner_id: str) -> ArtifactResponse:
  """Return the artifact a job finished with."""
  record = await _get_owned_job(repo, job_id, owner_id)
  artifact = await repo.get_artifact(record.artifact_ref) if record.artifact_ref else None
  if artifact is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Artifact not available.")
  return ArtifactResponse(artifact_id=artifact.artifact_id, job_id=artifact.job_id, title=artifact.title, content=artifact.content, is_partial=artifact.is_partial, created_at=artifact.created_at)


async def fail_stalled(settings: Settings, repo: JobsRepository) -> StallSweepResponse:
  """Mark stalled jobs failed so clients see a resumable terminal state."""
  failed = await fail_stalled_jobs(repo, StallBudgets.from_settings(settings))
  if failed:
    logger.info("Stall sweep failed %d jobs", len(failed))
  return StallSweepResponse(failed_job_ids=failed)

import logging

from fastapi import APIRouter, Depends

from folio.api.deps import get_jobs_repository, get_owner_id, get_worker
from folio.api.models import ArtifactResponse, JobCreateRequest, JobCreateResponse, JobResumeRequest, JobStatusResponse, PartialContentResponse
from folio.config import Settings, get_settings
from folio.jobs.worker import JobWorker
from folio.services import jobs as job_service
from folio.storage.jobs_repo import JobsRepository

router = APIRouter()
logger = logging.getLogger("folio.api.routes.jobs")


@router.post("", response_model=JobCreateResponse)
async def create_job(  # noqa: B008
  payload: JobCreateRequest,
  settings: Settings = Depends(get_settings),  # noqa: B008
  repo: JobsRepository = Depends(get_jobs_repository),  # noqa: B008
  worker: JobWorker = Depends(get_worker),  # noqa: B008
  owner_id: str = Depends(get_owner_id),  # noqa: B008
) -> JobCreateResponse:
  """Create a background generation job."""
  return await job_service.create_job(payload, settings, repo, worker, owner_id=owner_id)


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
  repo: JobsRepository = Depends(get_jobs_repository),  # noqa: B008
  owner_id: str = Depends(get_owner_id),  # noqa: B008
) -> JobStatusResponse:
  """Fetch the status and stall assessment of a background job."""
  return await job_service.get_job_status(job_id, settings, repo, owner_id=owner_id)


@router.post("/{job_id}/resume", response_model=JobStatusResponse)
async def resume_job(  # noqa: B008
  job_id: str,
  payload: JobResumeRequest | None = None,
  settings: Settings = Depends(get_settings),  # noqa: B008
  repo: JobsRepository = Depends(get_jobs_repository),  # noqa: B008
  worker: JobWorker = Depends(get_worker),  # noqa: B008
  owner_id: str = Depends(get_owner_id),  # noqa: B008
) -> JobStatusResponse:
  """Resume a failed, cancelled or stalled job from its checkpoints."""
  return await job_service.resume_job(job_id, payload or JobResumeRequest(), settings, repo, worker, owner_id=owner_id)


@router.post("/{job_id}/cancel", response_model=JobStatusResponse)
async def cancel_job(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
  repo: JobsRepository = Depends(get_jobs_repository),  # noqa: B008
  owner_id: str = Depends(get_owner_id),  # noqa: B008
) -> JobStatusResponse:
  """Request cancellation of a running background job."""
  return await job_service.cancel_job(job_id, settings, repo, owner_id=owner_id)


@router.get("/{job_id}/partial", response_model=PartialContentResponse)
async def get_partial(  # noqa: B008
  job_id: str,
  repo: JobsRepository = Depends(get_jobs_repository),  # noqa: B008
  owner_id: str = Depends(get_owner_id),  # noqa: B008
) -> PartialContentResponse:
  """Preview whatever content has been generated so far."""
  return await job_service.get_partial(job_id, repo, owner_id=owner_id)


@router.post("/{job_id}/partial", response_model=ArtifactResponse)
async def save_partial(  # noqa: B008
  job_id: str,
  repo: JobsRepository = Depends(get_jobs_repository),  # noqa: B008
  owner_id: str = Depends(get_owner_id),  # noqa: B008
) -> ArtifactResponse:
  """Save the generated content as a partial artifact and complete the job."""
  return await job_service.save_partial(job_id, repo, owner_id=owner_id)


@router.get("/{job_id}/artifact", response_model=ArtifactResponse)
async def get_artifact(  # noqa: B008
  job_id: str,
  repo: JobsRepository = Depends(get_jobs_repository),  # noqa: B008
  owner_id: str = Depends(get_owner_id),  # noqa: B008
) -> ArtifactResponse:
  """Fetch the artifact of a completed job."""
  return await job_service.get_artifact(job_id, repo, owner_id=owner_id)

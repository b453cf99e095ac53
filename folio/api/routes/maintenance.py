from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, status

from folio.api.deps import get_jobs_repository
from folio.api.models import StallSweepResponse
from folio.config import Settings, get_settings
from folio.services import jobs as job_service
from folio.storage.jobs_repo import JobsRepository

router = APIRouter(prefix="/maintenance", tags=["maintenance"])
logger = logging.getLogger(__name__)


@router.post("/fail-stalled", response_model=StallSweepResponse)
async def fail_stalled(settings: Annotated[Settings, Depends(get_settings)], repo: Annotated[JobsRepository, Depends(get_jobs_repository)], x_folio_task_secret: str | None = Header(default=None)) -> StallSweepResponse:
  """
  Handler for scheduled maintenance (cron or Cloud Scheduler).
  Marks jobs that stopped making progress as failed so their owners can resume them.
  """
  # Internal endpoints stay closed until a secret is configured.
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  if not secrets.compare_digest((x_folio_task_secret or ""), settings.task_secret):
    logger.warning("Unauthorized access attempt to /maintenance/fail-stalled")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")

  return await job_service.fail_stalled(settings, repo)

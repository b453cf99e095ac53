"""Shared FastAPI dependencies for owner identity, storage and the worker."""

from __future__ import annotations

import logging

from fastapi import Depends, Header, HTTPException, Request, status

from folio.config import Settings, get_settings
from folio.jobs.worker import JobWorker
from folio.storage.factory import get_jobs_repo
from folio.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


async def get_owner_id(x_owner_id: str | None = Header(default=None)) -> str:
  """Resolve the calling owner from the trusted X-Owner-Id header."""
  owner_id = (x_owner_id or "").strip()
  if not owner_id:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Owner-Id header.")
  return owner_id


async def get_jobs_repository(settings: Settings = Depends(get_settings)) -> JobsRepository:  # noqa: B008
  """Dependency to get the jobs repository."""
  return get_jobs_repo(settings)


async def get_worker(request: Request) -> JobWorker:
  """Return the background worker started by the application lifespan."""
  worker = getattr(request.app.state, "worker", None)
  if worker is None:
    logger.error("Job worker is not running; was the lifespan skipped?")
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Job worker unavailable.")
  return worker

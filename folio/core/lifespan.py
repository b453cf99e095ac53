import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from folio.ai.router import ModelRegistry
from folio.core.database import dispose_engine
from folio.core.logging import _initialize_logging
from folio.jobs.pipeline import GenerationPipeline
from folio.jobs.worker import JobWorker
from folio.storage.factory import get_jobs_repo


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and run the background job worker for the lifetime of the app."""
  from folio.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("folio.core.lifespan")

  _initialize_logging(settings)
  logger.info("Startup complete - logging verified.")

  repo = get_jobs_repo(settings)
  # Provider clients are shared by every job and closed on shutdown.
  registry = ModelRegistry(settings)
  worker = JobWorker(lambda: GenerationPipeline.from_settings(repo, settings, registry), concurrency=settings.worker_concurrency)
  worker.start()
  app.state.worker = worker

  try:
    yield
  finally:
    # Jobs interrupted here keep their checkpoints and surface as stalled.
    await worker.stop()
    app.state.worker = None
    await registry.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")

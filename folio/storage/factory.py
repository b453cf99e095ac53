from __future__ import annotations

import logging

from folio.config import Settings
from folio.storage.jobs_repo import JobsRepository
from folio.storage.memory_jobs_repo import InMemoryJobsRepository
from folio.storage.postgres_jobs_repo import PostgresJobsRepository

logger = logging.getLogger(__name__)

_repo: JobsRepository | None = None


def get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the process-wide jobs repository, Postgres when a DSN is configured."""
  global _repo
  if _repo is None:
    if settings.pg_dsn:
      _repo = PostgresJobsRepository()
    else:
      logger.warning("FOLIO_PG_DSN is not set; using the in-memory jobs repository. Jobs will not survive a restart.")
      _repo = InMemoryJobsRepository()
  return _repo


def reset_jobs_repo() -> None:
  """Drop the cached repository so the next call re-reads settings."""
  global _repo
  _repo = None

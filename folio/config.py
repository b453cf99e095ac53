"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from folio.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_DEFAULT_ORIGINS = "http://localhost:3000,http://localhost:5173"


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Folio service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  default_model: str
  batch_size: int
  max_attempts: int
  retry_base_delay_seconds: float
  retry_max_delay_seconds: float
  provider_timeout_seconds: float | None
  phase_timeout_seconds: float
  max_units: int
  max_concurrent_jobs: int
  daily_job_limit: int
  worker_concurrency: int
  stall_pending_seconds: int
  stall_planning_seconds: int
  stall_generating_seconds: int
  stall_assembling_seconds: int
  task_secret: str | None
  openai_api_key: str | None
  openrouter_api_key: str | None
  openrouter_referer: str | None
  openrouter_title: str | None
  gemini_api_key: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  origins = [origin.strip() for origin in (raw or _DEFAULT_ORIGINS).split(",") if origin.strip()]

  if not origins:
    raise ValueError("FOLIO_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("FOLIO_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  cleaned = raw.strip()
  return cleaned or None


def _parse_optional_float(raw: str | None) -> float | None:
  cleaned = _optional_str(raw)
  if cleaned is None:
    return None
  return float(cleaned)


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _non_negative_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value < 0:
    raise ValueError(f"{name} must be zero or a positive integer.")
  return value


def _resolve_pg_dsn() -> str | None:
  return _optional_str(os.getenv("FOLIO_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("FOLIO_ENV", "development").lower()

  # Toggle verbose SQL echo and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("FOLIO_DEBUG"))

  log_max_bytes = _positive_int("FOLIO_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = _non_negative_int("FOLIO_LOG_BACKUP_COUNT", "10")

  # Batch size is the only fan-out bound inside a job.
  batch_size = _positive_int("FOLIO_BATCH_SIZE", "2")
  max_attempts = _positive_int("FOLIO_MAX_ATTEMPTS", "4")

  retry_base_delay_seconds = float(os.getenv("FOLIO_RETRY_BASE_DELAY_SECONDS", "1.0"))
  if retry_base_delay_seconds < 0:
    raise ValueError("FOLIO_RETRY_BASE_DELAY_SECONDS must not be negative.")

  retry_max_delay_seconds = float(os.getenv("FOLIO_RETRY_MAX_DELAY_SECONDS", "30"))
  if retry_max_delay_seconds < retry_base_delay_seconds:
    raise ValueError("FOLIO_RETRY_MAX_DELAY_SECONDS must be at least the base delay.")

  provider_timeout_seconds = _parse_optional_float(os.getenv("FOLIO_PROVIDER_TIMEOUT_SECONDS", "120"))
  if provider_timeout_seconds is not None and provider_timeout_seconds <= 0:
    raise ValueError("FOLIO_PROVIDER_TIMEOUT_SECONDS must be positive when set.")

  phase_timeout_seconds = float(os.getenv("FOLIO_PHASE_TIMEOUT_SECONDS", "300"))
  if phase_timeout_seconds <= 0:
    raise ValueError("FOLIO_PHASE_TIMEOUT_SECONDS must be positive.")

  # 0 disables the daily quota; concurrency is always bounded.
  max_concurrent_jobs = _positive_int("FOLIO_MAX_CONCURRENT_JOBS", "2")
  daily_job_limit = _non_negative_int("FOLIO_DAILY_JOB_LIMIT", "10")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("FOLIO_ALLOWED_ORIGINS")),
    log_dir=(os.getenv("FOLIO_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("FOLIO_LOG_HTTP_4XX")),
    pg_dsn=_resolve_pg_dsn(),
    pg_connect_timeout=_positive_int("FOLIO_PG_CONNECT_TIMEOUT", "10"),
    default_model=(os.getenv("FOLIO_DEFAULT_MODEL") or "gpt-4o-mini").strip(),
    batch_size=batch_size,
    max_attempts=max_attempts,
    retry_base_delay_seconds=retry_base_delay_seconds,
    retry_max_delay_seconds=retry_max_delay_seconds,
    provider_timeout_seconds=provider_timeout_seconds,
    phase_timeout_seconds=phase_timeout_seconds,
    max_units=_positive_int("FOLIO_MAX_UNITS", "24"),
    max_concurrent_jobs=max_concurrent_jobs,
    daily_job_limit=daily_job_limit,
    worker_concurrency=_positive_int("FOLIO_WORKER_CONCURRENCY", "4"),
    stall_pending_seconds=_positive_int("FOLIO_STALL_PENDING_SECONDS", "60"),
    stall_planning_seconds=_positive_int("FOLIO_STALL_PLANNING_SECONDS", "120"),
    stall_generating_seconds=_positive_int("FOLIO_STALL_GENERATING_SECONDS", "180"),
    stall_assembling_seconds=_positive_int("FOLIO_STALL_ASSEMBLING_SECONDS", "60"),
    task_secret=_optional_str(os.getenv("FOLIO_TASK_SECRET")),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    openrouter_api_key=_optional_str(os.getenv("OPENROUTER_API_KEY")),
    openrouter_referer=_optional_str(os.getenv("OPENROUTER_HTTP_REFERER")),
    openrouter_title=_optional_str(os.getenv("OPENROUTER_TITLE")),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load only the settings needed to open a database connection."""

  return DatabaseSettings(debug=_parse_bool(os.getenv("FOLIO_DEBUG")), pg_dsn=_resolve_pg_dsn(), pg_connect_timeout=_positive_int("FOLIO_PG_CONNECT_TIMEOUT", "10"))

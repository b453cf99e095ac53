"""Shared fixtures: deterministic settings, an in-memory store and scripted models."""

from __future__ import annotations

import os

# Tests never talk to Postgres or real providers.
for _key in ("FOLIO_PG_DSN", "DATABASE_URL", "OPENAI_API_KEY", "OPENROUTER_API_KEY", "GEMINI_API_KEY", "FOLIO_USE_DUMMY_OUTLINE_RESPONSE", "FOLIO_USE_DUMMY_UNIT_RESPONSE"):
  os.environ[_key] = ""

import asyncio  # noqa: E402
import json  # noqa: E402
from collections.abc import Awaitable, Callable  # noqa: E402
from dataclasses import replace  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402

from folio.ai.executor import RetryFallbackExecutor, RetryPolicy  # noqa: E402
from folio.ai.providers.base import AIModel, SimpleModelResponse  # noqa: E402
from folio.config import Settings, get_settings  # noqa: E402
from folio.jobs.models import JobRecord  # noqa: E402
from folio.storage.memory_jobs_repo import InMemoryJobsRepository  # noqa: E402

Behavior = Callable[[str], Awaitable[str]]


class ScriptedModel(AIModel):
  """Model double driven by a coroutine that receives each prompt."""

  provider = "fake"

  def __init__(self, behavior: Behavior, name: str = "fake-model") -> None:
    self.name = name
    self._behavior = behavior
    self.prompts: list[str] = []

  async def generate(self, prompt: str) -> SimpleModelResponse:
    self.prompts.append(prompt)
    return SimpleModelResponse(content=await self._behavior(prompt), usage={"prompt_tokens": 1, "completion_tokens": 1})


def outline_json(titles: list[str]) -> str:
  chapters = []
  for position, title in enumerate(titles):
    kind = "intro" if position == 0 else "conclusion" if position == len(titles) - 1 else "chapter"
    chapters.append({"type": kind, "title": title, "summary": f"About {title}", "target_words": 1200})
  return json.dumps({"title": "Test Book", "chapters": chapters})


def unit_title(prompt: str) -> str:
  """Pull the unit title back out of a unit prompt."""
  return prompt.split('titled "', 1)[1].split('"', 1)[0]


def is_outline_prompt(prompt: str) -> bool:
  return prompt.startswith("Create a ")


async def no_sleep(_: float) -> None:
  await asyncio.sleep(0)


def make_executor(model: AIModel, *, max_attempts: int = 2) -> RetryFallbackExecutor:
  return RetryFallbackExecutor(lambda route: model, RetryPolicy(max_attempts=max_attempts, base_delay_seconds=0.0, max_delay_seconds=0.0), sleep=no_sleep)


def make_job(job_id: str = "job-1", *, owner_id: str = "owner-1", status: str = "pending", request: dict[str, Any] | None = None, **fields: Any) -> JobRecord:
  payload = request or {"prompt": "Practical composting", "title": "Test Book", "author": "Ada"}
  return JobRecord(
    job_id=job_id,
    owner_id=owner_id,
    request=payload,
    model_selector="gpt-4o-mini",
    status=status,  # type: ignore[arg-type]
    created_at=fields.pop("created_at", "2026-01-01T00:00:00Z"),
    updated_at=fields.pop("updated_at", "2026-01-01T00:00:00Z"),
    **fields,
  )


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def settings() -> Settings:
  return replace(
    get_settings(),
    pg_dsn=None,
    openai_api_key="sk-test",
    openrouter_api_key=None,
    gemini_api_key=None,
    task_secret="task-secret",
    retry_base_delay_seconds=0.0,
    retry_max_delay_seconds=0.0,
    provider_timeout_seconds=None,
    max_attempts=2,
    batch_size=2,
    max_concurrent_jobs=2,
    daily_job_limit=10,
    phase_timeout_seconds=30.0,
  )


@pytest.fixture
def repo() -> InMemoryJobsRepository:
  return InMemoryJobsRepository()

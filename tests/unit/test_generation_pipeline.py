from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from conftest import ScriptedModel, is_outline_prompt, make_executor, make_job, no_sleep, outline_json, unit_title
from folio.ai.agents.prompts import FALLBACK_MARKER
from folio.ai.errors import ProviderCallError
from folio.ai.executor import RetryFallbackExecutor, RetryPolicy
from folio.ai.pipeline.contracts import Outline, OutlineUnit
from folio.ai.router import ModelRegistry, ProviderName
from folio.jobs.assembler import Assembler
from folio.jobs.models import UnitRecord
from folio.jobs.pipeline import GenerationPipeline, merge_outlines
from folio.storage.memory_jobs_repo import InMemoryJobsRepository


class RecordingRepo(InMemoryJobsRepository):
  """Remembers every progress value a job passed through."""

  def __init__(self) -> None:
    super().__init__()
    self.progress: list[int] = []
    self.statuses: list[str] = []

  async def update_job(self, job_id, **kwargs):
    record = await super().update_job(job_id, **kwargs)
    if record is not None:
      self.progress.append(record.progress_percent)
      self.statuses.append(record.status)
    return record


def book_model(titles: list[str]) -> ScriptedModel:
  async def reply(prompt: str) -> str:
    if is_outline_prompt(prompt):
      return outline_json(titles)
    return f"## {unit_title(prompt)}\n\nGenerated text for {unit_title(prompt)}."

  return ScriptedModel(reply)


def routed_executor(models: dict[ProviderName, ScriptedModel], *, max_attempts: int = 2) -> RetryFallbackExecutor:
  return RetryFallbackExecutor(lambda route: models[route.provider], RetryPolicy(max_attempts=max_attempts, base_delay_seconds=0.0, max_delay_seconds=0.0), sleep=no_sleep)


def stored_outline(titles: list[str]) -> dict:
  return Outline(title="Test Book", units=[OutlineUnit(index=index, title=title) for index, title in enumerate(titles)]).model_dump(mode="json")


def unit_record(index: int, title: str, content: str = "kept") -> UnitRecord:
  return UnitRecord(job_id="job-1", index=index, title=title, kind="chapter", content=content, size=1, is_fallback=False, created_at="2026-01-01T00:00:00Z")


@pytest.mark.anyio
async def test_full_run_completes_with_monotonic_progress(settings) -> None:
  repo = RecordingRepo()
  await repo.create_job(make_job())
  model = book_model(["Intro", "Middle", "End"])

  job = await GenerationPipeline(jobs_repo=repo, settings=settings, executor=make_executor(model)).run("job-1")

  assert job.status == "completed"
  assert job.progress_percent == 100
  assert job.total_units == 3
  assert job.completed_units == 3
  assert job.completed_at is not None
  assert repo.progress == sorted(repo.progress)
  assert {10, 20, 95, 100} <= set(repo.progress)
  artifact = await repo.get_artifact(job.artifact_ref)
  assert artifact.is_partial is False
  assert artifact.content.startswith("# Test Book\n\n*By Ada*")
  assert "1. Intro\n2. Middle\n3. End" in artifact.content
  assert artifact.content.index("## Intro") < artifact.content.index("## Middle") < artifact.content.index("## End")
  assert sum(1 for prompt in model.prompts if is_outline_prompt(prompt)) == 1


@pytest.mark.anyio
async def test_plan_error_fails_the_job(settings, repo) -> None:
  await repo.create_job(make_job())

  async def nonsense(prompt: str) -> str:
    return "I would rather write a poem."

  job = await GenerationPipeline(jobs_repo=repo, settings=settings, executor=make_executor(ScriptedModel(nonsense))).run("job-1")

  assert job.status == "failed"
  assert job.error_message.startswith("Planning failed:")
  assert await repo.count_units("job-1") == 0


@pytest.mark.anyio
async def test_phase_ceiling_fails_with_timeout_and_keeps_units(settings, repo) -> None:
  await repo.create_job(make_job())

  async def slow(prompt: str) -> str:
    if is_outline_prompt(prompt):
      return outline_json(["Intro", "Middle", "End"])
    if unit_title(prompt) == "Intro":
      return "## Intro\n\nquick"
    await asyncio.sleep(5)
    return "too late"

  pipeline = GenerationPipeline(jobs_repo=repo, settings=replace(settings, phase_timeout_seconds=0.2), executor=make_executor(ScriptedModel(slow)))
  job = await pipeline.run("job-1")

  assert job.status == "failed"
  assert job.error_message.startswith("Timeout:")
  assert [unit.title for unit in await repo.list_units("job-1")] == ["Intro"]
  assert job.completed_units == 1


@pytest.mark.anyio
async def test_resume_reuses_stored_outline(settings, repo) -> None:
  await repo.create_job(make_job(status="generating_units", outline=stored_outline(["Intro", "Middle", "End"]), total_units=3))
  kept = unit_record(1, "Middle", "## Middle\n\noriginal")
  await repo.insert_unit(kept)
  model = book_model(["Should", "Not", "Plan"])

  job = await GenerationPipeline(jobs_repo=repo, settings=settings, executor=make_executor(model)).run("job-1")

  assert job.status == "completed"
  assert not any(is_outline_prompt(prompt) for prompt in model.prompts)
  assert sorted(unit_title(prompt) for prompt in model.prompts) == ["End", "Intro"]
  units = await repo.list_units("job-1")
  assert units[1] == kept


@pytest.mark.anyio
async def test_regenerate_outline_keeps_persisted_units(settings, repo) -> None:
  await repo.create_job(make_job(status="pending", outline=stored_outline(["A", "B", "C"]), total_units=3))
  kept = unit_record(0, "A", "## A\n\noriginal")
  await repo.insert_unit(kept)
  model = book_model(["X", "Y"])

  job = await GenerationPipeline(jobs_repo=repo, settings=settings, executor=make_executor(model)).run("job-1", regenerate_outline=True)

  assert job.status == "completed"
  assert job.total_units == 2
  assert [unit["title"] for unit in job.outline["units"]] == ["A", "Y"]
  units = await repo.list_units("job-1")
  assert units[0] == kept
  assert units[1].title == "Y"
  assert [unit_title(prompt) for prompt in model.prompts if not is_outline_prompt(prompt)] == ["Y"]


def test_merge_outlines_covers_units_beyond_the_fresh_plan() -> None:
  previous = Outline(title="Old", units=[OutlineUnit(index=index, title=f"Old {index}") for index in range(4)])
  fresh = Outline(title="New", units=[OutlineUnit(index=0, title="New 0"), OutlineUnit(index=1, title="New 1")])
  persisted = [unit_record(0, "Old 0"), unit_record(3, "Old 3")]

  merged = merge_outlines(fresh, previous, persisted)

  assert merged.title == "New"
  assert [unit.title for unit in merged.units] == ["Old 0", "New 1", "Old 2", "Old 3"]
  assert [unit.index for unit in merged.units] == [0, 1, 2, 3]


@pytest.mark.anyio
async def test_manual_units_are_assembled_without_provider_calls(settings, repo) -> None:
  request = {"title": "Manual Book", "author": "Grace", "use_ai": False, "units": [{"title": "One", "content": "First body"}, {"title": "Two", "content": "## Two\n\nSecond body"}]}
  await repo.create_job(make_job(request=request))

  async def unreachable(prompt: str) -> str:
    raise AssertionError("manual jobs never call providers")

  job = await GenerationPipeline(jobs_repo=repo, settings=settings, executor=make_executor(ScriptedModel(unreachable))).run("job-1")

  assert job.status == "completed"
  assert [unit.content for unit in await repo.list_units("job-1")] == ["## One\n\nFirst body", "## Two\n\nSecond body"]
  artifact = await repo.get_artifact(job.artifact_ref)
  assert artifact.title == "Manual Book"


@pytest.mark.anyio
async def test_terminal_jobs_are_left_alone(settings, repo) -> None:
  await repo.create_job(make_job(status="cancelled"))

  async def unreachable(prompt: str) -> str:
    raise AssertionError("cancelled jobs are not processed")

  job = await GenerationPipeline(jobs_repo=repo, settings=settings, executor=make_executor(ScriptedModel(unreachable))).run("job-1")

  assert job.status == "cancelled"


@pytest.mark.anyio
async def test_cancel_during_planning_is_not_overwritten(settings, repo) -> None:
  await repo.create_job(make_job())

  async def cancel_then_plan(prompt: str) -> str:
    await repo.update_job("job-1", status="cancelled")
    return outline_json(["Intro", "End"])

  job = await GenerationPipeline(jobs_repo=repo, settings=settings, executor=make_executor(ScriptedModel(cancel_then_plan))).run("job-1")

  assert job.status == "cancelled"
  assert await repo.count_units("job-1") == 0


@pytest.mark.anyio
async def test_invalid_stored_request_fails_the_job(settings, repo) -> None:
  await repo.create_job(make_job(request={"title": "No prompt"}))

  job = await GenerationPipeline(jobs_repo=repo, settings=settings, executor=make_executor(book_model(["A"]))).run("job-1")

  assert job.status == "failed"
  assert job.error_message == "Invalid job request."


@pytest.mark.anyio
async def test_unit_exhausting_both_routes_is_assembled_as_a_fallback(settings, repo) -> None:
  await repo.create_job(make_job())
  titles = [f"Unit {index}" for index in range(9)]

  async def primary_reply(prompt: str) -> str:
    if is_outline_prompt(prompt):
      return outline_json(titles)
    if unit_title(prompt) == "Unit 3":
      raise ProviderCallError("503 service unavailable", retryable=True)
    return f"## {unit_title(prompt)}\n\nBody of {unit_title(prompt)}."

  async def fallback_reply(prompt: str) -> str:
    raise ProviderCallError("502 bad gateway", retryable=True)

  primary, fallback = ScriptedModel(primary_reply), ScriptedModel(fallback_reply)
  pipeline = GenerationPipeline(jobs_repo=repo, settings=replace(settings, openrouter_api_key="or-test"), executor=routed_executor({ProviderName.OPENAI: primary, ProviderName.OPENROUTER: fallback}))

  job = await pipeline.run("job-1")

  assert job.status == "completed"
  assert job.completed_units == 9
  assert [unit_title(prompt) for prompt in primary.prompts if not is_outline_prompt(prompt)].count("Unit 3") == 2
  assert [unit_title(prompt) for prompt in fallback.prompts] == ["Unit 3", "Unit 3"]
  units = await repo.list_units("job-1")
  assert [unit.index for unit in units] == list(range(9))
  assert [unit.index for unit in units if unit.is_fallback] == [3]
  artifact = await repo.get_artifact(job.artifact_ref)
  sections = artifact.content.split("\n## Unit ")[1:]
  assert [section.split("\n", 1)[0] for section in sections] == [str(index) for index in range(9)]
  assert FALLBACK_MARKER in sections[3]
  assert artifact.content.count(FALLBACK_MARKER) == 1


@pytest.mark.anyio
async def test_transient_failures_are_retried_within_the_attempt_budget(settings, repo) -> None:
  await repo.create_job(make_job())
  failures = {"Middle": 2}

  async def primary_reply(prompt: str) -> str:
    if is_outline_prompt(prompt):
      return outline_json(["Intro", "Middle", "End"])
    title = unit_title(prompt)
    if failures.get(title, 0) > 0:
      failures[title] -= 1
      raise ProviderCallError("429 rate limit exceeded", retryable=True)
    return f"## {title}\n\nWritten on the primary route."

  async def fallback_reply(prompt: str) -> str:
    raise AssertionError("the fallback route is not needed")

  primary = ScriptedModel(primary_reply)
  pipeline = GenerationPipeline(jobs_repo=repo, settings=replace(settings, openrouter_api_key="or-test"), executor=routed_executor({ProviderName.OPENAI: primary, ProviderName.OPENROUTER: ScriptedModel(fallback_reply)}, max_attempts=4))

  job = await pipeline.run("job-1")

  assert job.status == "completed"
  assert [unit_title(prompt) for prompt in primary.prompts if not is_outline_prompt(prompt)].count("Middle") == 3
  middle = [unit for unit in await repo.list_units("job-1") if unit.index == 1]
  assert len(middle) == 1
  assert middle[0].is_fallback is False
  assert middle[0].content == "## Middle\n\nWritten on the primary route."


@pytest.mark.anyio
async def test_fully_persisted_job_goes_straight_to_assembly(settings) -> None:
  repo = RecordingRepo()
  await repo.create_job(make_job(status="assembling", outline=stored_outline(["Intro", "End"]), total_units=2, progress_percent=90))
  await repo.insert_unit(unit_record(0, "Intro", "## Intro\n\ndone"))
  await repo.insert_unit(unit_record(1, "End", "## End\n\ndone"))

  async def unreachable(prompt: str) -> str:
    raise AssertionError("nothing is left to generate")

  job = await GenerationPipeline(jobs_repo=repo, settings=settings, executor=make_executor(ScriptedModel(unreachable))).run("job-1")

  assert job.status == "completed"
  assert job.completed_units == 2
  assert "generating_units" not in repo.statuses
  assert repo.statuses[-2:] == ["assembling", "completed"]


@pytest.mark.anyio
async def test_pipelines_built_from_one_registry_share_provider_clients(settings, repo, monkeypatch) -> None:
  built: list[ProviderName] = []
  model = book_model(["Intro", "End"])

  class CountingProvider:
    def get_model(self, name: str | None = None) -> ScriptedModel:
      return model

  def build_provider(provider, settings):
    built.append(provider)
    return CountingProvider()

  monkeypatch.setattr("folio.ai.router.get_provider", build_provider)
  registry = ModelRegistry(settings)
  await repo.create_job(make_job("job-1"))
  await repo.create_job(make_job("job-2"))

  first = await GenerationPipeline.from_settings(repo, settings, registry).run("job-1")
  second = await GenerationPipeline.from_settings(repo, settings, registry).run("job-2")

  assert (first.status, second.status) == ("completed", "completed")
  assert built == [ProviderName.OPENAI]


@pytest.mark.anyio
async def test_missing_final_artifact_fails_the_job(settings, repo, monkeypatch) -> None:
  await repo.create_job(make_job())
  real_assemble = Assembler.assemble

  async def assemble_without_artifact(self, job, *, partial, persist=True):
    return replace(await real_assemble(self, job, partial=partial, persist=False), artifact=None)

  monkeypatch.setattr(Assembler, "assemble", assemble_without_artifact)

  job = await GenerationPipeline(jobs_repo=repo, settings=settings, executor=make_executor(book_model(["Intro", "End"]))).run("job-1")

  assert job.status == "failed"
  assert job.artifact_ref is None
  assert job.error_message.startswith("Unexpected error during generation")
  assert await repo.count_units("job-1") == 2

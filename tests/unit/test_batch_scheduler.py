from __future__ import annotations

import asyncio

import pytest

from conftest import ScriptedModel, make_executor, make_job, unit_title
from folio.ai.agents.prompts import FALLBACK_MARKER
from folio.ai.agents.unit_writer import UnitWriter
from folio.ai.errors import ProviderCallError
from folio.ai.pipeline.contracts import GenerationInput, Outline, OutlineUnit
from folio.ai.router import ProviderName, ProviderRoute
from folio.jobs.models import UnitRecord
from folio.jobs.scheduler import BatchUnitScheduler, plan_batches
from folio.services.jobs import save_partial

ROUTE = ProviderRoute(ProviderName.OPENAI, "gpt-4o-mini")
REQUEST = GenerationInput(prompt="Practical composting", title="Test Book")


def make_outline(count: int) -> Outline:
  return Outline(title="Test Book", units=[OutlineUnit(index=index, title=f"Unit {index}") for index in range(count)])


def make_scheduler(repo, model, *, batch_size: int = 2, clock=None) -> BatchUnitScheduler:
  writer = UnitWriter(executor=make_executor(model), primary=ROUTE)
  if clock is None:
    return BatchUnitScheduler(jobs_repo=repo, unit_writer=writer, batch_size=batch_size)
  return BatchUnitScheduler(jobs_repo=repo, unit_writer=writer, batch_size=batch_size, clock=clock)


async def start_job(repo, outline: Outline, job_id: str = "job-1") -> None:
  await repo.create_job(make_job(job_id, status="generating_units", total_units=outline.total_units, outline=outline.model_dump(mode="json")))


def test_plan_batches_preserves_index_order() -> None:
  units = make_outline(9).units

  batches = plan_batches(list(reversed(units)), 2)

  assert [[unit.index for unit in batch] for batch in batches] == [[0, 1], [2, 3], [4, 5], [6, 7], [8]]


def test_plan_batches_rejects_non_positive_size() -> None:
  with pytest.raises(ValueError):
    plan_batches(make_outline(2).units, 0)


@pytest.mark.anyio
async def test_nine_units_with_one_exhausted_unit(repo) -> None:
  outline = make_outline(9)
  await start_job(repo, outline)

  async def reply(prompt: str) -> str:
    title = unit_title(prompt)
    if title == "Unit 3":
      raise ProviderCallError("503 service unavailable", retryable=True)
    return f"## {title}\n\nBody of {title}."

  model = ScriptedModel(reply)
  outcome = await make_scheduler(repo, model).run("job-1", outline, REQUEST)

  assert outcome.status == "finished"
  assert outcome.batches_run == 5
  assert outcome.completed_units == 9
  assert outcome.fallback_indexes == (3,)
  units = await repo.list_units("job-1")
  assert [unit.index for unit in units] == list(range(9))
  assert units[3].is_fallback is True
  assert FALLBACK_MARKER in units[3].content
  assert units[3].content.startswith("## Unit 3")
  assert all(not unit.is_fallback for unit in units if unit.index != 3)
  job = await repo.get_job("job-1")
  assert job.completed_units == 9
  assert job.progress_percent == 90


@pytest.mark.anyio
async def test_batches_never_overlap(repo) -> None:
  outline = make_outline(5)
  await start_job(repo, outline)
  events: list[tuple[str, int]] = []
  in_flight = 0
  peak = 0

  async def reply(prompt: str) -> str:
    nonlocal in_flight, peak
    index = int(unit_title(prompt).split()[-1])
    in_flight += 1
    peak = max(peak, in_flight)
    events.append(("start", index))
    # Later units in a batch finish first.
    await asyncio.sleep(0.01 * (2 - index % 2))
    events.append(("end", index))
    in_flight -= 1
    return f"## Unit {index}\n\ntext"

  await make_scheduler(repo, ScriptedModel(reply)).run("job-1", outline, REQUEST)

  assert peak == 2
  batches = plan_batches(outline.units, 2)
  for earlier, later in zip(batches, batches[1:]):
    last_end = max(events.index(("end", unit.index)) for unit in earlier)
    first_start = min(events.index(("start", unit.index)) for unit in later)
    assert last_end < first_start


@pytest.mark.anyio
async def test_cancel_during_a_batch_stops_before_the_next(repo) -> None:
  outline = make_outline(6)
  await start_job(repo, outline)

  async def reply(prompt: str) -> str:
    title = unit_title(prompt)
    if title == "Unit 2":
      await repo.update_job("job-1", status="cancelled")
    return f"## {title}\n\ntext"

  model = ScriptedModel(reply)
  outcome = await make_scheduler(repo, model).run("job-1", outline, REQUEST)

  assert outcome.status == "stopped"
  assert outcome.batches_run == 2
  assert [unit.index for unit in await repo.list_units("job-1")] == [0, 1, 2, 3]
  assert len(model.prompts) == 4
  job = await repo.get_job("job-1")
  assert job.status == "cancelled"
  assert job.completed_units == 4


@pytest.mark.anyio
async def test_partial_save_during_a_batch_leaves_the_completed_job_alone(repo) -> None:
  outline = make_outline(6)
  await start_job(repo, outline)
  saved = {}
  save_done = asyncio.Event()

  async def reply(prompt: str) -> str:
    title = unit_title(prompt)
    if title == "Unit 2":
      saved["artifact"] = await save_partial("job-1", repo, owner_id="owner-1")
      saved["job"] = await repo.get_job("job-1")
      save_done.set()
    elif title == "Unit 3":
      await save_done.wait()
    return f"## {title}\n\ntext"

  outcome = await make_scheduler(repo, ScriptedModel(reply)).run("job-1", outline, REQUEST)

  assert outcome.status == "stopped"
  assert await repo.count_units("job-1") == 4
  job = await repo.get_job("job-1")
  assert job.status == "completed"
  assert job.completed_units == 2
  assert job == saved["job"]
  assert "## Unit 2" not in saved["artifact"].content
  assert saved["artifact"].content.count("text") == 2


@pytest.mark.anyio
async def test_resume_generates_only_missing_units(repo) -> None:
  outline = make_outline(4)
  await start_job(repo, outline)
  existing = [UnitRecord(job_id="job-1", index=index, title=f"Unit {index}", kind="chapter", content=f"## Unit {index}\n\noriginal", size=3, is_fallback=False, created_at="2026-01-01T00:00:00Z") for index in (0, 1, 3)]
  for record in existing:
    await repo.insert_unit(record)

  async def reply(prompt: str) -> str:
    return f"## {unit_title(prompt)}\n\nfresh"

  model = ScriptedModel(reply)
  outcome = await make_scheduler(repo, model).run("job-1", outline, REQUEST)

  assert outcome.generated_indexes == (2,)
  assert [unit_title(prompt) for prompt in model.prompts] == ["Unit 2"]
  units = {unit.index: unit for unit in await repo.list_units("job-1")}
  for record in existing:
    assert units[record.index] == record
  assert units[2].content == "## Unit 2\n\nfresh"


@pytest.mark.anyio
async def test_nothing_missing_runs_no_batches(repo) -> None:
  outline = make_outline(2)
  await start_job(repo, outline)
  for index in range(2):
    await repo.insert_unit(UnitRecord(job_id="job-1", index=index, title=f"Unit {index}", kind="chapter", content="done", size=1, is_fallback=False, created_at="2026-01-01T00:00:00Z"))

  async def unreachable(prompt: str) -> str:
    raise AssertionError("no unit should be generated")

  outcome = await make_scheduler(repo, ScriptedModel(unreachable)).run("job-1", outline, REQUEST)

  assert outcome.status == "finished"
  assert outcome.batches_run == 0
  assert outcome.completed_units == 2


@pytest.mark.anyio
async def test_deadline_stops_between_batches_and_keeps_checkpoints(repo) -> None:
  outline = make_outline(6)
  await start_job(repo, outline)
  ticks = iter([0.0, 5.0, 11.0, 12.0])

  async def reply(prompt: str) -> str:
    return f"## {unit_title(prompt)}\n\ntext"

  scheduler = make_scheduler(repo, ScriptedModel(reply), clock=lambda: next(ticks))
  outcome = await scheduler.run("job-1", outline, REQUEST, deadline=10.0)

  assert outcome.status == "timed_out"
  assert outcome.batches_run == 2
  assert outcome.completed_units == 4
  assert await repo.count_units("job-1") == 4

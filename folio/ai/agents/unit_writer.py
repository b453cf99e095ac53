"""Per-unit content writer."""

from __future__ import annotations

from dataclasses import dataclass

from folio.ai.agents.base import BaseAgent
from folio.ai.agents.prompts import render_unit_prompt
from folio.ai.executor import ExecutorOutcome, ExecutorResult
from folio.ai.pipeline.contracts import GenerationInput, OutlineUnit


@dataclass(frozen=True)
class UnitTask:
  request: GenerationInput
  unit: OutlineUnit


class UnitWriter(BaseAgent[UnitTask, ExecutorOutcome]):
  """Generate one unit's Markdown through the executor; exhaustion comes back as ExecutorError."""

  name = "Unit"

  async def run(self, input_data: UnitTask) -> ExecutorOutcome:
    unit = input_data.unit
    dummy = self._load_dummy_text()
    if dummy is not None:
      return ExecutorResult(text=dummy.replace("{title}", unit.title), route=self._primary, attempts=())

    outcome = await self._executor.execute(render_unit_prompt(input_data.request, unit), primary=self._primary, fallback=self._fallback, label=f"unit {unit.index}")
    if isinstance(outcome, ExecutorResult):
      self._log_usage(outcome, f"unit {unit.index}")
    return outcome

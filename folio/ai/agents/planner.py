"""Outline planner agent."""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from folio.ai.agents.base import BaseAgent
from folio.ai.agents.prompts import render_outline_prompt
from folio.ai.executor import ExecutorError, RetryFallbackExecutor
from folio.ai.json_parser import parse_json_with_fallback
from folio.ai.pipeline.contracts import GenerationInput, Outline, PlanError, PlanResult, clamp_target_size
from folio.ai.providers.base import AIModel
from folio.ai.router import ProviderRoute

logger = logging.getLogger(__name__)

_DEFAULT_TARGET_SIZE = 2000


def _target_size(value: Any) -> int:
  # Size hints are advisory; out-of-range or unreadable values never reject an outline.
  if isinstance(value, bool):
    return _DEFAULT_TARGET_SIZE
  try:
    words = int(value)
  except (TypeError, ValueError, OverflowError):
    return _DEFAULT_TARGET_SIZE
  return clamp_target_size(words)


def _unit_entries(payload: Any) -> list[Any] | None:
  if isinstance(payload, list):
    return payload
  if isinstance(payload, dict):
    entries = payload.get("chapters", payload.get("units"))
    if isinstance(entries, list):
      return entries
  return None


def decode_outline(raw: str, *, default_title: str, max_units: int) -> PlanResult:
  """Decode provider text into an Outline, or a PlanError describing why it cannot be trusted."""
  try:
    payload = parse_json_with_fallback(AIModel.strip_json_fences(raw))
  except json.JSONDecodeError as exc:
    return PlanError(message=f"Outline response is not valid JSON: {exc.msg}", raw_output=raw)

  entries = _unit_entries(payload)
  if not entries:
    return PlanError(message="Outline response contains no units.", raw_output=raw)

  units: list[dict[str, Any]] = []
  for entry in entries:
    if not isinstance(entry, dict):
      return PlanError(message="Outline units must be JSON objects.", raw_output=raw)
    kind = str(entry.get("type") or entry.get("kind") or "chapter")
    # Models sometimes plan the table of contents as a unit; the assembler writes it.
    if kind.strip().lower() == "toc":
      continue
    units.append(
      {
        "index": len(units),
        "title": entry.get("title"),
        "kind": kind,
        "summary": str(entry.get("summary") or ""),
        "target_size": _target_size(entry.get("target_words", entry.get("target_size"))),
      }
    )

  if len(units) > max_units:
    return PlanError(message=f"Outline has {len(units)} units; the maximum is {max_units}.", raw_output=raw)

  title = payload.get("title") if isinstance(payload, dict) else None
  total = payload.get("total_estimated_words") if isinstance(payload, dict) else None
  try:
    return Outline.model_validate({"title": title or default_title, "units": units, "total_estimated_size": total if isinstance(total, int) else None})
  except ValidationError as exc:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return PlanError(message=f"Outline failed validation ({exc.error_count()} errors, first at {location}: {first.get('msg')}).", raw_output=raw)


class OutlinePlanner(BaseAgent[GenerationInput, PlanResult]):
  """Issue exactly one planning call and decode it into an Outline."""

  name = "Outline"

  def __init__(self, *, executor: RetryFallbackExecutor, primary: ProviderRoute, fallback: ProviderRoute | None = None, max_units: int = 24) -> None:
    super().__init__(executor=executor, primary=primary, fallback=fallback)
    self._max_units = max_units

  async def run(self, input_data: GenerationInput) -> PlanResult:
    return await self.plan(input_data)

  async def plan(self, request: GenerationInput) -> PlanResult:
    # Prefer deterministic fixtures during local/test runs.
    raw = self._load_dummy_text()
    if raw is not None:
      logger.info("Using deterministic dummy output for outline planning")
    else:
      outcome = await self._executor.execute(render_outline_prompt(request), primary=self._primary, fallback=self._fallback, label="outline")
      if isinstance(outcome, ExecutorError):
        return PlanError(message=f"Outline generation failed: {outcome.message}")
      self._log_usage(outcome, "outline")
      raw = outcome.text

    result = decode_outline(raw, default_title=request.title, max_units=self._max_units)
    if isinstance(result, PlanError):
      logger.warning("Outline rejected: %s", result.message)
    else:
      logger.info("Outline planned: %d units", result.total_units)
    return result

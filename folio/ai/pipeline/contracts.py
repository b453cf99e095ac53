"""Typed contracts passed between planner, scheduler and assembler."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator, model_validator

UnitKindField = Literal["intro", "chapter", "conclusion"]

MIN_TARGET_SIZE = 50
MAX_TARGET_SIZE = 20000


def clamp_target_size(words: int) -> int:
  return max(MIN_TARGET_SIZE, min(words, MAX_TARGET_SIZE))


class ManualUnit(BaseModel):
  """Caller-supplied unit content used when AI generation is disabled."""

  title: StrictStr = Field(min_length=1, max_length=200)
  content: StrictStr = Field(min_length=1)


class GenerationInput(BaseModel):
  """What the caller wants written."""

  prompt: StrictStr | None = Field(default=None, max_length=4000, description="Subject matter the document should cover.")
  title: StrictStr = Field(min_length=1, max_length=200)
  author: StrictStr = Field(default="Anonymous", min_length=1, max_length=120)
  template: StrictStr = Field(default="business", min_length=1, max_length=40, description="Style/template label, e.g. business, guide, novel.")
  language: StrictStr = Field(default="en", min_length=2, max_length=5)
  fast_mode: bool = Field(default=True, description="Shorter outline and unit targets.")
  use_ai: bool = Field(default=True, description="When false, manual units are assembled without provider calls.")
  units: list[ManualUnit] = Field(default_factory=list, max_length=50)
  model_config = ConfigDict(extra="forbid")

  @model_validator(mode="after")
  def _require_source(self) -> GenerationInput:
    if self.use_ai and not (self.prompt and self.prompt.strip()):
      raise ValueError("prompt is required when use_ai is true.")
    if not self.use_ai and not self.units:
      raise ValueError("units are required when use_ai is false.")
    return self


class OutlineUnit(BaseModel):
  """One planned unit of the document."""

  index: int = Field(ge=0)
  title: StrictStr = Field(min_length=1, max_length=300)
  kind: UnitKindField = "chapter"
  summary: str = ""
  target_size: int = Field(default=2000, ge=MIN_TARGET_SIZE, le=MAX_TARGET_SIZE)

  @field_validator("kind", mode="before")
  @classmethod
  def _normalize_kind(cls, value: object) -> str:
    normalized = str(value or "chapter").strip().lower()
    if normalized in {"intro", "introduction", "opening", "preface"}:
      return "intro"
    if normalized in {"conclusion", "closing", "outro", "epilogue"}:
      return "conclusion"
    return "chapter"


class Outline(BaseModel):
  """Ordered plan produced once per job."""

  title: StrictStr = Field(min_length=1)
  units: list[OutlineUnit] = Field(min_length=1)
  total_estimated_size: int | None = None

  @model_validator(mode="after")
  def _check_indexes(self) -> Outline:
    indexes = [unit.index for unit in self.units]
    if indexes != list(range(len(indexes))):
      raise ValueError("Outline unit indexes must be contiguous and start at 0.")
    return self

  @property
  def total_units(self) -> int:
    return len(self.units)

  def missing_units(self, persisted_indexes: Iterable[int]) -> list[OutlineUnit]:
    """Return planned units with no persisted checkpoint, in index order."""
    done = set(persisted_indexes)
    return [unit for unit in self.units if unit.index not in done]


@dataclass(frozen=True)
class PlanError:
  """A failed planning attempt; fails the job."""

  message: str
  raw_output: str | None = None


PlanResult = Outline | PlanError

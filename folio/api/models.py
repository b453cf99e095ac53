"""Request and response payloads for the HTTP surface."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from folio.ai.pipeline.contracts import GenerationInput, UnitKindField
from folio.jobs.models import JobStatus


class JobCreateRequest(BaseModel):
  """Request payload for starting a generation job."""

  input: GenerationInput
  model_selector: StrictStr | None = Field(default=None, max_length=120, description="Provider model name; defaults to the configured model.")
  fast_mode: bool | None = Field(default=None, description="Overrides input.fast_mode when set.")
  model_config = ConfigDict(extra="forbid")

  def effective_input(self) -> GenerationInput:
    if self.fast_mode is None:
      return self.input
    return self.input.model_copy(update={"fast_mode": self.fast_mode})


class JobCreateResponse(BaseModel):
  """Response payload for job creation."""

  job_id: StrictStr
  status: Literal["started"] = "started"


class StallResponse(BaseModel):
  is_stalled: bool
  idle_seconds: int
  budget_seconds: int | None = None
  recommended_actions: list[str] = Field(default_factory=list)


class JobStatusResponse(BaseModel):
  """Status payload for a background job."""

  job_id: StrictStr
  status: JobStatus
  progress_percent: int = Field(ge=0, le=100)
  completed_units: int = Field(ge=0)
  total_units: int = Field(ge=0)
  error_message: str | None = None
  artifact_ref: str | None = None
  created_at: str
  updated_at: str
  completed_at: str | None = None
  stall: StallResponse | None = None


class JobResumeRequest(BaseModel):
  """Request payload for resuming an interrupted job."""

  regenerate_outline: bool = Field(default=False, description="Replan before generating; persisted units are kept.")
  model_config = ConfigDict(extra="forbid")


class PartialUnit(BaseModel):
  index: int
  title: str
  kind: UnitKindField
  size: int
  is_fallback: bool


class PartialContentResponse(BaseModel):
  """Assembled content of whatever units exist right now."""

  job_id: StrictStr
  title: str
  content: str
  has_content: bool
  word_count: int
  unit_count: int
  total_units: int
  units: list[PartialUnit]


class ArtifactResponse(BaseModel):
  artifact_id: StrictStr
  job_id: StrictStr
  title: str
  content: str
  is_partial: bool
  created_at: str


class StallSweepResponse(BaseModel):
  failed_job_ids: list[str]

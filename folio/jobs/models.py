"""Domain records shared by the pipeline, repositories and services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

JobStatus = Literal["pending", "planning", "generating_units", "assembling", "completed", "failed", "cancelled"]
UnitKind = Literal["intro", "chapter", "conclusion"]

ACTIVE_STATUSES: frozenset[str] = frozenset({"pending", "planning", "generating_units", "assembling"})
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})


@dataclass
class JobRecord:
  """Persisted state of a single generation request."""

  job_id: str
  owner_id: str
  request: dict[str, Any]
  model_selector: str
  status: JobStatus
  created_at: str
  updated_at: str
  progress_percent: int = 0
  total_units: int = 0
  completed_units: int = 0
  outline: dict[str, Any] | None = None
  error_message: str | None = None
  completed_at: str | None = None
  artifact_ref: str | None = None

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES

  @property
  def title(self) -> str:
    return str(self.request.get("title") or "Untitled")


@dataclass(frozen=True)
class UnitRecord:
  """A checkpointed piece of content; (job_id, index) is written at most once."""

  job_id: str
  index: int
  title: str
  kind: UnitKind
  content: str
  size: int
  is_fallback: bool
  created_at: str


@dataclass(frozen=True)
class ArtifactRecord:
  """An assembled document, final or partial."""

  artifact_id: str
  job_id: str
  title: str
  content: str
  is_partial: bool
  created_at: str


def count_words(content: str) -> int:
  """Word count used for unit sizes and document statistics."""
  return len(content.split())

"""Assemble persisted units into a Markdown document."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from folio.ai.pipeline.contracts import Outline
from folio.jobs.models import ArtifactRecord, JobRecord, UnitRecord, count_words
from folio.storage.jobs_repo import JobsRepository
from folio.utils.ids import generate_artifact_id
from folio.utils.timestamps import now_iso

logger = logging.getLogger(__name__)

PARTIAL_TITLE_SUFFIX = " (Partial)"


@dataclass(frozen=True)
class AssembledDocument:
  title: str
  content: str
  units: tuple[UnitRecord, ...]
  word_count: int
  is_partial: bool
  artifact: ArtifactRecord | None = None

  @property
  def body_chars(self) -> int:
    return sum(len(unit.content.strip()) for unit in self.units)


def _table_of_contents(job: JobRecord, units: list[UnitRecord]) -> list[str]:
  ordered = sorted(units, key=lambda unit: unit.index)
  if job.outline:
    outline = Outline.model_validate(job.outline)
    titles = [unit.title for unit in outline.units]
    # Persisted units beyond the outline still get listed.
    titles.extend(unit.title for unit in ordered if unit.index >= len(titles))
  else:
    titles = [unit.title for unit in ordered]
  return [f"{position}. {title}" for position, title in enumerate(titles, start=1)]


def render_document(job: JobRecord, units: list[UnitRecord], *, title: str) -> str:
  """Front matter, table of contents, separator, then unit bodies in index order."""
  author = str(job.request.get("author") or "").strip()
  parts = [f"# {title}"]
  if author:
    parts.append(f"*By {author}*")
  toc = _table_of_contents(job, units)
  if toc:
    parts.append("## Table of Contents\n\n" + "\n".join(toc))
  parts.append("---")
  parts.extend(unit.content.strip() for unit in sorted(units, key=lambda unit: unit.index))
  return "\n\n".join(parts) + "\n"


class Assembler:
  """Build documents from checkpoints; never changes job status."""

  def __init__(self, jobs_repo: JobsRepository) -> None:
    self._jobs_repo = jobs_repo

  async def assemble(self, job: JobRecord, *, partial: bool, persist: bool = True) -> AssembledDocument:
    units = await self._jobs_repo.list_units(job.job_id)
    title = job.title + (PARTIAL_TITLE_SUFFIX if partial else "")
    content = render_document(job, units, title=title)
    document = AssembledDocument(title=title, content=content, units=tuple(units), word_count=count_words(content), is_partial=partial)
    if not persist:
      return document

    artifact = ArtifactRecord(artifact_id=generate_artifact_id(), job_id=job.job_id, title=title, content=content, is_partial=partial, created_at=now_iso())
    await self._jobs_repo.create_artifact(artifact)
    logger.info("Job %s: %s artifact %s written (%d units, %d words)", job.job_id, "partial" if partial else "final", artifact.artifact_id, len(units), document.word_count)
    return replace(document, artifact=artifact)

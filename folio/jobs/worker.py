"""Background worker that runs generation pipelines outside request lifetimes."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from folio.jobs.pipeline import GenerationPipeline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _WorkItem:
  job_id: str
  regenerate_outline: bool = False


class JobWorker:
  """Queue consumer pool; the job store is the only handoff between requests and pipelines.

  A job id is accepted at most once while it is queued or running, so a resume
  racing a live pipeline in this process cannot start a second copy.
  """

  def __init__(self, pipeline_factory: Callable[[], GenerationPipeline], *, concurrency: int = 4) -> None:
    if concurrency <= 0:
      raise ValueError("concurrency must be positive.")
    self._pipeline_factory = pipeline_factory
    self._concurrency = concurrency
    self._queue: asyncio.Queue[_WorkItem] = asyncio.Queue()
    self._inflight: set[str] = set()
    self._consumers: list[asyncio.Task[None]] = []

  @property
  def running(self) -> bool:
    return bool(self._consumers)

  def is_active(self, job_id: str) -> bool:
    return job_id in self._inflight

  def start(self) -> None:
    if self._consumers:
      return
    self._consumers = [asyncio.create_task(self._consume(number), name=f"folio-worker-{number}") for number in range(self._concurrency)]
    logger.info("Job worker started with %d consumers", self._concurrency)

  async def stop(self) -> None:
    consumers, self._consumers = self._consumers, []
    for task in consumers:
      task.cancel()
    await asyncio.gather(*consumers, return_exceptions=True)
    if consumers:
      logger.info("Job worker stopped; %d jobs left queued", self._queue.qsize())

  def submit(self, job_id: str, *, regenerate_outline: bool = False) -> bool:
    """Queue a job for processing; returns False when it is already queued or running."""
    if job_id in self._inflight:
      logger.info("Job %s already queued or running; ignoring duplicate submission", job_id)
      return False
    self._inflight.add(job_id)
    self._queue.put_nowait(_WorkItem(job_id=job_id, regenerate_outline=regenerate_outline))
    return True

  async def join(self) -> None:
    """Wait until every queued job has been processed."""
    await self._queue.join()

  async def _consume(self, number: int) -> None:
    while True:
      item = await self._queue.get()
      try:
        logger.info("Worker %d picked up job %s", number, item.job_id)
        await self._pipeline_factory().run(item.job_id, regenerate_outline=item.regenerate_outline)
      except Exception:
        # The pipeline records its own failures; this only guards the consumer loop.
        logger.error("Worker %d crashed while running job %s", number, item.job_id, exc_info=True)
      finally:
        self._inflight.discard(item.job_id)
        self._queue.task_done()

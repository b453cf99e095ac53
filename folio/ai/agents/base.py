"""Base class for AI agents."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from folio.ai.executor import ExecutorResult, RetryFallbackExecutor
from folio.ai.providers.base import AIModel
from folio.ai.router import ProviderRoute

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class BaseAgent(ABC, Generic[InputT, OutputT]):
  """Base agent: owns the executor and the routes every call goes through."""

  name: str

  def __init__(self, *, executor: RetryFallbackExecutor, primary: ProviderRoute, fallback: ProviderRoute | None = None) -> None:
    self._executor = executor
    self._primary = primary
    self._fallback = fallback

  @abstractmethod
  async def run(self, input_data: InputT) -> OutputT:
    """Run the agent on input data."""

  @staticmethod
  def _env_agent_key(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).upper()

  def _load_dummy_text(self) -> str | None:
    """Return a deterministic dummy response when enabled for this agent."""
    return AIModel.load_dummy_response(self._env_agent_key(self.name))

  def _log_usage(self, result: ExecutorResult, purpose: str) -> None:
    if not result.usage:
      return
    logging.getLogger(__name__).debug("%s usage for %s via %s: %s", self.name, purpose, result.route.label(), result.usage)

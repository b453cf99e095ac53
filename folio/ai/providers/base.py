"""Base interfaces for AI providers and models."""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

_FIXTURES_DIR = Path(__file__).resolve().parents[3] / "fixtures"
_TRUTHY = {"1", "true", "yes", "on"}


class ModelResponse(Protocol):
  """Response contract for model outputs."""

  content: str
  usage: dict[str, int] | None


@dataclass
class SimpleModelResponse:
  """Minimal model response structure."""

  content: str
  usage: dict[str, int] | None = None


class AIModel(ABC):
  """Abstract base class for AI models."""

  name: str
  provider: str

  @abstractmethod
  async def generate(self, prompt: str) -> ModelResponse:
    """Generate a response for the given prompt."""

  async def aclose(self) -> None:
    """Release the underlying client; models without one have nothing to close."""
    return None

  @staticmethod
  def load_dummy_response(agent: str) -> str | None:
    """Return fixture text when FOLIO_USE_DUMMY_<AGENT>_RESPONSE is enabled."""
    flag = (os.getenv(f"FOLIO_USE_DUMMY_{agent}_RESPONSE") or "").strip().lower()
    if flag not in _TRUTHY:
      return None

    # Prefer an explicit path, then the repo fixtures directory.
    explicit = os.getenv(f"FOLIO_DUMMY_{agent}_RESPONSE_PATH")
    candidates = [Path(explicit)] if explicit else sorted(_FIXTURES_DIR.glob(f"dummy_{agent.lower()}_response.*"))
    for candidate in candidates:
      if candidate.is_file():
        return candidate.read_text(encoding="utf-8")

    logging.getLogger(__name__).warning("Dummy response enabled for %s but no fixture was found.", agent)
    return None

  @staticmethod
  def strip_json_fences(content: str) -> str:
    """Remove ```json fences that models wrap around structured output."""
    cleaned = content.strip()
    if cleaned.startswith("```"):
      cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
      if cleaned.rstrip().endswith("```"):
        cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()


class Provider(ABC):
  """Abstract base class for AI providers."""

  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""

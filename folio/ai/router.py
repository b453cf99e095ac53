"""Model selector routing and cross-provider fallback resolution."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Final

from folio.ai.providers.base import AIModel, Provider
from folio.ai.providers.gemini import GeminiProvider
from folio.ai.providers.openai_provider import OpenAIProvider
from folio.ai.providers.openrouter import OpenRouterProvider
from folio.config import Settings

logger = logging.getLogger(__name__)


class ProviderName(str, Enum):
  """Supported generation backends."""

  OPENAI = "openai"
  OPENROUTER = "openrouter"
  GEMINI = "gemini"


@dataclass(frozen=True)
class ProviderRoute:
  """A concrete provider and model pair the executor can call."""

  provider: ProviderName
  model: str

  def label(self) -> str:
    return f"{self.provider.value}:{self.model}"


# Model families only reachable through OpenRouter.
_OPENROUTER_HINTS: Final[tuple[str, ...]] = ("llama", "grok", "deepseek", "claude", "mistral", "qwen")
_FALLBACK_MODELS: Final[dict[ProviderName, str]] = {ProviderName.OPENAI: "gpt-4o-mini", ProviderName.OPENROUTER: "openai/gpt-4o-mini"}


def _normalize_openai_model(model: str) -> str:
  # gpt-5 selectors are not served on the chat-completions path this engine uses.
  if model.startswith("gpt-5"):
    return "gpt-4o-mini" if ("mini" in model or "nano" in model) else "gpt-4o"
  return model


def resolve_route(model_selector: str | None, settings: Settings) -> ProviderRoute:
  """Map a user-facing model selector to the provider that serves it."""
  selector = (model_selector or settings.default_model).strip()
  lowered = selector.lower()

  if lowered.startswith("gemini") and "/" not in lowered:
    if settings.gemini_api_key:
      return ProviderRoute(ProviderName.GEMINI, selector)
    return ProviderRoute(ProviderName.OPENROUTER, f"google/{selector}")

  if "/" in selector or any(hint in lowered for hint in _OPENROUTER_HINTS):
    return ProviderRoute(ProviderName.OPENROUTER, selector)

  return ProviderRoute(ProviderName.OPENAI, _normalize_openai_model(selector))


def resolve_fallback_route(primary: ProviderRoute, settings: Settings) -> ProviderRoute | None:
  """Pick the alternate provider for a primary route, or None when it has no credentials."""
  if primary.provider == ProviderName.OPENAI:
    candidates = [ProviderName.OPENROUTER]
  elif primary.provider == ProviderName.OPENROUTER:
    candidates = [ProviderName.OPENAI]
  else:
    candidates = [ProviderName.OPENROUTER, ProviderName.OPENAI]

  for candidate in candidates:
    if _has_credentials(candidate, settings):
      return ProviderRoute(candidate, _FALLBACK_MODELS[candidate])
  return None


def _has_credentials(provider: ProviderName, settings: Settings) -> bool:
  if provider == ProviderName.OPENAI:
    return bool(settings.openai_api_key)
  if provider == ProviderName.OPENROUTER:
    return bool(settings.openrouter_api_key)
  return bool(settings.gemini_api_key)


def get_provider(provider: ProviderName, settings: Settings) -> Provider:
  if provider == ProviderName.OPENAI:
    return OpenAIProvider(settings.openai_api_key)
  if provider == ProviderName.OPENROUTER:
    return OpenRouterProvider(settings.openrouter_api_key, referer=settings.openrouter_referer, title=settings.openrouter_title)
  return GeminiProvider(settings.gemini_api_key)


class ModelRegistry:
  """Build model clients lazily and reuse them for the lifetime of the registry."""

  def __init__(self, settings: Settings) -> None:
    self._settings = settings
    self._models: dict[ProviderRoute, AIModel] = {}

  def get_model(self, route: ProviderRoute) -> AIModel:
    model = self._models.get(route)
    if model is None:
      model = get_provider(route.provider, self._settings).get_model(route.model)
      self._models[route] = model
    return model

  async def aclose(self) -> None:
    """Close every cached client; the next lookup builds fresh ones."""
    models, self._models = self._models, {}
    for route, model in models.items():
      try:
        await model.aclose()
      except Exception:  # noqa: BLE001
        logger.warning("Failed to close model client for %s", route.label(), exc_info=True)
